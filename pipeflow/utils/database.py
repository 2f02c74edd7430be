"""Database session helpers for request handlers."""

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from .db_manager import DatabaseManager, db_manager


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get an async database session as a FastAPI dependency.

    Sessions come from the database manager the application was created
    with, falling back to the process-wide one.

    Usage:
        @app.get("/items")
        async def get_items(session: AsyncSession = Depends(get_async_session)):
            result = await session.execute(select(Item))
            return result.scalars().all()

    Yields:
        AsyncSession: SQLModel async session
    """
    database: DatabaseManager = getattr(request.app.state, "database", db_manager)
    async for session in database.get_async_session():
        yield session
