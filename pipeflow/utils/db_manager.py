"""
Database manager for Pipeflow.

Owns the async engine and session factory. The engine is created lazily from
``settings.database_url`` unless an explicit URL is given, which is how tests
point the whole stack at a throwaway database.
"""

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from pydantic_core import to_jsonable_python
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from ..settings import settings
from ..utils.logger import logger

# Seconds a SQLite connection waits on a locked database before failing
SQLITE_BUSY_TIMEOUT = 30


def _pydantic_json_serializer(obj: Any) -> str:
    """JSON serializer for JSON columns.

    Pydantic/SQLModel objects, datetimes, UUIDs and the like are converted the
    way pydantic dumps them in JSON mode; anything else falls back to ``str``.
    """

    def default(o: Any) -> Any:
        return to_jsonable_python(o, fallback=str)

    return json.dumps(obj, default=default)


class DatabaseManager:
    """Manages the async engine and sessions without module-level engine state."""

    def __init__(self, database_url: str | None = None) -> None:
        self._database_url = database_url
        self._async_engine: AsyncEngine | None = None
        self._async_session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def database_url(self) -> str:
        return self._database_url or settings.database_url

    def _create_async_engine(self) -> AsyncEngine:
        """Create and configure the asynchronous database engine."""
        url = self.database_url

        if url.startswith("sqlite"):
            engine = create_async_engine(
                url,
                connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
                echo=settings.debug,
                json_serializer=_pydantic_json_serializer,
            )
        else:
            engine = create_async_engine(
                url,
                echo=settings.debug,
                pool_size=20,
                max_overflow=0,
                json_serializer=_pydantic_json_serializer,
            )

        logger.info(f"Async database engine created: {engine.url.render_as_string()}")
        return engine

    @property
    def async_engine(self) -> AsyncEngine:
        """Get or create the asynchronous database engine."""
        if self._async_engine is None:
            self._async_engine = self._create_async_engine()
        return self._async_engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create the async session factory."""
        if self._async_session_factory is None:
            self._async_session_factory = async_sessionmaker(
                self.async_engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._async_session_factory

    async def create_db_and_tables(self) -> None:
        """Create all tables registered on the SQLModel metadata."""
        # Imported for its side effect of registering every table
        import pipeflow.models  # noqa: F401

        logger.info("Creating database tables...")
        async with self.async_engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Database tables created")

    @asynccontextmanager
    async def get_async_session_context(self) -> AsyncGenerator[AsyncSession]:
        """
        Get an async database session as a context manager.

        Usage:
            async with db_manager.get_async_session_context() as session:
                session.add(model_instance)

        Yields:
            AsyncSession: SQLModel async session, committed on clean exit
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                logger.error(f"Database error: {e}")
                await session.rollback()
                raise

    async def get_async_session(self) -> AsyncGenerator[AsyncSession]:
        """Get an async database session for a FastAPI dependency."""
        async with self.get_async_session_context() as session:
            yield session

    async def close(self) -> None:
        """Dispose the engine and forget the session factory."""
        if self._async_engine:
            await self._async_engine.dispose()
            logger.info("Async database engine disposed")
        self._async_engine = None
        self._async_session_factory = None

    def __repr__(self) -> str:
        return (
            f"<DatabaseManager("
            f"url={self.database_url}, "
            f"async_initialized={self._async_engine is not None}"
            f")>"
        )


# Create a singleton instance
db_manager = DatabaseManager()
