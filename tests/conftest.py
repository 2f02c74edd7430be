"""Shared fixtures: a throwaway SQLite database and the core services."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from helpers import EchoProvider, TextProvider
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pipeflow.services.pipeline.engine import PipelineEngine
from pipeflow.services.pipeline.registry import ProviderRegistry
from pipeflow.services.quota_service import QuotaService
from pipeflow.utils.db_manager import DatabaseManager


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[DatabaseManager]:
    """File-backed SQLite database, one per test, so separate sessions share data."""
    db = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.create_db_and_tables()
    yield db
    await db.close()


@pytest.fixture
def session_factory(database: DatabaseManager) -> async_sessionmaker[AsyncSession]:
    return database.session_factory


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def registry() -> ProviderRegistry:
    """Registry with well-behaved providers; tests add the misbehaving ones."""
    registry = ProviderRegistry()
    registry.register_provider("first", EchoProvider("first"))
    registry.register_provider("last", EchoProvider("last"))
    registry.register_provider("text", TextProvider())
    return registry


@pytest.fixture
def quota_service(session_factory) -> QuotaService:
    return QuotaService(session_factory)


@pytest.fixture
def engine(session_factory, registry, quota_service) -> PipelineEngine:
    return PipelineEngine(session_factory, registry, quota_service)
