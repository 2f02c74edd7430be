"""Fixtures for API tests: the full application on a throwaway SQLite database."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from pipeflow.api.app import create_app


@pytest_asyncio.fixture
async def app(database, registry) -> AsyncGenerator[FastAPI]:
    """Application with its lifespan entered, so services exist on ``app.state``."""
    application = create_app(database=database, registry=registry)
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
