"""
Main API application module for Pipeflow.

This module creates and configures the FastAPI application with all routers
and the process-scoped services the routers depend on.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pipeflow.api.exception_handlers import setup_exception_handlers
from pipeflow.api.routers import feature, pipeline, quota, task
from pipeflow.services.pipeline.engine import PipelineEngine
from pipeflow.services.pipeline.registry import ProviderRegistry, build_registry
from pipeflow.services.quota_maintenance import QuotaMaintenanceService
from pipeflow.services.quota_service import QuotaService
from pipeflow.settings import settings
from pipeflow.utils.db_manager import DatabaseManager, db_manager
from pipeflow.utils.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """
    Application lifespan context manager.

    Creates database tables, builds the provider registry, the quota service
    and the engine, and starts the optional maintenance loop.
    """
    database: DatabaseManager = app.state.database
    await database.create_db_and_tables()
    logger.info("Database initialized")

    registry: ProviderRegistry = app.state.provider_registry or build_registry(settings)
    quota_service = QuotaService(database.session_factory)
    engine = PipelineEngine(database.session_factory, registry, quota_service, settings)

    app.state.provider_registry = registry
    app.state.quota_service = quota_service
    app.state.pipeline_engine = engine
    logger.info(f"Provider registry ready: {registry.registered_types}")

    maintenance: QuotaMaintenanceService | None = None
    if settings.quota_reconcile_interval_seconds > 0:
        maintenance = QuotaMaintenanceService(database.session_factory, quota_service, engine)
        await maintenance.start()

    logger.info("Application startup complete")

    try:
        yield
    finally:
        if maintenance:
            await maintenance.stop()
        # Running flows settle their quota before the engine goes away
        await engine.wait_idle()
        await database.close()
        logger.info("Application shutdown")


def create_app(
    root_path: str = "/",
    database: DatabaseManager | None = None,
    registry: ProviderRegistry | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        root_path: The root path for the application
        database: Database manager; defaults to the process-wide one
        registry: Provider registry; built from settings when omitted

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Pipeflow",
        description="Workflow pipelines with quota-accounted execution",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
        root_path=root_path,
    )
    app.state.database = database or db_manager
    app.state.provider_registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    app.include_router(pipeline.router, prefix="/api/pipelines", tags=["Pipelines"])
    app.include_router(feature.router, prefix="/api/features", tags=["Features"])
    app.include_router(task.router, prefix="/api/tasks", tags=["Tasks"])
    app.include_router(quota.router, prefix="/api/quota", tags=["Quota"])

    return app


# Create default application instance
app = create_app(root_path=settings.root_url)
