"""
Common dependencies for Pipeflow API endpoints.

Services are built per request from the request's database session and the
process-scoped objects the lifespan placed on ``app.state``.
"""

from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..repositories import (
    FeatureRepository,
    PipelineDefinitionRepository,
    TaskRepository,
    TaskStepRepository,
)
from ..services.feature_service import FeatureService
from ..services.pipeline.engine import PipelineEngine
from ..services.quota_service import QuotaService
from ..services.task_service import TaskService
from ..utils.database import get_async_session


def get_quota_service(request: Request) -> QuotaService:
    return request.app.state.quota_service


def get_pipeline_engine(request: Request) -> PipelineEngine:
    return request.app.state.pipeline_engine


async def get_account_id(
    x_account_id: Annotated[str, Header(min_length=1, max_length=100)],
) -> str:
    """
    Get the calling account from the ``X-Account-Id`` header.

    Authentication happens upstream; this service trusts the header.
    """
    return x_account_id


async def get_feature_service(
    session: AsyncSession = Depends(get_async_session),
) -> FeatureService:
    return FeatureService(FeatureRepository(session), PipelineDefinitionRepository(session))


async def get_task_service(
    session: AsyncSession = Depends(get_async_session),
    quota_service: QuotaService = Depends(get_quota_service),
    engine: PipelineEngine = Depends(get_pipeline_engine),
) -> TaskService:
    return TaskService(
        TaskRepository(session),
        TaskStepRepository(session),
        FeatureRepository(session),
        quota_service,
        engine,
    )


AccountIdDep = Annotated[str, Depends(get_account_id)]
FeatureServiceDep = Annotated[FeatureService, Depends(get_feature_service)]
TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]
QuotaServiceDep = Annotated[QuotaService, Depends(get_quota_service)]
