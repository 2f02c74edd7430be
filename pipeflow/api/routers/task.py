"""
Task router for Pipeflow.

Tasks are created here and then polled; the pipeline itself runs in the
background and its progress is only visible through the task and step rows.
"""

from collections.abc import Sequence

from fastapi import APIRouter, Query, status

from pipeflow.api.dependencies import AccountIdDep, TaskServiceDep
from pipeflow.models.task import Task, TaskCreate, TaskRead, TaskStep, TaskStepRead

router = APIRouter(
    responses={
        404: {"description": "Not found"},
        403: {"description": "Quota refused"},
    },
)


@router.post("", response_model=TaskRead, status_code=status.HTTP_202_ACCEPTED)
async def create_task(
    data: TaskCreate,
    account_id: AccountIdDep,
    service: TaskServiceDep,
) -> Task:
    """Reserve quota and start a task for the calling account.

    Raises:
        QuotaError: If the account can't pay for the feature (→ 403/404 with code).
        FeatureDisabledError: If the feature is disabled (→ 409).
    """
    return await service.create_by_feature(account_id, data.feature_id, data.input_data)


@router.get("", response_model=list[TaskRead])
async def list_tasks(
    account_id: AccountIdDep,
    service: TaskServiceDep,
    limit: int = Query(100, ge=1, le=1000),
) -> Sequence[Task]:
    """List the calling account's tasks, newest first."""
    return await service.list_tasks(account_id, limit=limit)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(task_id: str, service: TaskServiceDep) -> Task:
    return await service.get_task(task_id)


@router.get("/{task_id}/steps", response_model=list[TaskStepRead])
async def get_task_steps(task_id: str, service: TaskServiceDep) -> list[TaskStep]:
    return await service.get_task_steps(task_id)
