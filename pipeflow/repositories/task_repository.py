"""Repositories for tasks and their step records.

Every state transition commits immediately so pollers observe monotonically
advancing state.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from pipeflow.exceptions.domain import TaskNotFoundError
from pipeflow.models.base import StepStatus, TaskStatus, utcnow
from pipeflow.models.pipeline_definition import PipelineStep
from pipeflow.models.task import ERROR_MESSAGE_MAX_LENGTH, Task, TaskStep
from pipeflow.repositories.base import BaseRepository


def clip_error(message: str) -> str:
    """Cut an error message down to what the `error_message` column holds."""
    if len(message) <= ERROR_MESSAGE_MAX_LENGTH:
        return message
    return message[: ERROR_MESSAGE_MAX_LENGTH - 3] + "..."


class TaskRepository(BaseRepository[Task]):
    """Repository for Task model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize task repository with session."""
        super().__init__(session, Task)

    async def get(self, task_id: str) -> Task:
        """Get task by ID.

        Args:
            task_id: Task ID

        Returns:
            Found task

        Raises:
            TaskNotFoundError: If task doesn't exist
        """
        task = await self.session.get(Task, task_id)
        if not task:
            raise TaskNotFoundError(task_id)
        return task

    async def list_for_account(self, account_id: str, limit: int = 100) -> Sequence[Task]:
        statement = (
            select(Task)
            .where(Task.account_id == account_id)
            .order_by(col(Task.created_at).desc())
            .limit(limit)
        )
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def list_stale_pending(self, created_before: datetime) -> Sequence[Task]:
        """Tasks still ``pending`` that were created before the cutoff."""
        statement = select(Task).where(
            Task.status == TaskStatus.pending, col(Task.created_at) < created_before
        )
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def mark_processing(self, task: Task) -> Task:
        return await self.update(task, {"status": TaskStatus.processing, "started_at": utcnow()})

    async def mark_success(self, task: Task, output: dict[str, Any]) -> Task:
        return await self.update(
            task,
            {
                "status": TaskStatus.success,
                "output_data": output,
                "error_message": None,
                "completed_at": utcnow(),
            },
        )

    async def mark_failed(self, task: Task, error_message: str) -> Task:
        return await self.update(
            task,
            {
                "status": TaskStatus.failed,
                "error_message": clip_error(error_message),
                "completed_at": utcnow(),
            },
        )


class TaskStepRepository(BaseRepository[TaskStep]):
    """Repository for TaskStep model operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, TaskStep)

    async def create_for_pipeline(
        self, task_id: str, steps: list[PipelineStep], first_input: dict[str, Any]
    ) -> list[TaskStep]:
        """Bulk-create one ``pending`` row per pipeline step.

        Args:
            task_id: Owning task.
            steps: The linearized pipeline.
            first_input: Input of the first step; later inputs are filled in at run time.

        Returns:
            Created rows ordered by step index.
        """
        rows = [
            TaskStep(
                task_id=task_id,
                step_index=index,
                type=step.type,
                provider_ref=step.provider_ref,
                status=StepStatus.pending,
                input=first_input if index == 0 else None,
            )
            for index, step in enumerate(steps)
        ]
        return await self.create_many(rows)

    async def list_for_task(self, task_id: str) -> Sequence[TaskStep]:
        statement = (
            select(TaskStep).where(TaskStep.task_id == task_id).order_by(col(TaskStep.step_index))
        )
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def mark_processing(self, step: TaskStep, input_data: dict[str, Any]) -> TaskStep:
        return await self.update(
            step, {"status": StepStatus.processing, "input": input_data, "started_at": utcnow()}
        )

    async def record_attempt_failure(
        self, step: TaskStep, error_message: str, attempt: int
    ) -> TaskStep:
        """Record a failed attempt that will be retried; the row stays ``processing``."""
        return await self.update(
            step, {"error_message": clip_error(error_message), "retry_count": attempt}
        )

    async def mark_completed(self, step: TaskStep, output: dict[str, Any], attempt: int) -> TaskStep:
        return await self.update(
            step,
            {
                "status": StepStatus.completed,
                "output": output,
                "error_message": None,
                "retry_count": attempt - 1,
                "completed_at": utcnow(),
            },
        )

    async def mark_failed(self, step: TaskStep, error_message: str, attempts: int) -> TaskStep:
        return await self.update(
            step,
            {
                "status": StepStatus.failed,
                "error_message": clip_error(error_message),
                "retry_count": attempts,
                "completed_at": utcnow(),
            },
        )
