"""Service layer for creating and inspecting tasks."""

from collections.abc import Sequence
from datetime import timedelta
from typing import Any
from uuid import uuid4

from pipeflow.exceptions.domain import FeatureDisabledError
from pipeflow.models.base import TaskStatus, utcnow
from pipeflow.models.task import Task, TaskStep
from pipeflow.repositories.feature_repository import FeatureRepository
from pipeflow.repositories.task_repository import TaskRepository, TaskStepRepository
from pipeflow.services.pipeline.engine import PipelineEngine
from pipeflow.services.quota_service import QuotaService
from pipeflow.utils.logger import logger


class TaskService:
    """Service for task-related business logic."""

    def __init__(
        self,
        task_repo: TaskRepository,
        step_repo: TaskStepRepository,
        feature_repo: FeatureRepository,
        quota_service: QuotaService,
        engine: PipelineEngine,
    ):
        """Initialize task service.

        Args:
            task_repo: Task repository instance
            step_repo: Task step repository instance
            feature_repo: Feature repository instance
            quota_service: Saga coordinator used to reserve quota
            engine: Engine the new task is handed to
        """
        self.task_repo = task_repo
        self.step_repo = step_repo
        self.feature_repo = feature_repo
        self.quota_service = quota_service
        self.engine = engine

    async def create_by_feature(
        self, account_id: str, feature_id: str, input_data: dict[str, Any]
    ) -> Task:
        """Reserve quota, create a pending task and start its pipeline.

        The reservation is made before the task row exists, so a task is never
        visible without its quota already held. If the insert fails the
        reservation is cancelled.

        Args:
            account_id: Account requesting the work
            feature_id: Feature to run
            input_data: Input of the first pipeline step

        Returns:
            The created task, still ``pending``

        Raises:
            FeatureNotFoundError: If the feature doesn't exist
            FeatureDisabledError: If the feature is disabled
            QuotaError: If quota can't be reserved
        """
        feature = await self.feature_repo.get(feature_id)
        if not feature.is_enabled:
            raise FeatureDisabledError(feature_id)

        task_id = uuid4().hex
        await self.quota_service.reserve(account_id, task_id, feature.quota_cost)

        try:
            task = await self.task_repo.create(
                Task(
                    id=task_id,
                    account_id=account_id,
                    feature_id=feature_id,
                    input_data=input_data,
                    status=TaskStatus.pending,
                )
            )
        except Exception:
            await self.task_repo.session.rollback()
            await self.quota_service.cancel(task_id)
            raise

        logger.info(f"Created task {task_id} for account {account_id} (feature '{feature_id}')")
        self.engine.launch(task.id, feature_id, dict(input_data))
        return task

    async def get_task(self, task_id: str) -> Task:
        """Get task by ID.

        Raises:
            TaskNotFoundError: If task doesn't exist
        """
        return await self.task_repo.get(task_id)

    async def get_task_steps(self, task_id: str) -> list[TaskStep]:
        """Step rows of a task ordered by index.

        Raises:
            TaskNotFoundError: If task doesn't exist
        """
        await self.task_repo.get(task_id)
        return list(await self.step_repo.list_for_task(task_id))

    async def list_tasks(self, account_id: str, limit: int = 100) -> Sequence[Task]:
        return await self.task_repo.list_for_account(account_id, limit=limit)

    async def fail_stale_pending_tasks(self, minutes: int = 10) -> int:
        """Fail tasks stuck in ``pending`` and refund their quota.

        A task stays pending only if its flow never started, e.g. the process
        died right after creating it.

        Returns:
            Number of tasks failed.
        """
        cutoff = utcnow() - timedelta(minutes=minutes)
        stale = await self.task_repo.list_stale_pending(cutoff)
        for task in stale:
            await self.task_repo.mark_failed(task, f"Task did not start within {minutes} minutes")
            await self.quota_service.cancel(task.id)

        if stale:
            logger.warning(f"Failed {len(stale)} stale pending task(s)")
        return len(stale)
