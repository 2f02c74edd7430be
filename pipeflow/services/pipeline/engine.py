"""
Sequential pipeline execution engine.

Runs the stored steps of a feature's pipeline one after another, dispatching
each to its provider with retry and timeout, and persists every transition of
the Task and its TaskStep rows. The quota reservation made for the task is
confirmed on success and cancelled on any failure.

Example:
    engine = PipelineEngine(db_manager.session_factory, registry, quota_service)
    engine.launch(task.id, task.feature_id, task.input_data)
    ...
    await engine.wait_idle()
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pipeflow.exceptions.domain import (
    EntityNotFoundError,
    PipelineConfigError,
    PipelineError,
    PipelineStepError,
    ProviderNotFoundError,
    StepTimeoutError,
)
from pipeflow.models.pipeline_definition import PipelineStep
from pipeflow.models.task import TaskStep
from pipeflow.repositories.feature_repository import FeatureRepository
from pipeflow.repositories.pipeline_definition_repository import PipelineDefinitionRepository
from pipeflow.repositories.task_repository import TaskRepository, TaskStepRepository
from pipeflow.services.quota_service import QuotaService
from pipeflow.settings import Settings
from pipeflow.settings import settings as default_settings
from pipeflow.utils.logger import task_logger

from .registry import Provider, ProviderOutput, ProviderRegistry


def normalize_output(raw: ProviderOutput | Any) -> dict[str, Any]:
    """Coerce a provider result into the dict shape stored and passed downstream."""
    if isinstance(raw, dict):
        return raw
    return {"result": raw}


class PipelineEngine:
    """Executes tasks against their stored linear pipelines.

    Dependencies are injected and live for the whole process.

    Args:
        session_factory: Factory producing async sessions.
        registry: Provider lookup, fully populated before the first task runs.
        quota_service: Saga coordinator settling the task's reservation.
        settings: Source of step defaults for stored steps that omit them.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: ProviderRegistry,
        quota_service: QuotaService,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.quota_service = quota_service
        self.settings = settings or default_settings
        self._running: set[asyncio.Task[None]] = set()

    def launch(self, task_id: str, feature_id: str, input_data: dict[str, Any]) -> asyncio.Task[None]:
        """Start a task's flow in the background and return immediately."""
        flow = asyncio.create_task(
            self.execute_pipeline(task_id, feature_id, input_data), name=f"pipeline:{task_id}"
        )
        # The event loop keeps only weak references to tasks
        self._running.add(flow)
        flow.add_done_callback(self._running.discard)
        return flow

    @property
    def running_count(self) -> int:
        return len(self._running)

    async def wait_idle(self) -> None:
        """Wait until every launched flow has finished."""
        while self._running:
            flows = list(self._running)
            await asyncio.gather(*flows, return_exceptions=True)
            self._running.difference_update(flows)

    async def execute_pipeline(
        self, task_id: str, feature_id: str, input_data: dict[str, Any]
    ) -> None:
        """Run a pending task to a terminal state.

        Never raises: every failure ends up as a ``failed`` task plus a
        cancelled reservation, and success as a ``success`` task plus a
        confirmed reservation.
        """
        log = task_logger(task_id)
        log.info(f"Starting pipeline for feature '{feature_id}'")
        try:
            await self._execute(task_id, feature_id, input_data)
        except Exception as e:
            log.error(f"Pipeline failed: {e}")
            await self._mark_task_failed(task_id, str(e))
            await self._settle("cancel", self.quota_service.cancel, task_id)
            return

        log.info("Pipeline completed")
        await self._settle("confirm", self.quota_service.confirm, task_id)

    async def _execute(self, task_id: str, feature_id: str, input_data: dict[str, Any]) -> None:
        async with self.session_factory() as session:
            steps = await self._load_steps(session, feature_id)

            tasks = TaskRepository(session)
            step_rows = TaskStepRepository(session)

            task = await tasks.get(task_id)
            await tasks.mark_processing(task)
            rows = await step_rows.create_for_pipeline(task_id, steps, input_data)

            current = input_data
            for index, (step, row) in enumerate(zip(steps, rows, strict=True)):
                current = await self._run_step(step_rows, row, step, index, current, task_id)

            await tasks.mark_success(task, current)

    async def _load_steps(self, session: AsyncSession, feature_id: str) -> list[PipelineStep]:
        try:
            feature = await FeatureRepository(session).get(feature_id)
            pipeline = await PipelineDefinitionRepository(session).get(feature.pipeline_id)
        except EntityNotFoundError as e:
            raise PipelineConfigError(str(e)) from e

        steps = pipeline.parsed_steps(self._step_defaults())
        if not steps:
            raise PipelineConfigError(f"Pipeline '{pipeline.pipeline_id}' has no steps")
        return steps

    def _step_defaults(self) -> dict[str, Any]:
        return {
            "timeout_ms": self.settings.pipeline_default_timeout_ms,
            "retry_policy": {
                "max_retries": self.settings.pipeline_default_max_retries,
                "retry_delay_ms": self.settings.pipeline_default_retry_delay_ms,
            },
        }

    async def _run_step(
        self,
        step_rows: TaskStepRepository,
        row: TaskStep,
        step: PipelineStep,
        index: int,
        input_data: dict[str, Any],
        task_id: str,
    ) -> dict[str, Any]:
        step_id = row.id
        try:
            return await self._dispatch_step(step_rows, row, step, index, input_data, task_id)
        except PipelineError:
            raise
        except Exception as e:
            # A write on the flow session failed; record the step outcome on a fresh one
            await step_rows.session.rollback()
            await self._mark_step_failed(task_id, step_id, str(e))
            raise

    async def _dispatch_step(
        self,
        step_rows: TaskStepRepository,
        row: TaskStep,
        step: PipelineStep,
        index: int,
        input_data: dict[str, Any],
        task_id: str,
    ) -> dict[str, Any]:
        log = task_logger(task_id, step=index + 1)
        row = await step_rows.mark_processing(row, input_data)

        try:
            provider = self.registry.get_provider(step.type, step.provider_ref)
        except ProviderNotFoundError as e:
            await step_rows.mark_failed(row, str(e), attempts=0)
            raise

        attempts = step.retry_policy.max_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                output = await self._attempt(provider, input_data, task_id, index, step.timeout_ms)
            except Exception as e:
                last_error = e
                log.warning(f"Attempt {attempt}/{attempts} of '{step.type}' failed: {e}")
                if attempt < attempts:
                    await step_rows.record_attempt_failure(row, str(e), attempt)
                    await asyncio.sleep(step.retry_policy.retry_delay_ms / 1000)
                continue

            await step_rows.mark_completed(row, output, attempt)
            log.info(f"'{step.type}' completed on attempt {attempt}")
            return output

        await step_rows.mark_failed(row, str(last_error), attempts)
        raise PipelineStepError(
            f"Step {index + 1} ({step.type}) failed after {attempts} attempt(s): {last_error}"
        ) from last_error

    async def _attempt(
        self,
        provider: Provider,
        input_data: dict[str, Any],
        task_id: str,
        index: int,
        timeout_ms: int,
    ) -> dict[str, Any]:
        # On timeout the provider coroutine is cancelled and its result never observed
        try:
            async with asyncio.timeout(timeout_ms / 1000):
                raw = await provider.execute(input_data, task_id)
        except TimeoutError as e:
            raise StepTimeoutError(index, timeout_ms) from e
        return normalize_output(raw)

    async def _mark_task_failed(self, task_id: str, error_message: str) -> None:
        try:
            async with self.session_factory() as session:
                tasks = TaskRepository(session)
                task = await tasks.get(task_id)
                await tasks.mark_failed(task, error_message)
        except Exception as e:
            task_logger(task_id).error(f"Could not persist failure state: {e}")

    async def _mark_step_failed(self, task_id: str, step_id: int, error_message: str) -> None:
        try:
            async with self.session_factory() as session:
                step_rows = TaskStepRepository(session)
                row = await step_rows.get(step_id)
                await step_rows.mark_failed(row, error_message, row.retry_count)
        except Exception as e:
            task_logger(task_id).error(f"Could not persist step failure: {e}")

    async def _settle(
        self, action: str, operation: Callable[[str], Awaitable[bool]], task_id: str
    ) -> None:
        try:
            await operation(task_id)
        except Exception as e:
            # Left reserved; the reconcile sweep settles it later
            task_logger(task_id).error(f"Quota {action} failed: {e}")
