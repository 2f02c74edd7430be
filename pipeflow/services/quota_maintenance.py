"""
Background service keeping the quota ledger consistent with task state.

Each run fails tasks that never left ``pending``, settles reservations whose
task already reached a terminal state and deletes old settled transactions.
"""

import asyncio
import contextlib

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pipeflow.repositories.feature_repository import FeatureRepository
from pipeflow.repositories.task_repository import TaskRepository, TaskStepRepository
from pipeflow.services.pipeline.engine import PipelineEngine
from pipeflow.services.quota_service import QuotaService
from pipeflow.services.task_service import TaskService
from pipeflow.settings import settings
from pipeflow.utils.logger import logger


class MaintenanceReport(BaseModel):
    """Counts produced by one maintenance run."""

    stale_tasks_failed: int = 0
    reservations_cancelled: int = 0
    reservations_confirmed: int = 0
    transactions_deleted: int = 0


class QuotaMaintenanceService:
    """Periodic reconcile loop for the quota saga."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        quota_service: QuotaService,
        engine: PipelineEngine,
        interval: int | None = None,
    ):
        """Initialize the maintenance service.

        Args:
            session_factory: Factory producing async sessions
            quota_service: Saga coordinator to reconcile
            engine: Engine owning the running flows
            interval: Seconds between runs
        """
        self.session_factory = session_factory
        self.quota_service = quota_service
        self.engine = engine
        self.interval = interval or settings.quota_reconcile_interval_seconds
        self.is_running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the maintenance loop."""
        if self.is_running:
            logger.warning("Quota maintenance service already running")
            return

        self.is_running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Quota maintenance service started (every {self.interval}s)")

    async def stop(self) -> None:
        """Stop the maintenance loop."""
        self.is_running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        logger.info("Quota maintenance service stopped")

    async def _loop(self) -> None:
        while self.is_running:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval)
            except Exception as e:
                logger.error(f"Error in quota maintenance: {e}")
                await asyncio.sleep(60)  # Retry after 1 minute on error

    async def run_once(self) -> MaintenanceReport:
        """Perform a single maintenance run."""
        report = MaintenanceReport()

        async with self.session_factory() as session:
            task_service = TaskService(
                TaskRepository(session),
                TaskStepRepository(session),
                FeatureRepository(session),
                self.quota_service,
                self.engine,
            )
            report.stale_tasks_failed = await task_service.fail_stale_pending_tasks(
                settings.task_pending_timeout_minutes
            )

        reconciled = await self.quota_service.reconcile()
        report.reservations_cancelled = reconciled.cancelled
        report.reservations_confirmed = reconciled.confirmed
        report.transactions_deleted = await self.quota_service.cleanup_expired_transactions(
            settings.quota_transaction_retention_hours
        )

        logger.debug(f"Quota maintenance run: {report.model_dump()}")
        return report
