"""
Quota saga coordinator.

A task reserves quota before it runs, and the reservation is later either
confirmed (task succeeded) or cancelled (task failed, amount refunded).
Confirm and cancel are idempotent: they only act on a row still in the
``reserved`` phase, so repeated or late calls are harmless.

Example:
    quota = QuotaService(db_manager.session_factory)
    await quota.reserve("acct-1", task_id, 3)
    ...
    await quota.confirm(task_id)
"""

import asyncio
import weakref
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pipeflow.exceptions.domain import (
    AccountNotFoundError,
    NotMemberError,
    QuotaInsufficientError,
    QuotaTransactionExistsError,
)
from pipeflow.models.base import QuotaPhase, TaskStatus, utcnow
from pipeflow.models.quota import QuotaInfo, QuotaTransactionStatus, ReconcileReport
from pipeflow.repositories.quota_repository import QuotaRepository
from pipeflow.utils.logger import logger


class QuotaService:
    """Reserve / confirm / cancel coordinator over the quota ledger.

    Each operation runs in its own short transaction on a fresh session, so it
    can be called from request handlers and background flows alike.

    Args:
        session_factory: Factory producing async sessions.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        # Serializes reservations per account within this process; the row lock
        # and the conditional debit cover other processes. A lock lives only while
        # some reservation holds or awaits it.
        self._account_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _account_lock(self, account_id: str) -> asyncio.Lock:
        lock = self._account_locks.get(account_id)
        if lock is None:
            lock = asyncio.Lock()
            self._account_locks[account_id] = lock
        return lock

    async def reserve(self, account_id: str, task_id: str, amount: int) -> int:
        """Debit ``amount`` from the account and record a ``reserved`` transaction.

        Args:
            account_id: Account to charge.
            task_id: Task the reservation belongs to; at most one per task.
            amount: Non-negative quota units.

        Returns:
            Remaining balance after the debit.

        Raises:
            AccountNotFoundError: If the account doesn't exist.
            NotMemberError: If the account has no active entitlement.
            QuotaInsufficientError: If the balance doesn't cover ``amount``.
            QuotaTransactionExistsError: If the task already has a transaction.
        """
        if amount < 0:
            raise ValueError(f"Quota amount must be non-negative, got {amount}")

        async with self._account_lock(account_id), self.session_factory() as session:
            async with session.begin():
                repo = QuotaRepository(session)

                account = await repo.get_account(account_id, for_update=True)
                if account is None:
                    raise AccountNotFoundError(account_id)
                if not account.has_active_entitlement():
                    raise NotMemberError(account_id)
                if account.balance < amount:
                    raise QuotaInsufficientError(account_id, account.balance, amount)
                if await repo.get_transaction(task_id) is not None:
                    raise QuotaTransactionExistsError(task_id)

                if not await repo.debit(account_id, amount):
                    # Balance changed under us (another process); report what is left now
                    await session.refresh(account)
                    raise QuotaInsufficientError(account_id, account.balance, amount)

                repo.add_reservation(account_id, task_id, amount)
                remaining = account.balance - amount

        logger.info(
            f"Reserved {amount} quota for task {task_id} "
            f"(account {account_id}, remaining {remaining})"
        )
        return remaining

    async def confirm(self, task_id: str) -> bool:
        """Finalize a reservation. No-op unless the task's row is ``reserved``.

        Returns:
            True if this call confirmed the reservation.
        """
        async with self.session_factory() as session, session.begin():
            confirmed = await QuotaRepository(session).settle(task_id, QuotaPhase.confirmed)

        if confirmed:
            logger.info(f"Confirmed quota for task {task_id}")
        else:
            logger.debug(f"No open reservation to confirm for task {task_id}")
        return confirmed

    async def cancel(self, task_id: str) -> bool:
        """Refund a reservation. No-op unless the task's row is ``reserved``.

        The phase flip and the refund commit together, so the amount is
        restored at most once.

        Returns:
            True if this call refunded the reservation.
        """
        async with self.session_factory() as session, session.begin():
            repo = QuotaRepository(session)
            transaction = await repo.get_reserved(task_id, for_update=True)
            if transaction is None:
                logger.debug(f"No open reservation to cancel for task {task_id}")
                return False

            if not await repo.settle(task_id, QuotaPhase.cancelled):
                return False
            await repo.credit(transaction.account_id, transaction.amount)
            account_id, amount = transaction.account_id, transaction.amount

        logger.info(f"Cancelled quota for task {task_id}: refunded {amount} to account {account_id}")
        return True

    async def get_quota(self, account_id: str) -> QuotaInfo:
        """Current balance and entitlement.

        Raises:
            AccountNotFoundError: If the account doesn't exist.
        """
        async with self.session_factory() as session:
            account = await QuotaRepository(session).get_account(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            return QuotaInfo(
                account_id=account.account_id,
                remaining=account.balance,
                is_member=account.is_member,
                expires_at=account.expires_at,
            )

    async def check_quota(self, account_id: str, amount: int) -> bool:
        """Advisory pre-check; only :meth:`reserve` is authoritative."""
        async with self.session_factory() as session:
            account = await QuotaRepository(session).get_account(account_id)
        if account is None:
            return False
        return account.has_active_entitlement() and account.balance >= amount

    async def get_transaction_status(self, task_id: str) -> QuotaTransactionStatus | None:
        async with self.session_factory() as session:
            transaction = await QuotaRepository(session).get_transaction(task_id)
        if transaction is None:
            return None
        return QuotaTransactionStatus.model_validate(transaction, from_attributes=True)

    async def reconcile(self) -> ReconcileReport:
        """Settle reservations left open by flows that died before settling.

        Reservations of ``failed`` tasks are cancelled and those of
        ``success`` tasks confirmed; reservations of live tasks are untouched.
        """
        async with self.session_factory() as session:
            repo = QuotaRepository(session)
            to_cancel = await repo.list_reserved_for_task_status(TaskStatus.failed)
            to_confirm = await repo.list_reserved_for_task_status(TaskStatus.success)

        report = ReconcileReport()
        for task_id in to_cancel:
            if await self.cancel(task_id):
                report.cancelled += 1
        for task_id in to_confirm:
            if await self.confirm(task_id):
                report.confirmed += 1

        if report.cancelled or report.confirmed:
            logger.warning(
                f"Quota reconcile settled {report.cancelled} cancelled and "
                f"{report.confirmed} confirmed reservation(s)"
            )
        return report

    async def cleanup_expired_transactions(self, hours: int = 24) -> int:
        """Delete settled transactions older than ``hours``.

        Returns:
            Number of deleted rows.
        """
        cutoff = utcnow() - timedelta(hours=hours)
        async with self.session_factory() as session, session.begin():
            deleted = await QuotaRepository(session).delete_settled_before(cutoff)

        if deleted:
            logger.info(f"Deleted {deleted} settled quota transaction(s) older than {hours}h")
        return deleted
