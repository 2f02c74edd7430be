"""Repository for the quota ledger.

Unlike the other repositories these methods never commit: every saga step
runs inside a transaction owned by :class:`~pipeflow.services.quota_service.QuotaService`.
"""

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from pipeflow.models.base import QuotaPhase, TaskStatus, utcnow
from pipeflow.models.quota import QuotaAccount, QuotaTransaction
from pipeflow.models.task import Task


class QuotaRepository:
    """Row-level access to quota accounts and quota transactions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_account(self, account_id: str, for_update: bool = False) -> QuotaAccount | None:
        """Load an account row, optionally holding a row lock until the transaction ends."""
        statement = select(QuotaAccount).where(QuotaAccount.account_id == account_id)
        if for_update:
            statement = statement.with_for_update()
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def debit(self, account_id: str, amount: int) -> bool:
        """Decrement the balance only if it covers ``amount``.

        Returns:
            True if a row was updated.
        """
        statement = (
            update(QuotaAccount)
            .where(col(QuotaAccount.account_id) == account_id, col(QuotaAccount.balance) >= amount)
            .values(balance=QuotaAccount.balance - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(statement)
        return result.rowcount == 1

    async def credit(self, account_id: str, amount: int) -> None:
        statement = (
            update(QuotaAccount)
            .where(col(QuotaAccount.account_id) == account_id)
            .values(balance=QuotaAccount.balance + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(statement)

    async def get_transaction(self, task_id: str) -> QuotaTransaction | None:
        statement = select(QuotaTransaction).where(QuotaTransaction.task_id == task_id)
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def get_reserved(self, task_id: str, for_update: bool = False) -> QuotaTransaction | None:
        """Load the task's transaction only while it is still ``reserved``."""
        statement = select(QuotaTransaction).where(
            QuotaTransaction.task_id == task_id,
            QuotaTransaction.phase == QuotaPhase.reserved,
        )
        if for_update:
            statement = statement.with_for_update()
        result = await self.session.execute(statement)
        return result.scalars().first()

    def add_reservation(self, account_id: str, task_id: str, amount: int) -> QuotaTransaction:
        transaction = QuotaTransaction(
            task_id=task_id, account_id=account_id, amount=amount, phase=QuotaPhase.reserved
        )
        self.session.add(transaction)
        return transaction

    async def settle(self, task_id: str, phase: QuotaPhase) -> bool:
        """Move a ``reserved`` row to its terminal phase.

        The phase guard in the WHERE clause makes the transition happen at most once.

        Returns:
            True if this call performed the transition.
        """
        statement = (
            update(QuotaTransaction)
            .where(
                col(QuotaTransaction.task_id) == task_id,
                col(QuotaTransaction.phase) == QuotaPhase.reserved,
            )
            .values(phase=phase, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(statement)
        return result.rowcount == 1

    async def list_reserved_for_task_status(self, status: TaskStatus) -> Sequence[str]:
        """Task ids whose reservation is still open although the task reached ``status``."""
        statement = (
            select(QuotaTransaction.task_id)
            .join(Task, col(Task.id) == col(QuotaTransaction.task_id))
            .where(QuotaTransaction.phase == QuotaPhase.reserved, Task.status == status)
        )
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def delete_settled_before(self, cutoff: datetime) -> int:
        statement = delete(QuotaTransaction).where(
            col(QuotaTransaction.created_at) < cutoff,
            col(QuotaTransaction.phase).in_([QuotaPhase.confirmed, QuotaPhase.cancelled]),
        )
        result = await self.session.execute(statement)
        return result.rowcount or 0
