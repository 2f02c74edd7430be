"""Quota ledger models: per-account balances and the saga transaction log."""

from datetime import datetime

from pydantic import BaseModel
from sqlmodel import Field, SQLModel

from .base import QuotaPhase, as_naive_utc, utcnow


class QuotaAccountBase(SQLModel):
    """Shared fields for quota accounts."""

    balance: int = Field(default=0, ge=0)
    is_member: bool = False
    expires_at: datetime | None = None


class QuotaAccount(QuotaAccountBase, table=True):
    """Per-account remaining balance and entitlement."""

    __tablename__ = "quota_account"

    account_id: str = Field(primary_key=True, max_length=100)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def has_active_entitlement(self, now: datetime | None = None) -> bool:
        """True when the account is a member whose entitlement has not expired."""
        if not self.is_member:
            return False
        if self.expires_at is None:
            return True
        return as_naive_utc(self.expires_at) > as_naive_utc(now or utcnow())


class QuotaTransaction(SQLModel, table=True):
    """One reservation per task; phase moves reserved -> confirmed | cancelled."""

    __tablename__ = "quota_transaction"

    id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(unique=True, index=True, max_length=64)
    account_id: str = Field(foreign_key="quota_account.account_id", index=True)
    amount: int = Field(ge=0)
    phase: QuotaPhase = QuotaPhase.reserved
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class QuotaInfo(BaseModel):
    """Read-only balance view."""

    account_id: str
    remaining: int
    is_member: bool
    expires_at: datetime | None = None


class QuotaTransactionStatus(BaseModel):
    """Read-only view of a task's quota transaction, for debugging."""

    task_id: str
    account_id: str
    amount: int
    phase: QuotaPhase
    created_at: datetime
    updated_at: datetime


class ReconcileReport(BaseModel):
    """Counts produced by a reconciliation sweep."""

    cancelled: int = 0
    confirmed: int = 0
