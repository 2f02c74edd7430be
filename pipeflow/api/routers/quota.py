"""Quota API router: balance display and saga debugging."""

from fastapi import APIRouter

from pipeflow.api.dependencies import QuotaServiceDep
from pipeflow.exceptions.domain import EntityNotFoundError
from pipeflow.models.quota import QuotaInfo, QuotaTransactionStatus, ReconcileReport

router = APIRouter()


@router.get("/transactions/{task_id}", response_model=QuotaTransactionStatus)
async def get_transaction_status(task_id: str, service: QuotaServiceDep) -> QuotaTransactionStatus:
    """Get the quota transaction of a task.

    Raises:
        EntityNotFoundError: If the task has no transaction (→ 404).
    """
    transaction = await service.get_transaction_status(task_id)
    if transaction is None:
        raise EntityNotFoundError(f"No quota transaction for task '{task_id}'")
    return transaction


@router.post("/reconcile", response_model=ReconcileReport)
async def reconcile(service: QuotaServiceDep) -> ReconcileReport:
    """Settle reservations whose task already finished."""
    return await service.reconcile()


@router.get("/{account_id}", response_model=QuotaInfo)
async def get_quota(account_id: str, service: QuotaServiceDep) -> QuotaInfo:
    """Get remaining balance and entitlement.

    Raises:
        AccountNotFoundError: If the account doesn't exist (→ 404, code ``ACCOUNT_NOT_FOUND``).
    """
    return await service.get_quota(account_id)
