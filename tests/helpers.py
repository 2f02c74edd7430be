"""Fake providers and seed helpers shared by the test modules."""

import asyncio
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pipeflow.models import (
    Feature,
    PipelineDefinition,
    PipelineStep,
    QuotaAccount,
    RetryPolicy,
    Task,
    TaskStatus,
)

# ===================================================================
# Fake providers
# ===================================================================


class EchoProvider:
    """Returns its input under ``seen`` together with its name."""

    def __init__(self, name: str = "echo"):
        self.name = name
        self.calls: list[dict[str, Any]] = []

    async def execute(self, input_data: dict[str, Any], task_id: str) -> dict[str, Any]:
        self.calls.append(input_data)
        return {"step": self.name, "seen": input_data}


class FlakyProvider:
    """Fails the first ``failures`` calls, then succeeds reporting the attempt number."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def execute(self, input_data: dict[str, Any], task_id: str) -> dict[str, Any]:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"flaky failure #{self.calls}")
        return {"attempt": self.calls, "seen": input_data}


class SlowProvider:
    def __init__(self, delay: float):
        self.delay = delay
        self.finished = False

    async def execute(self, input_data: dict[str, Any], task_id: str) -> dict[str, Any]:
        await asyncio.sleep(self.delay)
        self.finished = True
        return {"slow": True}


class TextProvider:
    """Returns a bare string, as some providers do."""

    async def execute(self, input_data: dict[str, Any], task_id: str) -> str:
        return f"done:{task_id}"


class StampProvider:
    """Returns a value the JSON columns only store after conversion."""

    def __init__(self, at: datetime):
        self.at = at

    async def execute(self, input_data: dict[str, Any], task_id: str) -> dict[str, Any]:
        return {"at": self.at}


class VerboseFailureProvider:
    """Always fails with an error message of ``length`` characters."""

    def __init__(self, length: int):
        self.length = length

    async def execute(self, input_data: dict[str, Any], task_id: str) -> dict[str, Any]:
        raise RuntimeError("x" * self.length)


# ===================================================================
# Seed helpers
# ===================================================================


def make_step(
    step_type: str,
    max_retries: int = 0,
    retry_delay_ms: int = 0,
    timeout_ms: int = 5_000,
) -> PipelineStep:
    return PipelineStep(
        type=step_type,
        provider_ref=f"{step_type}-ref",
        timeout_ms=timeout_ms,
        retry_policy=RetryPolicy(max_retries=max_retries, retry_delay_ms=retry_delay_ms),
    )


async def add_account(
    session_factory: async_sessionmaker[AsyncSession],
    account_id: str = "acct-1",
    balance: int = 10,
    is_member: bool = True,
    expires_at: datetime | None = None,
) -> None:
    async with session_factory() as session:
        session.add(
            QuotaAccount(
                account_id=account_id, balance=balance, is_member=is_member, expires_at=expires_at
            )
        )
        await session.commit()


async def add_feature(
    session_factory: async_sessionmaker[AsyncSession],
    steps: list[PipelineStep],
    feature_id: str = "summarize",
    quota_cost: int = 1,
    is_enabled: bool = True,
) -> Feature:
    async with session_factory() as session:
        pipeline = PipelineDefinition(
            pipeline_id=f"{feature_id}@v1",
            name=feature_id,
            version=1,
            steps=[step.model_dump() for step in steps],
        )
        feature = Feature(
            feature_id=feature_id,
            display_name=feature_id.title(),
            quota_cost=quota_cost,
            is_enabled=is_enabled,
            pipeline_id=pipeline.pipeline_id,
        )
        session.add(pipeline)
        session.add(feature)
        await session.commit()
        return feature


async def add_pending_task(
    session_factory: async_sessionmaker[AsyncSession],
    task_id: str,
    account_id: str = "acct-1",
    feature_id: str = "summarize",
    input_data: dict[str, Any] | None = None,
    created_at: datetime | None = None,
) -> Task:
    task = Task(
        id=task_id,
        account_id=account_id,
        feature_id=feature_id,
        input_data=input_data or {},
        status=TaskStatus.pending,
    )
    if created_at is not None:
        task.created_at = created_at
    async with session_factory() as session:
        session.add(task)
        await session.commit()
        return task
