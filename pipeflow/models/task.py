"""
Task-related models for Pipeflow.

This module provides models for tasks (one execution of a pipeline)
and their per-step execution records.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import UniqueConstraint
from sqlmodel import JSON, Column, Field, SQLModel

from .base import StepStatus, TaskStatus, utcnow

ERROR_MESSAGE_MAX_LENGTH = 3000


class TaskBase(SQLModel):
    """Base model for task data."""

    account_id: str = Field(index=True, max_length=100)
    feature_id: str = Field(index=True, max_length=100)
    status: TaskStatus = TaskStatus.pending
    error_message: str | None = Field(default=None, max_length=ERROR_MESSAGE_MAX_LENGTH)


class Task(TaskBase, table=True):
    """One execution of a stored pipeline for one account."""

    __tablename__ = "task"

    id: str = Field(primary_key=True, max_length=64)
    input_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    output_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class TaskCreate(SQLModel):
    """Payload for requesting a new task."""

    feature_id: str = Field(min_length=1, max_length=100)
    input_data: dict[str, Any] = Field(default_factory=dict)


class TaskRead(TaskBase):
    """API response schema for tasks."""

    id: str
    input_data: dict[str, Any]
    output_data: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None
    completed_at: datetime | None


class TaskStepBase(SQLModel):
    """Base model for task step data."""

    task_id: str = Field(foreign_key="task.id", index=True)
    step_index: int = Field(ge=0)
    type: str
    provider_ref: str = ""
    status: StepStatus = StepStatus.pending
    error_message: str | None = Field(default=None, max_length=ERROR_MESSAGE_MAX_LENGTH)
    retry_count: int = 0


class TaskStep(TaskStepBase, table=True):
    """Execution record of one pipeline step; mutated in place across retries."""

    __tablename__ = "task_step"
    __table_args__ = (UniqueConstraint("task_id", "step_index", name="uq_task_step_index"),)

    id: int | None = Field(default=None, primary_key=True)
    input: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    output: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class TaskStepRead(TaskStepBase):
    """API response schema for task steps."""

    id: int
    input: dict[str, Any] | None
    output: dict[str, Any] | None
    started_at: datetime | None
    completed_at: datetime | None
