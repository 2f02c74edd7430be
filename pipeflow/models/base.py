"""
Base models for Pipeflow.

This module provides the status enumerations and common helpers
used throughout the Pipeflow models.
"""

import enum
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form every backend stores."""
    return datetime.now(UTC).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are returned as-is."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class TaskStatus(str, enum.Enum):
    """Enumeration of possible task status values."""

    pending = "pending"
    processing = "processing"
    success = "success"
    failed = "failed"


class StepStatus(str, enum.Enum):
    """Enumeration of possible task step status values."""

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class QuotaPhase(str, enum.Enum):
    """Saga phase of a quota transaction."""

    reserved = "reserved"
    confirmed = "confirmed"
    cancelled = "cancelled"
