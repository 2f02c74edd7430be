"""
Exceptions for Pipeflow.

Domain exceptions live in :mod:`pipeflow.exceptions.domain` and are re-exported here.
"""

from .domain import (
    AccountNotFoundError,
    BusinessRuleViolationError,
    EntityAlreadyExistsError,
    EntityNotFoundError,
    FeatureAlreadyExistsError,
    FeatureDisabledError,
    FeatureNotFoundError,
    NotMemberError,
    PipeflowError,
    PipelineConfigError,
    PipelineError,
    PipelineNotFoundError,
    PipelineStepError,
    PipelineValidationError,
    ProviderNotFoundError,
    QuotaError,
    QuotaInsufficientError,
    QuotaTransactionExistsError,
    StepTimeoutError,
    TaskNotFoundError,
    ValidationError,
)

__all__ = [
    "AccountNotFoundError",
    "BusinessRuleViolationError",
    "EntityAlreadyExistsError",
    "EntityNotFoundError",
    "FeatureAlreadyExistsError",
    "FeatureDisabledError",
    "FeatureNotFoundError",
    "NotMemberError",
    "PipeflowError",
    "PipelineConfigError",
    "PipelineError",
    "PipelineNotFoundError",
    "PipelineStepError",
    "PipelineValidationError",
    "ProviderNotFoundError",
    "QuotaError",
    "QuotaInsufficientError",
    "QuotaTransactionExistsError",
    "StepTimeoutError",
    "TaskNotFoundError",
    "ValidationError",
]
