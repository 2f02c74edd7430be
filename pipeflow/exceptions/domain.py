"""
Domain exceptions for business logic layer.

These exceptions are used in repositories and services to represent
business logic errors without coupling to HTTP status codes.
"""


class PipeflowError(Exception):
    """Base exception for all Pipeflow-specific errors."""

    pass


# Base domain exceptions
class EntityNotFoundError(PipeflowError):
    """Raised when an entity is not found in the database."""

    pass


class EntityAlreadyExistsError(PipeflowError):
    """Raised when trying to create an entity that already exists."""

    pass


class ValidationError(PipeflowError):
    """Raised when data validation fails."""

    pass


class BusinessRuleViolationError(PipeflowError):
    """Raised when a business rule is violated."""

    pass


# Task-specific exceptions
class TaskNotFoundError(EntityNotFoundError):
    """Raised when a task is not found."""

    def __init__(self, task_id: str):
        super().__init__(f"Task with ID '{task_id}' not found")


# Feature / pipeline definition exceptions
class FeatureNotFoundError(EntityNotFoundError):
    """Raised when a feature is not found."""

    def __init__(self, feature_id: str):
        super().__init__(f"Feature with ID '{feature_id}' not found")


class FeatureAlreadyExistsError(EntityAlreadyExistsError):
    """Raised when trying to create a feature that already exists."""

    def __init__(self, feature_id: str):
        super().__init__(f"Feature with ID '{feature_id}' already exists")


class FeatureDisabledError(BusinessRuleViolationError):
    """Raised when a task is requested for a disabled feature."""

    def __init__(self, feature_id: str):
        super().__init__(f"Feature '{feature_id}' is disabled")


class PipelineNotFoundError(EntityNotFoundError):
    """Raised when a stored pipeline definition is not found."""

    def __init__(self, pipeline_id: str):
        super().__init__(f"Pipeline '{pipeline_id}' not found")


class PipelineValidationError(ValidationError):
    """Raised when an invalid workflow graph is submitted for persistence.

    Topology problems are normally reported as result lists; this exception
    only wraps them when a caller tries to store a graph that failed validation.
    """

    def __init__(self, errors: list[str], warnings: list[str] | None = None):
        self.errors = errors
        self.warnings = warnings or []
        super().__init__("Pipeline graph is invalid: " + "; ".join(errors))


# Pipeline execution exceptions
class PipelineError(PipeflowError):
    """Base exception for pipeline execution errors."""

    pass


class PipelineConfigError(PipelineError):
    """Raised for fatal configuration problems; never retried."""

    pass


class ProviderNotFoundError(PipelineConfigError):
    """Raised when no provider is registered for a step type."""

    def __init__(self, provider_type: str, provider_ref: str | None = None):
        self.provider_type = provider_type
        self.provider_ref = provider_ref
        ref = f" (ref '{provider_ref}')" if provider_ref else ""
        super().__init__(f"No provider registered for type '{provider_type}'{ref}")


class PipelineStepError(PipelineError):
    """Raised when a single provider attempt fails."""

    pass


class StepTimeoutError(PipelineStepError):
    """Raised when a provider attempt exceeds the step timeout."""

    def __init__(self, step_index: int, timeout_ms: int):
        self.step_index = step_index
        self.timeout_ms = timeout_ms
        super().__init__(f"Step {step_index + 1} timed out after {timeout_ms}ms")


# Quota exceptions
class QuotaError(BusinessRuleViolationError):
    """Base exception for quota reservation failures.

    Args:
        message: Human readable description
        code: Machine-readable error code
    """

    code: str = "QUOTA_ERROR"

    def __init__(self, message: str):
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Serialize the error for API responses."""
        return {"code": self.code, "detail": str(self)}


class AccountNotFoundError(QuotaError):
    """Raised when the account has no quota row."""

    code = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account '{account_id}' not found")


class NotMemberError(QuotaError):
    """Raised when the account has no active entitlement."""

    code = "NOT_MEMBER"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account '{account_id}' has no active membership")


class QuotaInsufficientError(QuotaError):
    """Raised when the balance cannot cover the requested amount."""

    code = "QUOTA_INSUFFICIENT"

    def __init__(self, account_id: str, remaining: int, requested: int):
        self.account_id = account_id
        self.remaining = remaining
        self.requested = requested
        super().__init__(
            f"Insufficient quota for account '{account_id}': "
            f"remaining {remaining}, requested {requested}"
        )

    def to_dict(self) -> dict[str, object]:
        return {**super().to_dict(), "remaining": self.remaining, "requested": self.requested}


class QuotaTransactionExistsError(EntityAlreadyExistsError):
    """Raised when a reservation already exists for the task."""

    def __init__(self, task_id: str):
        super().__init__(f"Quota transaction for task '{task_id}' already exists")

