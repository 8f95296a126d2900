"""
Structured error types for the Sorane telemetry client.

Every failure the client surfaces carries a category, an explicit retry flag,
an optional retry delay and a structured context. Producers never let these
escape into host code (telemetry must not break the application); they are
raised inside the delivery path so the dispatcher can decide between
requeue, pause and drop.

Manifesto:
    - **Typed Error Hierarchy:** Different error types for different failure domains
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry telemetry type, status and endpoint
    - **Error Chaining:** Preserve the transport exception as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      SoraneError                             │
        │  (category, retryable, retry_after, context, cause)         │
        ├─────────────────────────────────────────────────────────────┤
        │  TransientError        ConfigError         ValidationError  │
        │  (retryable=True)      (CONFIG)            (VALIDATION)     │
        │       │                     │                    │          │
        │  DeliveryError         MissingConfigError  InvalidEventName │
        │  (status)              InvalidConfigError  PayloadValidation│
        │                                            UnknownTelemetry │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = DeliveryError("Server returned 500", status=500)
    >>> error.retryable
    True
    >>> error.to_dict()["context"]["http_status"]
    500

Tags:
    error-handling, exception-hierarchy, retry-logic, sorane

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"           # Connection, timeout, DNS
    SERVER = "SERVER"             # 5xx and unknown statuses from the API
    STORAGE = "STORAGE"           # Buffer backend, lock acquisition
    VALIDATION = "VALIDATION"     # Event names, JS error payloads
    CONFIG = "CONFIG"             # Missing key, invalid settings
    AUTH = "AUTH"                 # 401 / 403 from the API
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        telemetry_type: Buffer/feature the error relates to
        endpoint: API path being called
        http_status: HTTP status code (0 for transport failures)
        batch_size: Number of items in the affected batch
        metadata: Additional key-value pairs
    """

    telemetry_type: str | None = None
    endpoint: str | None = None
    http_status: int | None = None
    batch_size: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["telemetry_type", "endpoint", "http_status", "batch_size"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SoraneError(Exception):
    """
    Base exception for all Sorane client errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely need to pass them explicitly.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SoraneError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DeliveryError("Failed").with_context(
                telemetry_type="errors",
                endpoint="/errors/store-batch",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Retryable)
# =============================================================================


class TransientError(SoraneError):
    """Temporary error that may succeed on a later dispatch attempt."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class DeliveryError(TransientError):
    """
    A batch could not be delivered and was put back in the buffer.

    Raised by the dispatcher for transport failures (status 0), 5xx and
    unrecognised statuses so the job's retry policy can schedule another
    attempt.
    """

    default_category = ErrorCategory.SERVER

    def __init__(self, message: str, *, status: int = 0, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status = status
        self.context.http_status = status
        if status == 0 and kwargs.get("category") is None:
            self.category = ErrorCategory.NETWORK


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(SoraneError):
    """
    Data validation error.

    Never retryable - data must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        return result


class InvalidEventNameError(ValidationError):
    """Event name does not match ``^[a-z][a-z0-9_]*$`` or is out of length bounds."""

    def __init__(self, name: Any, constraint: str):
        super().__init__(
            f"Invalid event name {name!r}: {constraint}",
            field="event_name",
            value=name,
            constraint=constraint,
        )


class PayloadValidationError(ValidationError):
    """Inbound payload failed validation (JS error endpoint)."""

    def __init__(self, message: str, *, errors: dict[str, list[str]] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.errors = errors or {}

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.errors:
            result["errors"] = self.errors
        return result


class UnknownTelemetryTypeError(ValidationError):
    """Type name outside the closed set of telemetry types."""


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(SoraneError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, SoraneError):
        return error.retryable

    retryable_types = (
        ConnectionError,
        ConnectionResetError,
        ConnectionRefusedError,
        BrokenPipeError,
        OSError,
    )
    return isinstance(error, retryable_types)


def get_retry_after(error: Exception) -> int | None:
    """Get retry delay from error, if specified."""
    if isinstance(error, SoraneError):
        return error.retry_after
    return None


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "SoraneError",
    "TransientError",
    "DeliveryError",
    "ValidationError",
    "InvalidEventNameError",
    "PayloadValidationError",
    "UnknownTelemetryTypeError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "is_retryable",
    "get_retry_after",
]
