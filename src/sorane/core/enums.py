"""
Shared enums for the Sorane telemetry client.

Tags:
    sorane, enums, telemetry-types, pause-reasons

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from enum import Enum


class TelemetryType(str, Enum):
    """One buffered telemetry stream (a "feature")."""

    ERRORS = "errors"
    EVENTS = "events"
    LOGS = "logs"
    PAGE_VISITS = "page_visits"
    JAVASCRIPT_ERRORS = "javascript_errors"

    @classmethod
    def parse(cls, value: TelemetryType | str) -> TelemetryType:
        """Resolve a type name, raising ``UnknownTelemetryTypeError`` if invalid."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            from sorane.core.errors import UnknownTelemetryTypeError

            raise UnknownTelemetryTypeError(
                f"Unknown telemetry type '{value}'. "
                f"Valid types: {', '.join(t.value for t in cls)}"
            ) from None

    @property
    def endpoint(self) -> str:
        """Path segment of the batch endpoint on the ingestion API."""
        return self.value.replace("_", "-")

    @property
    def payload_field(self) -> str:
        """JSON field carrying the batch array in the request body."""
        return _PAYLOAD_FIELDS[self]


_PAYLOAD_FIELDS: dict[TelemetryType, str] = {
    TelemetryType.ERRORS: "errors",
    TelemetryType.EVENTS: "events",
    TelemetryType.LOGS: "logs",
    TelemetryType.PAGE_VISITS: "visits",
    TelemetryType.JAVASCRIPT_ERRORS: "errors",
}


class PauseReason(str, Enum):
    """Reason code stored with a pause record.

    Values are the HTTP status that caused the pause. ``OTHER`` covers
    pauses set by an operator or an unrecognised code.
    """

    UNAUTHORIZED = "401"
    FORBIDDEN = "403"
    PAYLOAD_TOO_LARGE = "413"
    UNPROCESSABLE = "422"
    RATE_LIMITED = "429"
    SERVER_ERROR = "500"
    OTHER = "other"

    @classmethod
    def parse(cls, value: PauseReason | str | int) -> PauseReason:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return cls.OTHER

    @property
    def hint(self) -> str:
        """One-line operator hint for status and pause-clear output."""
        return _REASON_HINTS[self]


_REASON_HINTS: dict[PauseReason, str] = {
    PauseReason.UNAUTHORIZED: "Check that SORANE_KEY is valid and not revoked",
    PauseReason.FORBIDDEN: "Verify subscription is active and feature access is enabled",
    PauseReason.PAYLOAD_TOO_LARGE: "Batch too large - client bug, investigate batch sizes immediately",
    PauseReason.UNPROCESSABLE: "Validation failed - schema drift or malformed items, check recent changes",
    PauseReason.RATE_LIMITED: "Rate limit exceeded - delivery resumes automatically after Retry-After",
    PauseReason.SERVER_ERROR: "Server errors - check ingestion API health",
    PauseReason.OTHER: "Check the sorane.internal log channel for details",
}


class PauseScope(str, Enum):
    NONE = "none"
    GLOBAL = "global"
    FEATURE = "feature"


class ActionKind(str, Enum):
    """What the reconciler does with a batch after a send attempt."""

    ACCEPT_PROCESSED = "accept_processed"
    REQUEUE_ALL = "requeue_all"
    REQUEUE_PARTIAL = "requeue_partial"
    DROP_ALL = "drop_all"


class DispatchState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SENDING = "sending"
    RECONCILING = "reconciling"


__all__ = [
    "TelemetryType",
    "PauseReason",
    "PauseScope",
    "ActionKind",
    "DispatchState",
]
