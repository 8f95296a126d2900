"""
Browser error intake.

The browser collector posts one error per request. ``receive`` validates the
payload against :class:`JavaScriptErrorPayload`, applies ignore patterns and
sampling, enriches it from the request and buffers it.

Outcomes (mirrored by the HTTP endpoint as status codes):

    disabled              → 403  "JavaScript error tracking is not enabled"
    validation failure    → 422  "Validation failed" + field errors
    ignore pattern match  → 200  "Error ignored based on pattern"
    sampled out           → 200  "Error sampled out"
    buffered              → 200  "Error received"
    buffer failure        → 500  "Failed to process error"
"""

from __future__ import annotations

import random
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from sorane.core.enums import TelemetryType
from sorane.core.errors import PayloadValidationError
from sorane.core.logging import get_internal_logger
from sorane.core.sanitize import sanitize_for_serialization
from sorane.core.settings import JavaScriptErrorsConfig
from sorane.core.timestamps import to_iso8601
from sorane.producers.base import Producer
from sorane.producers.request import RequestInfo

logger = get_internal_logger(__name__)

MAX_BREADCRUMB_MESSAGE = 500
BROWSER_INFO_FIELDS = (
    "screen_width",
    "screen_height",
    "viewport_width",
    "viewport_height",
    "device_memory",
    "hardware_concurrency",
    "connection_type",
)


# ── Wire models ──────────────────────────────────────────────────────────


class Breadcrumb(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timestamp: str
    category: str = Field(max_length=100)
    message: str = Field(max_length=500)
    data: dict[str, Any] | None = None


class JavaScriptErrorPayload(BaseModel):
    """What the browser collector sends."""

    model_config = ConfigDict(extra="ignore")

    message: str = Field(max_length=2000)
    stack: str | None = Field(default=None, max_length=10_000)
    type: str | None = Field(default=None, max_length=100)
    filename: str | None = Field(default=None, max_length=500)
    line: int | None = None
    column: int | None = None
    url: str | None = Field(default=None, max_length=2000)
    timestamp: str | None = None
    breadcrumbs: list[Breadcrumb] | None = None
    context: dict[str, Any] | None = None
    browser_info: dict[str, Any] | None = None


def validate_payload(payload: Any) -> JavaScriptErrorPayload:
    """Parse ``payload`` or raise :class:`PayloadValidationError` with per-field messages."""
    try:
        return JavaScriptErrorPayload.model_validate(payload)
    except PydanticValidationError as e:
        errors: dict[str, list[str]] = {}
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"]) or "payload"
            errors.setdefault(loc, []).append(err["msg"])
        raise PayloadValidationError("Validation failed", errors=errors) from e


# ── Intake ───────────────────────────────────────────────────────────────


@dataclass
class IntakeResult:
    status_code: int
    success: bool
    message: str
    errors: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class JavaScriptErrorProducer(Producer):
    """Producer for the ``javascript_errors`` stream."""

    telemetry_type = TelemetryType.JAVASCRIPT_ERRORS
    allowed_fields = frozenset({
        "message",
        "stack",
        "type",
        "filename",
        "line",
        "column",
        "user_agent",
        "url",
        "timestamp",
        "environment",
        "user_id",
        "session_id",
        "breadcrumbs",
        "context",
        "browser_info",
    })

    def __init__(self, *args: Any, random_fn: Callable[[], float] = random.random, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._random = random_fn

    @property
    def config(self) -> JavaScriptErrorsConfig:
        return self.settings.javascript_errors

    def is_ignored(self, message: str) -> bool:
        lowered = message.lower()
        return any(pattern.lower() in lowered for pattern in self.config.ignored_errors if pattern)

    def sampled_out(self) -> bool:
        rate = self.config.sample_rate
        return rate < 1.0 and self._random() > rate

    def sanitize_breadcrumbs(self, breadcrumbs: Sequence[Breadcrumb]) -> list[dict[str, Any]]:
        limit = self.config.max_breadcrumbs
        kept = list(breadcrumbs)[-limit:] if limit > 0 else []
        return [
            {
                "timestamp": b.timestamp,
                "category": b.category or "unknown",
                "message": (b.message or "")[:MAX_BREADCRUMB_MESSAGE],
                "data": sanitize_for_serialization(b.data or {}),
            }
            for b in kept
        ]

    def build(
        self,
        payload: JavaScriptErrorPayload,
        *,
        request: RequestInfo | None = None,
        user_id: Any = None,
        session_id: str | None = None,
    ) -> dict[str, Any]:
        browser_info = payload.browser_info or {}
        return {
            "message": payload.message,
            "stack": payload.stack,
            "type": payload.type or "Error",
            "filename": payload.filename,
            "line": payload.line,
            "column": payload.column,
            "user_agent": request.user_agent if request else None,
            "url": payload.url if payload.url is not None else (request.referer if request else None),
            "timestamp": payload.timestamp or to_iso8601(self._clock()),
            "environment": self.settings.environment,
            "user_id": user_id,
            "session_id": session_id,
            "breadcrumbs": self.sanitize_breadcrumbs(payload.breadcrumbs or []),
            "context": sanitize_for_serialization(payload.context or {}),
            "browser_info": {name: browser_info.get(name) for name in BROWSER_INFO_FIELDS},
        }

    def receive(
        self,
        payload: Mapping[str, Any] | JavaScriptErrorPayload,
        *,
        request: RequestInfo | None = None,
        user_id: Any = None,
        session_id: str | None = None,
    ) -> IntakeResult:
        """Validate, filter and buffer one browser error."""
        if not self.enabled:
            return IntakeResult(403, False, "JavaScript error tracking is not enabled")

        if isinstance(payload, JavaScriptErrorPayload):
            parsed = payload
        else:
            try:
                parsed = validate_payload(payload)
            except PayloadValidationError as e:
                return IntakeResult(422, False, "Validation failed", errors=e.errors)

        if self.is_ignored(parsed.message):
            return IntakeResult(200, True, "Error ignored based on pattern")
        if self.sampled_out():
            return IntakeResult(200, True, "Error sampled out")

        try:
            data = self.build(parsed, request=request, user_id=user_id, session_id=session_id)
        except Exception as e:  # noqa: BLE001
            logger.warning("javascript_errors.build_failed", error=str(e))
            return IntakeResult(500, False, "Failed to process error")

        if not self.submit(data):
            return IntakeResult(500, False, "Failed to process error")
        return IntakeResult(200, True, "Error received")


__all__ = [
    "JavaScriptErrorProducer",
    "JavaScriptErrorPayload",
    "Breadcrumb",
    "IntakeResult",
    "validate_payload",
]
