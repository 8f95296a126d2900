"""
Structured log capture.

``LogProducer.capture`` buffers one log entry. ``SoraneLogHandler`` is a
``logging.Handler`` that feeds every stdlib log record into it, so a host
application forwards its logs with::

    logging.getLogger().addHandler(sorane.log_handler())

Records from the ``sorane`` logger namespace and from excluded channels are
skipped so the client's own diagnostics never loop back into the stream.

Size limits keep a single entry well below the API request limit:
    - message: 50 000 characters, then ``"... (truncated)"``
    - context: dropped with a ``_truncated`` marker above 50 KB of JSON
    - extra:   dropped with a ``_truncated`` marker above 10 KB of JSON
"""

from __future__ import annotations

import logging
import platform
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from sorane.core.enums import TelemetryType
from sorane.core.logging import INTERNAL_LOGGER_PREFIX, get_internal_logger
from sorane.core.sanitize import json_size, sanitize_for_serialization, truncate
from sorane.producers.base import Producer

logger = get_internal_logger(__name__)

MAX_MESSAGE_LENGTH = 50_000
MAX_CONTEXT_BYTES = 51_200
MAX_EXTRA_BYTES = 10_240

# Attributes every LogRecord has; anything else came from ``extra=``
_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


class LogProducer(Producer):
    """Producer for the ``logs`` stream."""

    telemetry_type = TelemetryType.LOGS
    allowed_fields = frozenset({"level", "message", "context", "channel", "timestamp", "extra"})

    def is_excluded(self, channel: str) -> bool:
        if channel == INTERNAL_LOGGER_PREFIX or channel.startswith(INTERNAL_LOGGER_PREFIX + "."):
            return True
        return channel in self.settings.logs.excluded_channels

    def capture(
        self,
        level: str,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        channel: str = "default",
        extra: Mapping[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> bool:
        """Buffer one log entry. Never raises."""
        if not self.enabled or self.is_excluded(channel):
            return False

        try:
            safe_context = sanitize_for_serialization(dict(context or {}))
            if json_size(safe_context) > MAX_CONTEXT_BYTES:
                safe_context = {"_truncated": "Context exceeded 50KB limit and was removed"}

            safe_extra = sanitize_for_serialization({
                **dict(extra or {}),
                "environment": self.settings.environment,
                "python_version": platform.python_version(),
                "client_version": self.settings.client_version,
            })
            if json_size(safe_extra) > MAX_EXTRA_BYTES:
                safe_extra = {"_truncated": "Extra data exceeded 10KB limit and was removed"}

            data = {
                "level": level.lower(),
                "message": truncate(str(message), MAX_MESSAGE_LENGTH),
                "context": safe_context,
                "channel": channel,
                "timestamp": (timestamp or self._clock()).isoformat(),
                "extra": safe_extra,
            }
        except Exception as e:  # noqa: BLE001
            logger.warning("logs.capture_failed", error=str(e))
            return False
        return self.submit(data)


class SoraneLogHandler(logging.Handler):
    """Forwards stdlib log records to a :class:`LogProducer`.

    The record's logger name becomes the channel. Fields passed through
    ``extra=`` become the entry's context; exception info is added to the
    context as ``exception``.
    """

    def __init__(self, producer: LogProducer, level: int = logging.DEBUG):
        super().__init__(level)
        self.producer = producer

    def emit(self, record: logging.LogRecord) -> None:
        if self.producer.is_excluded(record.name):
            return
        try:
            context = {
                k: v for k, v in vars(record).items()
                if k not in _STANDARD_RECORD_ATTRS and not k.startswith("_")
            }
            if record.exc_info and record.exc_info[1] is not None:
                exc = record.exc_info[1]
                context["exception"] = {
                    "type": type(exc).__name__,
                    "message": str(exc),
                    "trace": self.format(record) if self.formatter else logging.Formatter().formatException(record.exc_info),
                }
            self.producer.capture(
                record.levelname,
                record.getMessage(),
                context=context,
                channel=record.name or "root",
                extra={"module": record.module, "function": record.funcName, "line": record.lineno},
                timestamp=datetime.fromtimestamp(record.created, UTC),
            )
        except Exception:  # noqa: BLE001
            self.handleError(record)


__all__ = ["LogProducer", "SoraneLogHandler"]
