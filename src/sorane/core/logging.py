"""
Structured logging for the Sorane telemetry client.

All client diagnostics go through structlog under a dedicated channel name
(``sorane.internal`` by default). The log-capture handler in
``sorane.producers.logs`` ignores the ``sorane`` logger namespace, so the
client's own diagnostics never loop back into the ``logs`` buffer.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None)
              │
              ▼
        structlog processor chain
          TimeStamper → add_log_level → add_logger_name
          → channel metadata → JSONRenderer / ConsoleRenderer

        logger = get_logger(__name__)
        logger.warning("dispatch.partial_failure", type="errors", failed=3)

Examples:
    >>> from sorane.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> logger.info("buffer.appended", type="events")

Tags:
    logging, structlog, observability, sorane

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Channel recorded on every internal log line
_CHANNEL = "sorane.internal"

INTERNAL_LOGGER_PREFIX = "sorane"


def _add_channel(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Tag every client log line with the internal channel."""
    event_dict.setdefault("channel", _CHANNEL)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    channel: str = "sorane.internal",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the client.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        channel: Channel name included on every internal log line
        add_timestamp: Include ISO timestamp in logs
    """
    global _CHANNEL
    _CHANNEL = channel
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_channel,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Client diagnostics get their own stderr handler and never reach the
    # host's root handlers (where a SoraneLogHandler may be attached)
    internal = logging.getLogger(INTERNAL_LOGGER_PREFIX)
    for handler in list(internal.handlers):
        if getattr(handler, "_sorane_internal", False):
            internal.removeHandler(handler)
    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(logging.Formatter("%(message)s"))
    stream._sorane_internal = True  # type: ignore[attr-defined]
    internal.addHandler(stream)
    internal.setLevel(numeric_level)
    internal.propagate = False


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


_internal_enabled = True


def set_internal_logging(enabled: bool) -> None:
    """Enable or disable the internal diagnostics channel."""
    global _internal_enabled
    _internal_enabled = enabled


class InternalLogger:
    """Guarded logger for the client's own diagnostics.

    A broken renderer or closed stream must never surface inside the host
    application, so every call is wrapped. Calls are dropped while internal
    logging is disabled.
    """

    def __init__(self, name: str):
        self.name = name
        self._logger = structlog.get_logger(name)

    def _emit(self, method: str, event: str, **kw: Any) -> None:
        if not _internal_enabled:
            return
        try:
            getattr(self._logger, method)(event, **kw)
        except Exception:  # noqa: BLE001
            pass

    def debug(self, event: str, **kw: Any) -> None:
        self._emit("debug", event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._emit("info", event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._emit("warning", event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._emit("error", event, **kw)

    def critical(self, event: str, **kw: Any) -> None:
        self._emit("critical", event, **kw)


def get_internal_logger(name: str | None = None) -> InternalLogger:
    """Get a guarded logger on the internal diagnostics channel.

    Pipeline components use this instead of :func:`get_logger`.
    """
    return InternalLogger(name or _CHANNEL)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs.

    Example:
        bind_context(type="errors", attempt=2)
        logger.info("dispatch.started")  # Includes type and attempt
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(type="events"):
            logger.info("dispatch.started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> "LogContext":
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "get_internal_logger",
    "set_internal_logging",
    "InternalLogger",
    "bind_context",
    "unbind_context",
    "LogContext",
    "INTERNAL_LOGGER_PREFIX",
]
