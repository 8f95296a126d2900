"""
Error reports from Python exceptions.

``ErrorReporter.report(exc)`` turns an exception into an ``errors`` item:
message, location, qualified type, a truncated traceback, eleven lines of
dedented source around the failing line, runtime versions and, for HTTP
requests, the URL, method and headers with credentials masked.

Example:
    >>> try:
    ...     handle_checkout()
    ... except Exception as exc:
    ...     sorane.errors.report(exc, request=RequestInfo.from_starlette(request))
    ...     raise
"""

from __future__ import annotations

import json
import linecache
import os
import platform
import sys
import traceback
from collections.abc import Mapping
from typing import Any

from sorane.core.enums import TelemetryType
from sorane.core.logging import get_internal_logger
from sorane.core.sanitize import truncate
from sorane.producers.base import Producer
from sorane.producers.request import RequestInfo

logger = get_internal_logger(__name__)

MAX_TRACE_LENGTH = 5000
MAX_SOURCE_FILE_SIZE = 1_048_576
CONTEXT_LINES_BEFORE = 5
CONTEXT_LINES_TOTAL = 11
SENSITIVE_HEADERS = frozenset({"cookie", "authorization", "x-csrf-token", "x-xsrf-token"})


def mask_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {k: ("***" if k.lower() in SENSITIVE_HEADERS else v) for k, v in headers.items()}


def dedent_code(code: str) -> str:
    """Strip trailing whitespace and the common indentation of non-blank lines."""
    lines = [line.rstrip() for line in code.split("\n")]
    indents = [len(line) - len(line.lstrip()) for line in lines if line.strip()]
    min_indent = min(indents) if indents else 0
    if min_indent > 0:
        lines = [line[min_indent:] if line.strip() else line for line in lines]
    return "\n".join(lines)


def _failing_frame(exc: BaseException) -> tuple[str | None, int | None]:
    tb = exc.__traceback__
    if tb is None:
        return None, None
    while tb.tb_next is not None:
        tb = tb.tb_next
    return tb.tb_frame.f_code.co_filename, tb.tb_lineno


def code_context(file: str | None, line: int | None) -> tuple[str | None, int | None]:
    """Source snippet around ``line`` and the 1-based position of ``line`` within it."""
    if not file or not line or not os.path.isfile(file):
        return None, None
    try:
        if os.path.getsize(file) >= MAX_SOURCE_FILE_SIZE:
            return None, None
    except OSError:
        return None, None

    lines = linecache.getlines(file)
    if not lines:
        return None, None
    start = max(0, line - CONTEXT_LINES_BEFORE - 1)
    snippet = "".join(lines[start:start + CONTEXT_LINES_TOTAL])
    return dedent_code(snippet), line - start


def qualified_name(exc: BaseException) -> str:
    cls = type(exc)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


class ErrorReporter(Producer):
    """Producer for the ``errors`` stream."""

    telemetry_type = TelemetryType.ERRORS
    allowed_fields = frozenset({
        "for",
        "message",
        "file",
        "line",
        "type",
        "environment",
        "trace",
        "headers",
        "context",
        "highlight_line",
        "user",
        "time",
        "url",
        "method",
        "python_version",
        "client_version",
        "is_console",
        "console_command",
        "console_arguments",
        "console_options",
    })

    def build(
        self,
        exc: BaseException,
        *,
        request: RequestInfo | None = None,
        user: Mapping[str, Any] | None = None,
        console_options: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Assemble the report without buffering it."""
        file, line = _failing_frame(exc)
        context, highlight_line = code_context(file, line)
        is_console = request is None

        trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

        data: dict[str, Any] = {
            "for": "sorane",
            "message": str(exc),
            "file": file,
            "line": line,
            "type": qualified_name(exc),
            "environment": self.settings.environment,
            "trace": truncate(trace, MAX_TRACE_LENGTH),
            "headers": None,
            "context": context,
            "highlight_line": highlight_line,
            "user": dict(user) if user else None,
            "time": self._clock().strftime("%Y-%m-%d %H:%M:%S"),
            "url": None,
            "method": None,
            "python_version": platform.python_version(),
            "client_version": self.settings.client_version,
            "is_console": is_console,
            "console_command": None,
            "console_arguments": None,
            "console_options": None,
        }

        if request is not None:
            data["headers"] = json.dumps(mask_headers(request.headers))
            data["url"] = request.url
            data["method"] = request.method
        else:
            data["console_command"] = " ".join(sys.argv) if sys.argv else None
            data["console_arguments"] = json.dumps(sys.argv[1:])
            if console_options:
                data["console_options"] = json.dumps(dict(console_options), default=str)

        return data

    def report(
        self,
        exc: BaseException,
        *,
        request: RequestInfo | None = None,
        user: Mapping[str, Any] | None = None,
        console_options: Mapping[str, Any] | None = None,
    ) -> bool:
        """Buffer an error report for ``exc``. Never raises."""
        if not self.enabled:
            return False
        try:
            data = self.build(exc, request=request, user=user, console_options=console_options)
        except Exception as e:  # noqa: BLE001
            logger.warning("errors.report_failed", error=str(e))
            return False
        return self.submit(data)


__all__ = ["ErrorReporter", "mask_headers", "dedent_code", "code_context"]
