"""Tests for ``ErrorReporter``."""

from __future__ import annotations

import json

import pytest

from sorane.core.enums import TelemetryType
from sorane.core.sanitize import TRUNCATION_SUFFIX
from sorane.producers.errors import (
    ErrorReporter,
    code_context,
    dedent_code,
    mask_headers,
)
from sorane.producers.request import RequestInfo


class CheckoutFailed(Exception):
    pass


def _raise(exc: BaseException) -> BaseException:
    try:
        raise exc
    except BaseException as caught:  # noqa: BLE001
        return caught


@pytest.fixture
def reporter(buffer, settings, clock):
    return ErrorReporter(buffer, settings, clock=clock)


def _only_item(buffer) -> dict:
    [item] = buffer.take("errors", 10)
    return item.data


class TestReport:
    def test_console_report(self, reporter, buffer):
        exc = _raise(ValueError("bad input"))
        assert reporter.report(exc) is True

        data = _only_item(buffer)
        assert data["for"] == "sorane"
        assert data["message"] == "bad input"
        assert data["type"] == "ValueError"
        assert data["file"] == __file__
        assert isinstance(data["line"], int)
        assert data["environment"] == "testing"
        assert data["time"] == "2025-01-15 12:00:00"
        assert data["is_console"] is True
        assert data["url"] is None
        assert json.loads(data["console_arguments"]) is not None
        assert "Traceback" in data["trace"]

    def test_code_context_highlights_raise(self, reporter, buffer):
        reporter.report(_raise(RuntimeError("x")))
        data = _only_item(buffer)
        lines = data["context"].split("\n")
        assert "raise exc" in lines[data["highlight_line"] - 1]

    def test_custom_exception_type_is_qualified(self, reporter, buffer):
        reporter.report(_raise(CheckoutFailed("declined")))
        assert _only_item(buffer)["type"].endswith(".CheckoutFailed")

    def test_http_request(self, reporter, buffer):
        request = RequestInfo(
            url="https://shop.example.test/checkout",
            method="POST",
            headers={"Cookie": "session=abc", "Authorization": "Bearer t", "Accept": "text/html"},
        )
        reporter.report(_raise(ValueError("x")), request=request, user={"id": 42})

        data = _only_item(buffer)
        assert data["is_console"] is False
        assert data["url"] == "https://shop.example.test/checkout"
        assert data["method"] == "POST"
        assert data["user"] == {"id": 42}
        headers = json.loads(data["headers"])
        assert headers["cookie"] == "***"
        assert headers["authorization"] == "***"
        assert headers["accept"] == "text/html"
        assert data["console_command"] is None

    def test_console_options(self, reporter, buffer):
        reporter.report(_raise(ValueError("x")), console_options={"verbose": True})
        assert json.loads(_only_item(buffer)["console_options"]) == {"verbose": True}

    def test_trace_is_truncated(self, reporter, buffer):
        reporter.report(_raise(ValueError("y" * 6000)))
        trace = _only_item(buffer)["trace"]
        assert trace.endswith(TRUNCATION_SUFFIX)
        assert len(trace) == 5000 + len(TRUNCATION_SUFFIX)

    def test_only_allowed_fields(self, reporter, buffer):
        reporter.report(_raise(ValueError("x")))
        assert set(_only_item(buffer)) <= ErrorReporter.allowed_fields

    def test_disabled(self, buffer, settings_factory, clock):
        reporter = ErrorReporter(buffer, settings_factory(errors={"enabled": False}), clock=clock)
        assert reporter.report(_raise(ValueError("x"))) is False
        assert buffer.count("errors") == 0

    def test_exception_without_traceback(self, reporter, buffer):
        assert reporter.report(ValueError("never raised")) is True
        data = _only_item(buffer)
        assert data["file"] is None
        assert data["context"] is None

    def test_immediate_dispatch_when_not_queued(self, buffer, settings_factory, clock):
        calls: list[TelemetryType] = []
        reporter = ErrorReporter(
            buffer,
            settings_factory(errors={"enabled": True, "queue": False}),
            clock=clock,
            immediate_dispatch=calls.append,
        )
        reporter.report(_raise(ValueError("x")))
        assert calls == [TelemetryType.ERRORS]


class TestHelpers:
    def test_mask_headers(self):
        assert mask_headers({"X-CSRF-Token": "t", "Host": "h"}) == {"X-CSRF-Token": "***", "Host": "h"}

    def test_dedent_code(self):
        code = "        if x:\n            return 1\n\n        return 2  \n"
        assert dedent_code(code) == "if x:\n    return 1\n\nreturn 2\n"

    def test_code_context_missing_file(self):
        assert code_context("/nonexistent/file.py", 3) == (None, None)

    def test_code_context_window(self, tmp_path):
        source = tmp_path / "app.py"
        source.write_text("".join(f"line_{i} = {i}\n" for i in range(1, 31)))
        snippet, highlight = code_context(str(source), 20)
        lines = snippet.split("\n")
        assert lines[0] == "line_15 = 15"
        assert lines[highlight - 1] == "line_20 = 20"
        assert len([line for line in lines if line]) == 11
