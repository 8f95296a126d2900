"""Tests for ``ApiGateway`` using ``httpx.MockTransport``."""

from __future__ import annotations

from datetime import UTC, datetime

import httpx
import pytest

from sorane.core.enums import TelemetryType
from sorane.delivery.gateway import ApiGateway, parse_retry_after


@pytest.fixture
def gateway(settings, api, metrics):
    return ApiGateway(settings, client=api.client(), metrics=metrics)


class TestRequest:
    def test_url_headers_and_body(self, gateway, api):
        result = gateway.send("page_visits", [{"path": "/"}, {"path": "/pricing"}])

        assert result.success is True
        request = api.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.sorane.test/v1/page-visits/store-batch"
        assert request.headers["Authorization"] == "Bearer test-key"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["User-Agent"].startswith("Sorane-Python/page-visits-batch/")
        assert api.payload() == {"visits": [{"path": "/"}, {"path": "/pricing"}]}

    @pytest.mark.parametrize("ttype", list(TelemetryType))
    def test_payload_field_per_type(self, gateway, api, ttype):
        gateway.send(ttype, [{"a": 1}])
        assert list(api.payload()) == [ttype.payload_field]
        assert str(api.requests[-1].url).endswith(f"/{ttype.endpoint}/store-batch")

    def test_timeout_doubles_for_batches(self, gateway):
        assert gateway.timeout_for(TelemetryType.EVENTS, 1) == 10.0
        assert gateway.timeout_for(TelemetryType.EVENTS, 2) == 20.0


class TestResponses:
    def test_success_body(self, gateway, api):
        api.respond(200, {"success": True, "data": {"unprocessed_indexes": [1]}})
        result = gateway.send("events", [{"a": 1}, {"a": 2}])
        assert result.status == 200
        assert result.body["data"]["unprocessed_indexes"] == [1]

    def test_any_2xx_is_success(self, gateway, api):
        api.respond(202, {})
        assert gateway.send("events", [{"a": 1}]).success is True

    def test_error_message_from_body(self, gateway, api):
        api.respond(422, {"message": "items.0.event_name is required"})
        result = gateway.send("events", [{"a": 1}])
        assert result.success is False
        assert result.error == "items.0.event_name is required"

    def test_generic_error_message(self, gateway, api):
        api.respond(503, None)
        assert gateway.send("events", [{"a": 1}]).error == "API request failed with status 503"

    def test_retry_after_header(self, gateway, api):
        api.respond(429, {}, headers={"Retry-After": "45"})
        result = gateway.send("events", [{"a": 1}])
        assert result.status == 429
        assert result.retry_after == 45

    def test_non_json_body(self, gateway, api):
        api._responses.append(httpx.Response(502, text="<html>Bad Gateway</html>"))
        result = gateway.send("logs", [{"a": 1}])
        assert result.status == 502
        assert result.body == {}


class TestTransportFailures:
    def test_timeout(self, gateway, api):
        api.fail(httpx.ReadTimeout("read timed out"))
        result = gateway.send("errors", [{"a": 1}])
        assert result.status == 0
        assert result.success is False
        assert "timed out" in result.error

    def test_connection_error(self, gateway, api):
        api.fail(httpx.ConnectError("connection refused"))
        result = gateway.send("errors", [{"a": 1}])
        assert result.status == 0
        assert result.error == "connection refused"

    def test_missing_key_sends_nothing(self, settings_factory, api):
        gateway = ApiGateway(settings_factory(key=None), client=api.client())
        result = gateway.send("errors", [{"a": 1}])
        assert result.status == 0
        assert result.error == "API key not configured"
        assert api.requests == []


class TestMetrics:
    def test_counts_by_status(self, gateway, api, metrics):
        api.respond(500, {})
        gateway.send("events", [{"a": 1}])
        gateway.send("events", [{"a": 1}])
        assert metrics.batches.labels(type="events", status="500").value == 1
        assert metrics.batches.labels(type="events", status="200").value == 1
        assert metrics.send_duration.labels(type="events").data["count"] == 2


class TestParseRetryAfter:
    def test_seconds(self):
        assert parse_retry_after("120") == 120

    def test_missing(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after("  ") is None

    def test_http_date(self):
        now = datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)
        assert parse_retry_after("Wed, 15 Jan 2025 12:01:30 GMT", now=now) == 90

    def test_past_date_is_zero(self):
        now = datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)
        assert parse_retry_after("Wed, 15 Jan 2025 11:00:00 GMT", now=now) == 0

    def test_garbage(self):
        assert parse_retry_after("soon") is None
