"""Tests for the FastAPI intake, health and metrics routes."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from sorane.api.app import JS_ERRORS_PATH, create_app

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip",
}


@pytest.fixture
def client(sorane):
    app = create_app(sorane=sorane, run_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


class TestJavaScriptErrorIntake:
    def test_accepts_error(self, client, sorane):
        response = client.post(JS_ERRORS_PATH, json={"message": "TypeError: x is undefined", "line": 3})
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Error received"}
        assert sorane.buffer.count("javascript_errors") == 1

    def test_validation_errors(self, client):
        response = client.post(JS_ERRORS_PATH, json={"message": "x" * 2001})
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert "message" in body["errors"]

    def test_non_json_body(self, client):
        response = client.post(JS_ERRORS_PATH, content=b"not json", headers={"Content-Type": "text/plain"})
        assert response.status_code == 422

    def test_non_finite_context_is_delivered_as_null(self, client, sorane, api):
        response = client.post(
            JS_ERRORS_PATH,
            content=b'{"message": "chart failed", "context": {"ratio": NaN, "max": Infinity}}',
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 200

        outcomes = sorane.work()

        assert [o.status for o in outcomes] == ["sent"]
        [sent] = api.payload()["errors"]
        assert sent["context"] == {"ratio": None, "max": None}

    def test_ignored(self, client, sorane):
        response = client.post(JS_ERRORS_PATH, json={"message": "Script error."})
        assert response.status_code == 200
        assert response.json()["message"] == "Error ignored based on pattern"
        assert sorane.buffer.count("javascript_errors") == 0

    def test_disabled(self, sorane_factory, settings_factory):
        sorane = sorane_factory(settings_factory(javascript_errors={"enabled": False}))
        with TestClient(create_app(sorane=sorane, run_scheduler=False)) as client:
            response = client.post(JS_ERRORS_PATH, json={"message": "boom"})
        assert response.status_code == 403
        assert response.json() == {"success": False, "message": "JavaScript error tracking is not enabled"}


class TestHealth:
    def test_healthy(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["healthy"] is True
        assert body["pauses"]["global"] is None
        assert set(body["buffers"]["features"]) == {
            "errors", "events", "logs", "page_visits", "javascript_errors",
        }

    def test_degraded_when_globally_paused(self, client, sorane):
        sorane.pause.set_global_pause(900, 401)
        body = client.get("/health").json()
        assert body["status"] == "degraded"
        assert body["pauses"]["global"]["reason"] == "401"
        assert body["pauses"]["global"]["time_remaining_seconds"] == 900


class TestMetrics:
    def test_prometheus_text(self, client, sorane):
        sorane.events.track("sale", {"total": 10})
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'sorane_items_buffered_total{type="events"} 1.0' in response.text


class TestPageVisitMiddleware:
    def test_records_browser_visits(self, client, sorane):
        client.get("/health?utm_source=newsletter", headers=BROWSER_HEADERS)
        [item] = sorane.buffer.take("page_visits", 10)
        assert item.data["path"] == "/health"
        assert item.data["utm_source"] == "newsletter"

    def test_ignores_scripted_clients(self, client, sorane):
        client.get("/health")
        assert sorane.buffer.count("page_visits") == 0

    def test_not_installed_when_disabled(self, sorane_factory, settings_factory):
        sorane = sorane_factory(settings_factory(page_visits={"enabled": False}))
        with TestClient(create_app(sorane=sorane, run_scheduler=False)) as client:
            client.get("/health", headers=BROWSER_HEADERS)
        assert sorane.buffer.count("page_visits") == 0


class TestLifespan:
    def test_scheduler_follows_app_lifespan(self, sorane):
        app = create_app(sorane=sorane, run_scheduler=True)
        assert app.state.sorane is sorane
        with TestClient(app):
            assert sorane.scheduler.is_running
        assert not sorane.scheduler.is_running

    def test_startup_survives_broken_log_renderer(self, sorane, monkeypatch):
        from sorane.api import app as app_module
        from sorane.core.logging import InternalLogger

        class BrokenLogger:
            def info(self, *args, **kwargs):
                raise OSError("stderr closed")

        assert isinstance(app_module.logger, InternalLogger)
        monkeypatch.setattr(app_module.logger, "_logger", BrokenLogger())

        with TestClient(create_app(sorane=sorane, run_scheduler=False)) as client:
            assert client.get("/health").status_code == 200

    def test_silent_when_internal_logging_disabled(self, sorane, monkeypatch):
        from sorane.api import app as app_module
        from sorane.core.logging import set_internal_logging

        calls = []

        class RecordingLogger:
            def info(self, event, **kwargs):
                calls.append(event)

        monkeypatch.setattr(app_module.logger, "_logger", RecordingLogger())
        set_internal_logging(False)

        with TestClient(create_app(sorane=sorane, run_scheduler=False)):
            pass

        assert calls == []
