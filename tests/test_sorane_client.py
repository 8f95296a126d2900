"""Tests for the ``Sorane`` composition root: wiring, status and delivery."""

from __future__ import annotations

import logging

from sorane.client import Sorane
from sorane.core.cache import InMemoryCache
from sorane.core.enums import TelemetryType


class TestWiring:
    def test_components_share_one_cache(self, sorane, cache):
        assert sorane.cache is cache
        assert sorane.buffer._cache is cache
        assert sorane.pause._cache is cache

    def test_default_memory_cache(self, settings):
        client = Sorane(settings)
        try:
            assert isinstance(client.cache, InMemoryCache)
        finally:
            client.shutdown()

    def test_context_manager_stops_scheduler(self, sorane):
        with sorane as client:
            client.start()
            assert client.scheduler.is_running
        assert not sorane.scheduler.is_running


class TestStatus:
    def test_healthy_snapshot(self, sorane):
        sorane.events.track("sale")
        status = sorane.status()

        assert status["healthy"] is True
        assert status["timestamp"] == "2025-01-15T12:00:00+00:00"
        assert status["config"] == {
            "enabled": True,
            "api_key_configured": True,
            "cache_backend": "memory",
            "api_url": "https://api.sorane.test/v1",
        }
        assert status["buffers"]["total"] == 1
        assert status["buffers"]["features"]["events"] == {"count": 1, "max_size": 5000, "percentage": 0.0}
        assert status["pauses"]["global"] is None
        assert all(p is None for p in status["pauses"]["features"].values())
        assert status["exhausted_jobs"] == 0

    def test_unhealthy_near_capacity(self, sorane_factory, settings_factory):
        sorane = sorane_factory(settings_factory(events={"enabled": True, "buffer_max_size": 5}))
        for _ in range(3):
            sorane.events.track("sale")
        assert sorane.status()["healthy"] is True

        sorane.events.track("sale")
        status = sorane.status()
        assert status["buffers"]["features"]["events"]["percentage"] == 80.0
        assert status["healthy"] is False

    def test_health_judged_per_buffer(self, sorane_factory, settings_factory):
        sorane = sorane_factory(settings_factory(
            events={"enabled": True, "buffer_max_size": 5},
            logs={"enabled": True, "buffer_max_size": 5},
        ))
        for _ in range(3):
            sorane.events.track("sale")
            sorane.logs.capture("info", "checkout")

        status = sorane.status()

        # 6 buffered in total is above 80% of either cap; each buffer is at 60%
        assert status["buffers"]["total"] == 6
        assert status["buffers"]["features"]["events"]["percentage"] == 60.0
        assert status["buffers"]["features"]["logs"]["percentage"] == 60.0
        assert status["healthy"] is True

    def test_unhealthy_when_globally_paused(self, sorane):
        sorane.pause.set_global_pause(900, 401)
        status = sorane.status()
        assert status["healthy"] is False
        assert status["pauses"]["global"]["paused"] is True
        assert status["pauses"]["global"]["reason"] == "401"

    def test_feature_pause_does_not_affect_health(self, sorane):
        sorane.pause.set_feature_pause("logs", 60, 429)
        status = sorane.status()
        assert status["healthy"] is True
        assert status["pauses"]["features"]["logs"]["time_remaining_seconds"] == 60

    def test_expired_pause_reported_inactive(self, sorane, clock):
        sorane.pause.set_feature_pause("logs", 60, 429)
        clock.advance(61)
        pause = sorane.status()["pauses"]["features"]["logs"]
        assert pause is None or pause["paused"] is False


class TestDelivery:
    def test_work_sends_every_buffered_type(self, sorane, api):
        sorane.events.track("sale")
        sorane.logs.capture("error", "disk full")

        outcomes = sorane.work()

        assert {o.telemetry_type for o in outcomes if o.status == "sent"} == {
            TelemetryType.EVENTS,
            TelemetryType.LOGS,
        }
        assert len(api.requests) == 2

    def test_dispatch_now_blocked_by_pause(self, sorane, api):
        sorane.events.track("sale")
        sorane.pause.set_feature_pause("events", 60, 429)
        assert sorane.dispatch_now("events") is None
        assert api.requests == []

    def test_dispatch_now(self, sorane, api):
        sorane.events.track("sale")
        outcome = sorane.dispatch_now(TelemetryType.EVENTS)
        assert outcome.status == "sent"
        assert api.requests[0].url.path.endswith("/events/store-batch")

    def test_unqueued_feature_sends_on_append(self, sorane_factory, settings_factory, api):
        sorane = sorane_factory(settings_factory(events={"enabled": True, "queue": False}))
        sorane.events.track("sale")

        assert len(api.requests) == 1
        assert sorane.buffer.count("events") == 0

    def test_log_handler_forwards_records(self, sorane):
        shop_logger = logging.getLogger("shop.orders")
        handler = sorane.log_handler()
        shop_logger.addHandler(handler)
        try:
            shop_logger.warning("payment declined", extra={"order_id": 42})
        finally:
            shop_logger.removeHandler(handler)

        [item] = sorane.buffer.take("logs", 10)
        assert item.data["level"] == "warning"
        assert item.data["channel"] == "shop.orders"
        assert item.data["context"] == {"order_id": 42}
