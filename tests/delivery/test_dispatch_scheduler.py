"""Tests for ``DispatchScheduler`` ticks and thread lifecycle."""

from __future__ import annotations

import threading
import time

import pytest

from sorane.core.enums import TelemetryType
from sorane.delivery.dispatcher import BatchDispatcher, DispatchJob
from sorane.delivery.gateway import ApiGateway
from sorane.delivery.scheduler import DispatchScheduler


@pytest.fixture
def job(buffer, pause, settings, api, cache, clock, metrics):
    gateway = ApiGateway(settings, client=api.client(), metrics=metrics)
    dispatcher = BatchDispatcher(buffer, gateway, pause, settings, metrics=metrics)
    return DispatchJob(dispatcher, cache, settings, clock=clock, metrics=metrics)


@pytest.fixture
def scheduler(job, buffer, pause):
    sched = DispatchScheduler(job, buffer, pause, interval_seconds=0.01)
    yield sched
    sched.stop(timeout=2.0)


class TestTick:
    def test_runs_types_with_items(self, scheduler, buffer, api):
        buffer.append("events", {"a": 1})
        buffer.append("logs", {"b": 2})

        outcomes = scheduler.tick()

        assert [o.telemetry_type for o in outcomes] == [TelemetryType.EVENTS, TelemetryType.LOGS]
        assert all(o.status == "sent" for o in outcomes)
        assert len(api.requests) == 2

    def test_global_pause_skips_everything(self, scheduler, buffer, pause, api):
        buffer.append("events", {"a": 1})
        pause.set_global_pause(900, 401)
        assert scheduler.tick() == []
        assert api.requests == []
        assert buffer.count("events") == 1

    def test_feature_pause_skips_one_type(self, scheduler, buffer, pause):
        buffer.append("events", {"a": 1})
        buffer.append("logs", {"b": 2})
        pause.set_feature_pause("events", 60, 429)

        outcomes = scheduler.tick()

        assert [o.telemetry_type for o in outcomes] == [TelemetryType.LOGS]
        assert buffer.count("events") == 1

    def test_resumes_after_pause_expires(self, scheduler, buffer, pause, clock):
        buffer.append("events", {"a": 1})
        pause.set_feature_pause("events", 60, 429)
        assert scheduler.tick() == []
        clock.advance(60)
        assert [o.status for o in scheduler.tick()] == ["sent"]

    def test_selected_types_only(self, scheduler, buffer):
        buffer.append("events", {"a": 1})
        buffer.append("logs", {"b": 2})
        outcomes = scheduler.tick(["logs"])
        assert [o.telemetry_type for o in outcomes] == [TelemetryType.LOGS]

    def test_drains_disabled_features(self, job, buffer, pause, settings_factory, api):
        # Items buffered before a feature was switched off still go out
        buffer.append("logs", {"b": 2})
        job.dispatcher._settings = settings_factory(logs={"enabled": False})
        sched = DispatchScheduler(job, buffer, pause)
        assert [o.status for o in sched.tick()] == ["sent"]

    def test_counts_ticks(self, scheduler):
        scheduler.tick()
        scheduler.tick()
        assert scheduler.tick_count == 2
        assert scheduler.health()["last_tick"] is not None

    def test_failing_type_does_not_block_others(self, scheduler, job, buffer, api, monkeypatch):
        buffer.append("errors", {"a": 1})
        buffer.append("events", {"b": 2})
        real_run = job.run

        def run(ttype, **kwargs):
            if ttype is TelemetryType.ERRORS:
                raise ValueError("retry state is corrupt")
            return real_run(ttype, **kwargs)

        monkeypatch.setattr(job, "run", run)

        outcomes = scheduler.tick()

        assert [(o.telemetry_type, o.status) for o in outcomes] == [
            (TelemetryType.ERRORS, "error"),
            (TelemetryType.EVENTS, "sent"),
        ]
        assert outcomes[0].error == "retry state is corrupt"
        assert buffer.count("events") == 0

    def test_non_finite_item_does_not_block_pass(self, scheduler, buffer, api, metrics):
        buffer.append("errors", {"message": "boom", "context": {"ratio": float("nan")}})
        buffer.append("errors", {"message": "ok", "context": {"ratio": 0.5}})
        buffer.append("events", {"event_name": "sale"})

        outcomes = scheduler.tick()

        assert [o.status for o in outcomes] == ["sent", "sent"]
        assert api.payload(0) == {"errors": [{"message": "ok", "context": {"ratio": 0.5}}]}
        assert api.payload(1) == {"events": [{"event_name": "sale"}]}
        assert metrics.dropped.labels(type="errors", reason="unencodable").value == 1


class TestLifecycle:
    def test_start_and_stop(self, scheduler, buffer):
        buffer.append("events", {"a": 1})
        scheduler.start()
        assert scheduler.is_running

        deadline = time.monotonic() + 5.0
        while buffer.count("events") and time.monotonic() < deadline:
            time.sleep(0.01)
        assert buffer.count("events") == 0

        scheduler.stop(timeout=2.0)
        assert not scheduler.is_running
        assert scheduler.health()["healthy"] is False

    def test_double_start_is_ignored(self, scheduler):
        scheduler.start()
        thread = scheduler._thread
        scheduler.start()
        assert scheduler._thread is thread

    def test_stop_without_start(self, scheduler):
        scheduler.stop()
        assert not scheduler.is_running

    def test_run_forever_until_stopped(self, scheduler):
        worker = threading.Thread(target=scheduler.run_forever)
        worker.start()

        deadline = time.monotonic() + 5.0
        while scheduler.tick_count < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
        scheduler.stop()
        worker.join(timeout=2.0)

        assert not worker.is_alive()
        assert scheduler.tick_count >= 3

    def test_health(self, scheduler):
        health = scheduler.health()
        assert health["backend"] == "thread"
        assert health["interval_seconds"] == 0.01
        assert health["tick_count"] == 0
