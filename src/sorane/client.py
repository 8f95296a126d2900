"""
Sorane client: the composition root.

Everything is wired here from one :class:`SoraneSettings` instance. No
component looks settings up on its own and there are no module globals,
so a test can build an isolated client with an in-memory cache, a mock
HTTP transport and a fake clock.

    ┌───────────────────────────────────────────────────────────────────┐
    │ Sorane(settings)                                                  │
    │                                                                   │
    │   cache ──┬── BufferStore ──┬── producers (errors, events, logs,   │
    │           │                 │    page_visits, javascript_errors)  │
    │           ├── PauseState    │                                     │
    │           │                 └── BatchDispatcher ── ApiGateway     │
    │           └── DispatchJob (retry state + unique lock)             │
    │                    │                                              │
    │              DispatchScheduler (daemon thread)                    │
    └───────────────────────────────────────────────────────────────────┘

Example:
    >>> sorane = Sorane(SoraneSettings(enabled=True, key="sk_live_..."))
    >>> sorane.events.track("checkout_started", {"cart_value": 42})
    >>> sorane.start()          # periodic delivery
    >>> ...
    >>> sorane.shutdown()
"""

from __future__ import annotations

import random
from collections.abc import Callable
from typing import Any

import httpx

from sorane.core.cache import CacheBackend, InMemoryCache, create_cache
from sorane.core.enums import TelemetryType
from sorane.core.logging import configure_logging, get_internal_logger, set_internal_logging
from sorane.core.settings import SoraneSettings, get_settings
from sorane.core.timestamps import Clock, epoch_clock, to_iso8601, utc_now
from sorane.delivery.buffer import BufferStore
from sorane.delivery.dispatcher import BatchDispatcher, DispatchJob, JobOutcome
from sorane.delivery.gateway import ApiGateway
from sorane.delivery.pause import PauseRecord, PauseState
from sorane.delivery.retry import RetryStrategy
from sorane.delivery.scheduler import DispatchScheduler
from sorane.observability.metrics import PipelineMetrics
from sorane.producers.errors import ErrorReporter
from sorane.producers.events import EventTracker
from sorane.producers.javascript_errors import JavaScriptErrorProducer
from sorane.producers.logs import LogProducer, SoraneLogHandler
from sorane.producers.page_visits import PageVisitProducer, RequestFilter, VisitClassifier

logger = get_internal_logger(__name__)

BUFFER_WARNING_RATIO = 0.5
BUFFER_CRITICAL_RATIO = 0.8


class Sorane:
    """Owns every pipeline component for one process."""

    def __init__(
        self,
        settings: SoraneSettings | None = None,
        *,
        cache: CacheBackend | None = None,
        http_client: httpx.Client | None = None,
        metrics: PipelineMetrics | None = None,
        clock: Clock = utc_now,
        retry_strategy: RetryStrategy | None = None,
        request_filter: RequestFilter | None = None,
        visit_classifier: VisitClassifier | None = None,
        random_fn: Callable[[], float] = random.random,
        configure_logs: bool = False,
    ):
        self.settings = settings or get_settings()
        self.clock = clock

        internal = self.settings.internal_logging
        set_internal_logging(internal.enabled)
        if configure_logs:
            configure_logging(level=internal.level, json_format=internal.json_format, channel=internal.channel)

        batch = self.settings.batch
        if cache is None:
            if batch.cache_backend == "memory":
                cache = InMemoryCache(clock=epoch_clock(clock))
            else:
                cache = create_cache(batch.cache_backend, redis_url=batch.redis_url)
        self.cache = cache
        self.metrics = metrics or PipelineMetrics()

        self.buffer = BufferStore(cache, self.settings, metrics=self.metrics, clock=clock)
        self.pause = PauseState(cache, key_prefix=batch.key_prefix, clock=clock)
        self.gateway = ApiGateway(self.settings, client=http_client, metrics=self.metrics)
        self.dispatcher = BatchDispatcher(
            self.buffer, self.gateway, self.pause, self.settings, metrics=self.metrics
        )
        self.job = DispatchJob(
            self.dispatcher, cache, self.settings,
            strategy=retry_strategy, clock=clock, metrics=self.metrics,
        )
        self.scheduler = DispatchScheduler(
            self.job, self.buffer, self.pause, interval_seconds=batch.dispatch_interval_seconds
        )

        common: dict[str, Any] = {"clock": clock, "immediate_dispatch": self.dispatch_now}
        self.errors = ErrorReporter(self.buffer, self.settings, **common)
        self.events = EventTracker(self.buffer, self.settings, **common)
        self.logs = LogProducer(self.buffer, self.settings, **common)
        self.page_visits = PageVisitProducer(
            self.buffer, self.settings,
            cache=cache, request_filter=request_filter, classifier=visit_classifier, **common,
        )
        self.javascript_errors = JavaScriptErrorProducer(
            self.buffer, self.settings, random_fn=random_fn, **common
        )

    # ── Delivery ─────────────────────────────────────────────────────────

    def dispatch_now(self, telemetry_type: TelemetryType | str) -> JobOutcome | None:
        """Run the dispatch job for one type right away (``queue=False`` features)."""
        ttype = TelemetryType.parse(telemetry_type)
        if self.pause.is_delivery_blocked(ttype):
            return None
        return self.job.run(ttype)

    def work(self, types: list[TelemetryType | str] | None = None) -> list[JobOutcome]:
        """One dispatch pass over ``types`` (default: every type)."""
        return self.scheduler.tick(types)

    def start(self) -> None:
        self.scheduler.start()

    def shutdown(self, timeout: float = 5.0) -> None:
        self.scheduler.stop(timeout=timeout)
        self.gateway.close()

    def log_handler(self, level: int = 0) -> SoraneLogHandler:
        """A ``logging.Handler`` that forwards stdlib records to the logs stream."""
        return SoraneLogHandler(self.logs, level=level)

    # ── Status ───────────────────────────────────────────────────────────

    def _pause_info(self, record: PauseRecord | None) -> dict[str, Any] | None:
        if record is None:
            return None
        now = self.pause.now()
        return {
            "paused": record.is_active(now),
            "paused_until": to_iso8601(record.paused_until),
            "reason": record.reason.value,
            "time_remaining_seconds": record.remaining_seconds(now),
        }

    def status(self) -> dict[str, Any]:
        """Operator snapshot: config, pauses, buffer depths and health."""
        global_pause = self._pause_info(self.pause.get_global_pause())
        feature_pauses = {
            t.value: self._pause_info(self.pause.get_feature_pause(t)) for t in TelemetryType
        }

        buffers: dict[str, dict[str, Any]] = {}
        total = 0
        over_capacity = False
        for t in TelemetryType:
            count = self.buffer.count(t)
            max_size = self.settings.feature(t).buffer_max_size
            percentage = (count / max_size) * 100 if max_size else 0.0
            # each buffer against its own cap
            over_capacity = over_capacity or percentage >= BUFFER_CRITICAL_RATIO * 100
            buffers[t.value] = {"count": count, "max_size": max_size, "percentage": round(percentage, 1)}
            total += count

        globally_paused = bool(global_pause and global_pause["paused"])
        return {
            "healthy": not globally_paused and not over_capacity,
            "timestamp": to_iso8601(self.clock()),
            "config": {
                "enabled": self.settings.enabled,
                "api_key_configured": self.settings.api_key_configured,
                "cache_backend": self.settings.batch.cache_backend,
                "api_url": self.settings.api_url,
            },
            "pauses": {"global": global_pause, "features": feature_pauses},
            "buffers": {"total": total, "features": buffers},
            "exhausted_jobs": int(self.metrics.exhausted.total()),
            "scheduler": self.scheduler.health(),
        }

    def __enter__(self) -> Sorane:
        return self

    def __exit__(self, *args: Any) -> None:
        self.shutdown()


__all__ = ["Sorane"]
