"""Periodic dispatch scheduler.

Drives :class:`DispatchJob` once per telemetry type per tick. A tick is also
what ``sorane work`` runs once from the command line.

┌──────────────────────────────────────────────────────────────────────┐
│  DispatchScheduler                                                   │
│                                                                      │
│   start()  ─▶  daemon thread                                         │
│                  while not stop_event.wait(interval):                │
│                      tick()                                          │
│                                                                      │
│   tick()                                                             │
│     globally paused?              → skip everything                  │
│     for each type:                                                   │
│        feature paused?            → skip type                        │
│        buffer empty?              → skip type                        │
│        DispatchJob.run(type)      → a raise is logged, pass goes on  │
│                                                                      │
│   stop()  ─▶  stop_event.set(); thread.join(timeout)                 │
└──────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sorane.core.enums import TelemetryType
from sorane.core.logging import get_internal_logger
from sorane.delivery.buffer import BufferStore
from sorane.delivery.dispatcher import DispatchJob, JobOutcome
from sorane.delivery.pause import PauseState

logger = get_internal_logger(__name__)


class DispatchScheduler:
    """Runs dispatch ticks on a daemon thread.

    Example:
        >>> scheduler = DispatchScheduler(job, buffer, pause, interval_seconds=60)
        >>> scheduler.start()
        >>> # ... on shutdown ...
        >>> scheduler.stop()
    """

    name = "thread"

    def __init__(
        self,
        job: DispatchJob,
        buffer: BufferStore,
        pause: PauseState,
        *,
        interval_seconds: float = 60.0,
    ) -> None:
        self.job = job
        self.buffer = buffer
        self.pause = pause
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._started = False
        self._lock = threading.Lock()

    def tick(self, types: Iterable[TelemetryType | str] | None = None) -> list[JobOutcome]:
        """Run one dispatch pass over ``types`` (default: every type)."""
        with self._lock:
            self._tick_count += 1
            self._last_tick = datetime.now(UTC)

        if self.pause.is_globally_paused():
            record = self.pause.get_global_pause()
            logger.info(
                "scheduler.globally_paused",
                reason=record.reason.value if record else None,
            )
            return []

        selected = [TelemetryType.parse(t) for t in types] if types is not None else list(TelemetryType)
        outcomes: list[JobOutcome] = []
        for ttype in selected:
            if self.pause.is_feature_paused(ttype):
                logger.debug("scheduler.feature_paused", type=ttype.value)
                continue
            if self.buffer.count(ttype) == 0:
                continue
            try:
                outcomes.append(self.job.run(ttype))
            except Exception as e:  # noqa: BLE001
                # One failing type must not starve the rest of the pass
                logger.error("scheduler.job_failed", type=ttype.value, error=str(e), error_type=type(e).__name__)
                outcomes.append(JobOutcome(ttype, "error", error=str(e)))
        return outcomes

    def start(self) -> None:
        """Start the tick loop in a daemon thread."""
        if self._started:
            logger.warning("scheduler.already_started")
            return

        self._stop_event.clear()

        def _loop() -> None:
            logger.info("scheduler.started", interval_seconds=self._interval)
            while not self._stop_event.wait(self._interval):
                try:
                    self.tick()
                except Exception as e:  # noqa: BLE001
                    logger.error("scheduler.tick_failed", error=str(e))
            logger.info("scheduler.stopped")

        self._thread = threading.Thread(target=_loop, daemon=True, name="sorane-dispatch")
        self._thread.start()
        self._started = True

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the loop, waiting up to ``timeout`` seconds for the current tick."""
        self._stop_event.set()
        if not self._started:
            return

        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("scheduler.stop_timeout")

        self._started = False

    def run_forever(self) -> None:
        """Tick in the calling thread until :meth:`stop` is called (CLI ``--loop``)."""
        self._stop_event.clear()
        self.tick()
        while not self._stop_event.wait(self._interval):
            self.tick()

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "backend": self.name,
            "tick_count": self._tick_count,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "interval_seconds": self._interval,
        }

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count


__all__ = ["DispatchScheduler"]
