"""
Per-type buffer store for pending telemetry items.

Each telemetry type owns one FIFO list in the shared cache under
``sorane:buffer:{type}``. Mutations take a per-type TTL lock
(``sorane:buffer:{type}:lock``) so many web workers can append while a
dispatcher drains the same buffer.

Manifesto:
    - **Read-then-delete under one lock:** ``take`` removes exactly what it returns
    - **Bounded:** overflow evicts the oldest items, newest wins
    - **Fail open:** a lock timeout drops the append (or returns an empty take)
      with a warning and a counted drop, never an exception
    - **Per-type locking:** independent streams never contend with each other

Architecture:
    ::

        Producer ──append──▶ [lock] get → push → trim → set [unlock]
        Dispatcher ──take──▶ [lock] get → split head/tail → set tail [unlock]
                   ──re_append (failed items, back of the queue)──▶

Examples:
    >>> store = BufferStore(InMemoryCache(), settings)
    >>> store.append("events", {"event_name": "sale"})
    True
    >>> [item.data for item in store.take("events", 10)]
    [{'event_name': 'sale'}]
    >>> store.count("events")
    0

Tags:
    buffer, queue, fifo, locking, sorane

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from sorane.core.cache import CacheBackend
from sorane.core.enums import TelemetryType
from sorane.core.logging import get_internal_logger
from sorane.core.settings import SoraneSettings
from sorane.core.timestamps import Clock, to_iso8601, utc_now
from sorane.observability.metrics import PipelineMetrics

logger = get_internal_logger(__name__)


@dataclass(frozen=True)
class BufferedItem:
    """One pending telemetry item."""

    data: dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    enqueued_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "data": self.data, "timestamp": self.enqueued_at}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> BufferedItem:
        return cls(data=dict(raw.get("data") or {}), id=str(raw.get("id")), enqueued_at=raw.get("timestamp"))


class BufferStore:
    """Type-partitioned FIFO buffers in a shared cache."""

    def __init__(
        self,
        cache: CacheBackend,
        settings: SoraneSettings,
        *,
        metrics: PipelineMetrics | None = None,
        clock: Clock = utc_now,
    ):
        self._cache = cache
        self._settings = settings
        self._metrics = metrics
        self._clock = clock
        self._prefix = settings.batch.key_prefix
        self._lock_timeout = settings.batch.lock_timeout_seconds

    # ── Keys ─────────────────────────────────────────────────────

    def key(self, telemetry_type: TelemetryType | str) -> str:
        return f"{self._prefix}:buffer:{TelemetryType.parse(telemetry_type).value}"

    @contextmanager
    def _locked(self, telemetry_type: TelemetryType) -> Iterator[bool]:
        key = self.key(telemetry_type)
        lock = self._cache.lock(f"{key}:lock", ttl_seconds=self._lock_timeout)
        acquired = lock.acquire(timeout=self._lock_timeout)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()

    def _read(self, key: str) -> list[dict[str, Any]]:
        raw = self._cache.get(key)
        return list(raw) if isinstance(raw, list) else []

    def _write(self, telemetry_type: TelemetryType, items: list[dict[str, Any]]) -> None:
        key = self.key(telemetry_type)
        if items:
            self._cache.set(key, items, ttl_seconds=self._settings.feature(telemetry_type).buffer_ttl)
        else:
            self._cache.delete(key)
        if self._metrics is not None:
            self._metrics.buffer_depth.labels(type=telemetry_type.value).set(len(items))

    def _drop(self, telemetry_type: TelemetryType, reason: str, count: int) -> None:
        if self._metrics is not None:
            self._metrics.record_drop(telemetry_type.value, reason, count)

    def _push(self, telemetry_type: TelemetryType, records: list[dict[str, Any]]) -> bool:
        with self._locked(telemetry_type) as acquired:
            if not acquired:
                logger.warning(
                    "buffer.lock_timeout",
                    type=telemetry_type.value,
                    operation="append",
                    items=len(records),
                    timeout=self._lock_timeout,
                )
                self._drop(telemetry_type, "lock_timeout", len(records))
                return False

            buffer = self._read(self.key(telemetry_type)) + records
            max_size = self._settings.feature(telemetry_type).buffer_max_size
            overflow = len(buffer) - max_size
            if overflow > 0:
                buffer = buffer[overflow:]
                logger.warning("buffer.overflow", type=telemetry_type.value, dropped=overflow, max_size=max_size)
                self._drop(telemetry_type, "overflow", overflow)
            self._write(telemetry_type, buffer)

        if self._metrics is not None:
            self._metrics.buffered.labels(type=telemetry_type.value).inc(len(records))
        return True

    def _record(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return BufferedItem(data=dict(data), enqueued_at=to_iso8601(self._clock())).to_dict()

    # ── Operations ───────────────────────────────────────────────

    def append(self, telemetry_type: TelemetryType | str, data: Mapping[str, Any]) -> bool:
        """Append one item. Returns ``False`` if it was dropped.

        Never raises: backend failures are logged and counted as drops.
        """
        ttype = TelemetryType.parse(telemetry_type)
        try:
            return self._push(ttype, [self._record(data)])
        except Exception as e:  # noqa: BLE001
            logger.warning("buffer.append_failed", type=ttype.value, error=str(e))
            self._drop(ttype, "lock_timeout", 1)
            return False

    def re_append(self, telemetry_type: TelemetryType | str, items: Iterable[BufferedItem | Mapping[str, Any]]) -> int:
        """Put previously taken items back at the end of the buffer.

        Items get fresh ids and timestamps; the ``data`` payload is unchanged.
        All items go in under one lock acquisition. Returns the number re-queued.
        """
        ttype = TelemetryType.parse(telemetry_type)
        records = [
            self._record(item.data if isinstance(item, BufferedItem) else item)
            for item in items
        ]
        if not records:
            return 0
        try:
            ok = self._push(ttype, records)
        except Exception as e:  # noqa: BLE001
            logger.warning("buffer.requeue_failed", type=ttype.value, items=len(records), error=str(e))
            self._drop(ttype, "lock_timeout", len(records))
            return 0
        if not ok:
            return 0
        if self._metrics is not None:
            self._metrics.requeued.labels(type=ttype.value).inc(len(records))
        return len(records)

    def take(self, telemetry_type: TelemetryType | str, limit: int) -> list[BufferedItem]:
        """Remove and return up to ``limit`` of the oldest items.

        Reading and removing happen under the same lock, so concurrent takes
        never return overlapping items. Returns ``[]`` on lock timeout.
        """
        ttype = TelemetryType.parse(telemetry_type)
        if limit <= 0:
            return []
        try:
            with self._locked(ttype) as acquired:
                if not acquired:
                    logger.warning(
                        "buffer.lock_timeout",
                        type=ttype.value,
                        operation="take",
                        timeout=self._lock_timeout,
                    )
                    return []
                buffer = self._read(self.key(ttype))
                if not buffer:
                    return []
                head, tail = buffer[:limit], buffer[limit:]
                self._write(ttype, tail)
        except Exception as e:  # noqa: BLE001
            logger.warning("buffer.take_failed", type=ttype.value, error=str(e))
            return []
        return [BufferedItem.from_dict(raw) for raw in head]

    def count(self, telemetry_type: TelemetryType | str) -> int:
        """Number of pending items (lock-free read)."""
        ttype = TelemetryType.parse(telemetry_type)
        try:
            return len(self._read(self.key(ttype)))
        except Exception as e:  # noqa: BLE001
            logger.warning("buffer.count_failed", type=ttype.value, error=str(e))
            return 0

    def clear(self, telemetry_type: TelemetryType | str) -> None:
        ttype = TelemetryType.parse(telemetry_type)
        self._cache.delete(self.key(ttype))
        if self._metrics is not None:
            self._metrics.buffer_depth.labels(type=ttype.value).set(0)

    def available_types(self) -> list[TelemetryType]:
        """Telemetry types that currently have pending items."""
        return [t for t in TelemetryType if self.count(t) > 0]


__all__ = ["BufferedItem", "BufferStore"]
