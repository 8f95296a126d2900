"""
Global and per-feature delivery pauses.

A pause is a small record ``{paused_until, reason}`` stored in the shared
cache with a TTL equal to its duration. It is self-expiring twice over: the
cache drops the key at TTL, and readers treat any record whose
``paused_until`` has passed as absent even if it is still stored.

Keys:
    - ``sorane.global.pause``            one per deployment (401)
    - ``sorane.feature.{type}.pause``    one per telemetry type (403/413/422/429/exhausted retries)

Examples:
    >>> state = PauseState(InMemoryCache())
    >>> state.set_feature_pause("events", 45, PauseReason.RATE_LIMITED)
    >>> state.is_feature_paused("events")
    True
    >>> state.get_feature_pause("events").reason
    <PauseReason.RATE_LIMITED: '429'>

Tags:
    pause, circuit-breaker, ttl, sorane

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sorane.core.cache import CacheBackend
from sorane.core.enums import PauseReason, TelemetryType
from sorane.core.logging import get_internal_logger
from sorane.core.timestamps import Clock, from_iso8601, to_iso8601, utc_now

logger = get_internal_logger(__name__)


@dataclass(frozen=True)
class PauseRecord:
    """A stored pause with its expiry and reason code."""

    paused_until: datetime
    reason: PauseReason

    def is_active(self, now: datetime) -> bool:
        return now < self.paused_until

    def remaining_seconds(self, now: datetime) -> int:
        return max(0, int((self.paused_until - now).total_seconds()))

    def to_dict(self) -> dict[str, Any]:
        return {"paused_until": to_iso8601(self.paused_until), "reason": self.reason.value}

    @classmethod
    def from_dict(cls, raw: Any) -> PauseRecord | None:
        if not isinstance(raw, dict) or "paused_until" not in raw:
            return None
        try:
            until = from_iso8601(raw["paused_until"])
        except (TypeError, ValueError):
            return None
        if until is None:
            return None
        return cls(paused_until=until, reason=PauseReason.parse(raw.get("reason", "other")))


class PauseState:
    """Reads and writes pause records in the shared cache."""

    def __init__(self, cache: CacheBackend, *, key_prefix: str = "sorane", clock: Clock = utc_now):
        self._cache = cache
        self._prefix = key_prefix
        self._clock = clock

    @property
    def global_key(self) -> str:
        return f"{self._prefix}.global.pause"

    def feature_key(self, telemetry_type: TelemetryType | str) -> str:
        return f"{self._prefix}.feature.{TelemetryType.parse(telemetry_type).value}.pause"

    def now(self) -> datetime:
        return self._clock()

    def _set(self, key: str, seconds: int, reason: PauseReason | str | int) -> PauseRecord:
        # A zero or negative duration would never expire in most backends
        seconds = max(1, int(seconds))
        record = PauseRecord(
            paused_until=self._clock() + timedelta(seconds=seconds),
            reason=PauseReason.parse(reason),
        )
        self._cache.set(key, record.to_dict(), ttl_seconds=seconds)
        return record

    def _active(self, key: str) -> bool:
        record = PauseRecord.from_dict(self._cache.get(key))
        return record is not None and record.is_active(self._clock())

    # ── Global ───────────────────────────────────────────────────

    def set_global_pause(self, seconds: int, reason: PauseReason | str | int) -> PauseRecord:
        record = self._set(self.global_key, seconds, reason)
        logger.warning("pause.global_set", seconds=seconds, reason=record.reason.value)
        return record

    def is_globally_paused(self) -> bool:
        return self._active(self.global_key)

    def get_global_pause(self) -> PauseRecord | None:
        return PauseRecord.from_dict(self._cache.get(self.global_key))

    def clear_global_pause(self) -> None:
        self._cache.delete(self.global_key)
        logger.info("pause.global_cleared")

    # ── Feature ──────────────────────────────────────────────────

    def set_feature_pause(
        self,
        telemetry_type: TelemetryType | str,
        seconds: int,
        reason: PauseReason | str | int,
    ) -> PauseRecord:
        record = self._set(self.feature_key(telemetry_type), seconds, reason)
        logger.warning(
            "pause.feature_set",
            type=TelemetryType.parse(telemetry_type).value,
            seconds=seconds,
            reason=record.reason.value,
        )
        return record

    def is_feature_paused(self, telemetry_type: TelemetryType | str) -> bool:
        return self._active(self.feature_key(telemetry_type))

    def get_feature_pause(self, telemetry_type: TelemetryType | str) -> PauseRecord | None:
        return PauseRecord.from_dict(self._cache.get(self.feature_key(telemetry_type)))

    def clear_feature_pause(self, telemetry_type: TelemetryType | str) -> None:
        self._cache.delete(self.feature_key(telemetry_type))
        logger.info("pause.feature_cleared", type=TelemetryType.parse(telemetry_type).value)

    def is_delivery_blocked(self, telemetry_type: TelemetryType | str) -> bool:
        """True if either the global or the feature pause is active."""
        return self.is_globally_paused() or self.is_feature_paused(telemetry_type)


__all__ = ["PauseRecord", "PauseState"]
