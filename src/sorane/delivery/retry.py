"""Retry policy for dispatch jobs.

A dispatch job that fails (transport error, 5xx, unknown status) is retried
on later scheduler ticks following a fixed schedule of delays. The attempt
state is stored in the shared cache so every worker process agrees on when
the next attempt is due.

Example:
    >>> from sorane.delivery.retry import ScheduledBackoff
    >>>
    >>> strategy = ScheduledBackoff(delays=(60, 300, 900), max_attempts=3)
    >>> [strategy.next_delay(n) for n in range(3)]
    [60.0, 300.0, 900.0]
    >>> strategy.should_retry(3)
    False
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

from sorane.core.cache import CacheBackend
from sorane.core.errors import get_retry_after, is_retryable
from sorane.core.timestamps import Clock, from_iso8601, to_iso8601, utc_now


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay before next retry attempt.

        Args:
            attempt: Zero-based attempt number (0 = first retry)

        Returns:
            Delay in seconds before next attempt
        """
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        """Determine if another retry should be attempted.

        Args:
            attempt: Number of failed attempts so far
            error: The exception that caused the failure
        """
        ...


@dataclass
class ScheduledBackoff(RetryStrategy):
    """Backoff following an explicit list of delays.

    Attempts past the end of the schedule reuse the last delay.

    Attributes:
        delays: Seconds to wait after the 1st, 2nd, ... failure
        max_attempts: Total attempts before the job is considered exhausted
    """

    delays: tuple[float, ...] = (60, 300, 900)
    max_attempts: int = 3

    def next_delay(self, attempt: int) -> float:
        if not self.delays:
            return 0.0
        index = min(max(attempt, 0), len(self.delays) - 1)
        return float(self.delays[index])

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        if attempt >= self.max_attempts:
            return False
        if error is not None and not is_retryable(error):
            return False
        return True


@dataclass
class RetryState:
    """Persisted attempt state of one dispatch job."""

    attempts: int = 0
    next_attempt_at: str | None = None
    last_error: str | None = None
    errors: list[str] = field(default_factory=list)

    def due(self, now: datetime) -> bool:
        """True when no backoff window is pending."""
        until = from_iso8601(self.next_attempt_at)
        return until is None or now >= until


class RetryStateStore:
    """Keeps :class:`RetryState` per telemetry type in the shared cache."""

    def __init__(
        self,
        cache: CacheBackend,
        *,
        key_prefix: str = "sorane",
        ttl_seconds: int = 3600,
        clock: Clock = utc_now,
    ):
        self._cache = cache
        self._key_prefix = key_prefix
        self._ttl = ttl_seconds
        self._clock = clock

    def key(self, telemetry_type: str) -> str:
        return f"{self._key_prefix}:dispatch:{telemetry_type}:retry"

    def load(self, telemetry_type: str) -> RetryState:
        raw = self._cache.get(self.key(telemetry_type))
        if not isinstance(raw, dict):
            return RetryState()
        return RetryState(
            attempts=int(raw.get("attempts", 0)),
            next_attempt_at=raw.get("next_attempt_at"),
            last_error=raw.get("last_error"),
            errors=list(raw.get("errors", [])),
        )

    def record_failure(
        self,
        telemetry_type: str,
        strategy: RetryStrategy,
        error: Exception,
    ) -> RetryState:
        """Count a failed attempt and schedule the next one.

        A ``retry_after`` carried by the error stretches the delay; it never
        shortens the schedule.
        """
        state = self.load(telemetry_type)
        delay = max(strategy.next_delay(state.attempts), float(get_retry_after(error) or 0))
        state.attempts += 1
        state.last_error = str(error)
        state.errors = (state.errors + [str(error)])[-10:]
        state.next_attempt_at = to_iso8601(self._clock() + timedelta(seconds=delay))
        self._cache.set(
            self.key(telemetry_type),
            asdict(state),
            ttl_seconds=max(self._ttl, int(delay) + 60),
        )
        return state

    def reset(self, telemetry_type: str) -> None:
        self._cache.delete(self.key(telemetry_type))


__all__ = ["RetryStrategy", "ScheduledBackoff", "RetryState", "RetryStateStore"]
