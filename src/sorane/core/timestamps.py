"""
UTC timestamp utilities.

Buffered items, pause records and outbound payloads all carry ISO 8601 UTC
timestamps. Everything that needs "now" accepts a clock callable so that
expiry can be tested without sleeping.

Tags:
    timestamps, utc, datetime, sorane

Doc-Types:
    - API Reference
"""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.isoformat()


def from_iso8601(s: str | None) -> datetime | None:
    """Parse ISO 8601 string to an aware datetime (naive input is taken as UTC)."""
    if s is None:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def epoch_clock(clock: Clock) -> Callable[[], float]:
    """Adapt a datetime clock into the epoch-seconds clock the cache uses."""
    return lambda: clock().timestamp()
