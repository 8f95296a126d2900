"""Sorane Core -- primitives shared by the delivery pipeline and the producers.

Architecture::

    enums.py         TelemetryType, PauseReason, PauseScope, ActionKind
    errors.py        Structured error hierarchy (SoraneError, DeliveryError)
    logging.py       structlog setup and the isolated internal channel
    settings.py      pydantic-settings configuration (SoraneSettings)
    cache.py         CacheBackend protocol, InMemoryCache, RedisCache, locks
    timestamps.py    UTC helpers and injectable clocks
    hashing.py       SHA-256 identifiers for sessions and user agents
    sanitize.py      JSON-safe conversion and truncation helpers
"""

from sorane.core.enums import PauseReason, PauseScope, TelemetryType
from sorane.core.errors import SoraneError

__all__ = ["PauseReason", "PauseScope", "TelemetryType", "SoraneError"]
