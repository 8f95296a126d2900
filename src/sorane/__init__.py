"""
Sorane - client-side telemetry buffering and delivery.

Producers (error reports, events, logs, page visits, browser errors) append
items to per-type buffers; a batch dispatcher drains them to the ingestion
API and pauses delivery per the server's responses.

Quick start::

    from sorane import Sorane, SoraneSettings

    sorane = Sorane(SoraneSettings(enabled=True, key="..."))
    sorane.events.track("user_registered", user_id=42)
    sorane.start()
"""

__version__ = "0.1.0"

from sorane.client import Sorane
from sorane.core.enums import PauseReason, PauseScope, TelemetryType
from sorane.core.errors import SoraneError
from sorane.core.logging import configure_logging, get_logger
from sorane.core.settings import SoraneSettings, get_settings
from sorane.producers.request import RequestInfo

__all__ = [
    "__version__",
    "Sorane",
    "SoraneSettings",
    "get_settings",
    "TelemetryType",
    "PauseReason",
    "PauseScope",
    "SoraneError",
    "configure_logging",
    "get_logger",
    "RequestInfo",
]
