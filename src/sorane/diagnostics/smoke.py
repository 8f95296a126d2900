"""End-to-end smoke test for one telemetry type.

``run_smoke_test`` builds a sample item through the type's real producer,
on a throwaway in-memory buffer, and posts it straight to the ingestion API
with the client's gateway. The result tells an operator whether the key,
the URL and the payload shape are accepted, without touching the shared
buffer or the pause state.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sorane.core.cache import InMemoryCache
from sorane.core.enums import TelemetryType
from sorane.core.errors import MissingConfigError
from sorane.core.logging import get_internal_logger
from sorane.delivery.buffer import BufferStore
from sorane.producers.errors import ErrorReporter
from sorane.producers.events import EventTracker
from sorane.producers.javascript_errors import JavaScriptErrorProducer, validate_payload
from sorane.producers.logs import LogProducer
from sorane.producers.page_visits import PageVisitProducer
from sorane.producers.request import RequestInfo

if TYPE_CHECKING:
    from sorane.client import Sorane

logger = get_internal_logger(__name__)

SAMPLE_SOURCE = "sorane test"
SAMPLE_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class SmokeResult:
    telemetry_type: TelemetryType
    passed: bool
    message: str
    status: int | None = None
    items: int = 0


# ── Sample producers ─────────────────────────────────────────────────────


def _sample_error(sorane: Sorane, buffer: BufferStore) -> None:
    reporter = ErrorReporter(buffer, sorane.settings, clock=sorane.clock)
    try:
        raise RuntimeError("Sorane test error: raised on purpose by `sorane test`")
    except RuntimeError as e:
        reporter.report(e)


def _sample_event(sorane: Sorane, buffer: BufferStore) -> None:
    tracker = EventTracker(buffer, sorane.settings, clock=sorane.clock)
    tracker.track("test_event", {"test_property": "test_value", "source": SAMPLE_SOURCE})


def _sample_log(sorane: Sorane, buffer: BufferStore) -> None:
    producer = LogProducer(buffer, sorane.settings, clock=sorane.clock)
    producer.capture("info", "Sorane test log entry", context={"source": SAMPLE_SOURCE})


def _sample_page_visit(sorane: Sorane, buffer: BufferStore) -> None:
    producer = PageVisitProducer(buffer, sorane.settings, cache=InMemoryCache(), clock=sorane.clock)
    request = RequestInfo(
        url="https://example.com/sorane-test?utm_source=sorane_test",
        headers={"User-Agent": SAMPLE_USER_AGENT, "Accept-Language": "en-US"},
    )
    # Filters and bot scoring are bypassed: the sample is known to be synthetic
    producer.submit(producer.collect(request))


def _sample_javascript_error(sorane: Sorane, buffer: BufferStore) -> None:
    producer = JavaScriptErrorProducer(buffer, sorane.settings, clock=sorane.clock)
    payload = validate_payload({
        "message": "Sorane test error: raised on purpose by `sorane test`",
        "type": "Error",
        "url": "https://example.com/sorane-test",
        "context": {"source": SAMPLE_SOURCE},
    })
    request = RequestInfo(url="https://example.com/sorane-test", headers={"User-Agent": SAMPLE_USER_AGENT})
    producer.submit(producer.build(payload, request=request))


_SAMPLERS: dict[TelemetryType, Callable[[Sorane, BufferStore], None]] = {
    TelemetryType.ERRORS: _sample_error,
    TelemetryType.EVENTS: _sample_event,
    TelemetryType.LOGS: _sample_log,
    TelemetryType.PAGE_VISITS: _sample_page_visit,
    TelemetryType.JAVASCRIPT_ERRORS: _sample_javascript_error,
}


# ── Runner ───────────────────────────────────────────────────────────────


def run_smoke_test(sorane: Sorane, telemetry_type: TelemetryType | str) -> SmokeResult:
    """Produce one sample item for ``telemetry_type`` and send it."""
    ttype = TelemetryType.parse(telemetry_type)

    try:
        sorane.settings.require_key()
    except MissingConfigError as e:
        return SmokeResult(ttype, False, e.message)
    if not sorane.settings.feature_enabled(ttype):
        return SmokeResult(ttype, False, "Feature is disabled (check SORANE_ENABLED and the feature's enabled flag)")

    scratch = BufferStore(InMemoryCache(), sorane.settings, clock=sorane.clock)
    _SAMPLERS[ttype](sorane, scratch)
    items = scratch.take(ttype, 100)
    if not items:
        return SmokeResult(ttype, False, "The producer did not buffer a sample item")

    result = sorane.gateway.send(ttype, [item.data for item in items])
    logger.info("smoke.sent", type=ttype.value, status=result.status, success=result.success)

    if result.success:
        message = f"Accepted by the API (HTTP {result.status})"
    elif result.status == 0:
        message = result.error or "No response from the API"
    else:
        message = f"HTTP {result.status}: {result.error}"
    return SmokeResult(ttype, result.success, message, status=result.status, items=len(items))


__all__ = ["SmokeResult", "run_smoke_test"]
