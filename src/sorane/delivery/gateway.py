"""
HTTP client for the Sorane ingestion API.

``ApiGateway.send`` posts one batch for one telemetry type and folds every
outcome (2xx, HTTP error, timeout, connection failure, missing key, a body
that cannot be encoded) into a
:class:`BatchResult`. It never raises for ordinary HTTP failures; deciding
what a status means is the classifier's job.

Wire format:
    ``POST {api_url}/{type-endpoint}/store-batch``
    ``Authorization: Bearer {key}``
    ``{"<payload field>": [item, ...]}``

    ==================  =================================  ==========
    type                path                               field
    ==================  =================================  ==========
    errors              /errors/store-batch                errors
    events              /events/store-batch                events
    logs                /logs/store-batch                  logs
    page_visits         /page-visits/store-batch           visits
    javascript_errors   /javascript-errors/store-batch     errors
    ==================  =================================  ==========

Tags:
    http, httpx, api-client, sorane

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from sorane.core.enums import TelemetryType
from sorane.core.logging import get_internal_logger
from sorane.core.settings import SoraneSettings
from sorane.observability.metrics import PipelineMetrics

logger = get_internal_logger(__name__)


@dataclass
class BatchResult:
    """Normalized outcome of one batch request. ``status=0`` means no response."""

    status: int
    success: bool
    body: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    retry_after: int | None = None

    @classmethod
    def transport_failure(cls, error: str) -> BatchResult:
        return cls(status=0, success=False, error=error)


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> int | None:
    """Parse a ``Retry-After`` header given as delta-seconds or an HTTP-date."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    now = now or datetime.now(UTC)
    return max(0, int((when - now).total_seconds()))


class ApiGateway:
    """Sends batches to the ingestion API over a shared ``httpx.Client``.

    Example:
        gateway = ApiGateway(settings)
        result = gateway.send("events", [{"event_name": "sale"}])
        if result.status == 429:
            ...
    """

    def __init__(
        self,
        settings: SoraneSettings,
        *,
        client: httpx.Client | None = None,
        metrics: PipelineMetrics | None = None,
    ):
        self._settings = settings
        self._metrics = metrics
        self._owns_client = client is None
        # httpx.Client is thread-safe; per-request timeouts override the default
        self._client = client or httpx.Client(follow_redirects=False)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> ApiGateway:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def endpoint(self, telemetry_type: TelemetryType) -> str:
        return f"{self._settings.api_url}/{telemetry_type.endpoint}/store-batch"

    def timeout_for(self, telemetry_type: TelemetryType, batch_size: int) -> float:
        """Per-type timeout, doubled for multi-item batches."""
        timeout = float(self._settings.feature(telemetry_type).timeout_seconds)
        return timeout * 2 if batch_size > 1 else timeout

    def headers(self, telemetry_type: TelemetryType) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.key}",
            "User-Agent": f"Sorane-Python/{telemetry_type.endpoint}-batch/{self._settings.client_version}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def send(self, telemetry_type: TelemetryType | str, items: Sequence[Mapping[str, Any]]) -> BatchResult:
        """Send one batch and normalize the outcome."""
        ttype = TelemetryType.parse(telemetry_type)

        if not self._settings.key:
            logger.warning("gateway.missing_key", type=ttype.value, hint="Set SORANE_KEY to enable delivery")
            return BatchResult.transport_failure("API key not configured")

        payload = {ttype.payload_field: [dict(item) for item in items]}
        url = self.endpoint(ttype)
        started = time.perf_counter()

        try:
            response = self._client.post(
                url,
                json=payload,
                headers=self.headers(ttype),
                timeout=self.timeout_for(ttype, len(items)),
            )
        except httpx.TimeoutException as e:
            logger.warning("gateway.timeout", type=ttype.value, url=url, error=str(e))
            result = BatchResult.transport_failure(f"Request timed out: {e}")
        except httpx.HTTPError as e:
            logger.warning("gateway.transport_error", type=ttype.value, url=url, error=str(e))
            result = BatchResult.transport_failure(str(e) or e.__class__.__name__)
        except (TypeError, ValueError) as e:
            # httpx encodes with allow_nan=False
            logger.error("gateway.encode_failed", type=ttype.value, items=len(items), error=str(e))
            result = BatchResult.transport_failure(f"Batch could not be encoded as JSON: {e}")
        else:
            result = self._normalize(response)

        if self._metrics is not None:
            self._metrics.batches.labels(type=ttype.value, status=str(result.status)).inc()
            self._metrics.send_duration.labels(type=ttype.value).observe(time.perf_counter() - started)

        logger.debug(
            "gateway.sent",
            type=ttype.value,
            items=len(items),
            status=result.status,
            success=result.success,
        )
        return result

    def _normalize(self, response: httpx.Response) -> BatchResult:
        status = response.status_code
        try:
            parsed = response.json() if response.content else {}
        except ValueError:
            parsed = {}
        body = parsed if isinstance(parsed, dict) else {}

        success = 200 <= status < 300
        error = None
        if not success:
            error = body.get("message") if isinstance(body.get("message"), str) else None
            error = error or f"API request failed with status {status}"

        return BatchResult(
            status=status,
            success=success,
            body=body,
            error=error,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )


__all__ = ["BatchResult", "ApiGateway", "parse_retry_after"]
