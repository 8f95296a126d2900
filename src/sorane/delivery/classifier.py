"""
Response classifier: maps a batch outcome to a delivery action.

``classify`` is a pure function. It looks only at the telemetry type, the
batch size and the normalized :class:`BatchResult`, and returns an
:class:`Action` describing what to requeue, what to drop, which pause to set
and whether the dispatch job should retry. The dispatcher applies it.

Decision table:
    ::

        status        requeue          pause      seconds             retry
        ───────────   ──────────────   ────────   ─────────────────   ─────
        0 (network)   all              -          -                   yes
        2xx           unprocessed idx  -          -                   no
        401           all              global     900                 no
        403           all              feature    900                 no
        413           none (drop)      feature    900                 no
        422           none (drop)      feature    900                 no
        429           all              feature    Retry-After or 60   no
        500           all              -          -                   yes
        other         all              -          -                   yes

``unprocessed_indexes`` are positions in the batch exactly as it was sent.
Out-of-range and duplicate positions are ignored. ``ignored`` counts are
informational: the server filtered those items on purpose.

Tags:
    classifier, decision-table, pause, requeue, sorane

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sorane.core.enums import ActionKind, PauseReason, PauseScope, TelemetryType
from sorane.delivery.gateway import BatchResult

AUTH_PAUSE_SECONDS = 900
REJECT_PAUSE_SECONDS = 900
DEFAULT_RETRY_AFTER_SECONDS = 60


@dataclass(frozen=True)
class Action:
    """What to do with a batch after one send attempt."""

    kind: ActionKind
    requeue_indices: tuple[int, ...] = ()
    pause_scope: PauseScope = PauseScope.NONE
    pause_seconds: int | None = None
    reason: PauseReason | None = None
    retry: bool = False
    log_level: str = "info"
    message: str = ""
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def requeue_count(self) -> int:
        return len(self.requeue_indices)

    def dropped_count(self, batch_size: int) -> int:
        """Items that are neither accepted nor requeued (only for DROP_ALL)."""
        return batch_size if self.kind is ActionKind.DROP_ALL else 0


def _requeue_all(batch_size: int, **kwargs: Any) -> Action:
    return Action(kind=ActionKind.REQUEUE_ALL, requeue_indices=tuple(range(batch_size)), **kwargs)


def _item_counts(data: Mapping[str, Any]) -> dict[str, int]:
    items = data.get("items")
    if not isinstance(items, Mapping):
        return {}
    counts = {}
    for key in ("received", "processed", "ignored", "failed", "unprocessed"):
        try:
            counts[key] = int(items.get(key, 0) or 0)
        except (TypeError, ValueError):
            counts[key] = 0
    return counts


def _unprocessed_indices(body: Mapping[str, Any], batch_size: int) -> tuple[int, ...]:
    data = body.get("data") if isinstance(body.get("data"), Mapping) else body
    raw = data.get("unprocessed_indexes", body.get("unprocessed_indexes")) or []
    if not isinstance(raw, list | tuple):
        return ()
    seen: list[int] = []
    for value in raw:
        try:
            index = int(value)
        except (TypeError, ValueError):
            continue
        if 0 <= index < batch_size and index not in seen:
            seen.append(index)
    return tuple(sorted(seen))


def classify(telemetry_type: TelemetryType | str, batch_size: int, result: BatchResult) -> Action:
    """Decide requeue scope, pause and retry for one batch outcome."""
    TelemetryType.parse(telemetry_type)
    status = result.status

    if status == 0:
        return _requeue_all(
            batch_size,
            retry=True,
            log_level="error",
            message=f"Network error during batch send: {result.error or 'unknown error'}",
        )

    if 200 <= status < 300:
        data = result.body.get("data") if isinstance(result.body.get("data"), Mapping) else {}
        indices = _unprocessed_indices(result.body, batch_size)
        counts = _item_counts(data)
        if indices:
            return Action(
                kind=ActionKind.REQUEUE_PARTIAL,
                requeue_indices=indices,
                log_level="info",
                message="Some items were not processed; requeueing them",
                counts=counts,
            )
        return Action(
            kind=ActionKind.ACCEPT_PROCESSED,
            log_level="warning" if counts.get("failed", 0) > 0 else "debug",
            message="Batch accepted",
            counts=counts,
        )

    if status == 401:
        return _requeue_all(
            batch_size,
            pause_scope=PauseScope.GLOBAL,
            pause_seconds=AUTH_PAUSE_SECONDS,
            reason=PauseReason.UNAUTHORIZED,
            log_level="error",
            message="API authentication failed - invalid or revoked API key",
        )

    if status == 403:
        return _requeue_all(
            batch_size,
            pause_scope=PauseScope.FEATURE,
            pause_seconds=AUTH_PAUSE_SECONDS,
            reason=PauseReason.FORBIDDEN,
            log_level="error",
            message="API request forbidden",
        )

    if status == 413:
        return Action(
            kind=ActionKind.DROP_ALL,
            pause_scope=PauseScope.FEATURE,
            pause_seconds=REJECT_PAUSE_SECONDS,
            reason=PauseReason.PAYLOAD_TOO_LARGE,
            log_level="critical",
            message="Payload too large - indicates client bug",
        )

    if status == 422:
        return Action(
            kind=ActionKind.DROP_ALL,
            pause_scope=PauseScope.FEATURE,
            pause_seconds=REJECT_PAUSE_SECONDS,
            reason=PauseReason.UNPROCESSABLE,
            log_level="error",
            message="Validation failed - indicates schema drift or malformed items",
        )

    if status == 429:
        seconds = result.retry_after if result.retry_after is not None else DEFAULT_RETRY_AFTER_SECONDS
        return _requeue_all(
            batch_size,
            pause_scope=PauseScope.FEATURE,
            pause_seconds=seconds,
            reason=PauseReason.RATE_LIMITED,
            log_level="warning",
            message="Rate limit exceeded",
        )

    if status == 500:
        return _requeue_all(
            batch_size,
            retry=True,
            log_level="error",
            message="Server error during batch processing",
        )

    return _requeue_all(
        batch_size,
        retry=True,
        log_level="error",
        message=f"Unexpected API response status {status}",
    )


__all__ = ["Action", "classify"]
