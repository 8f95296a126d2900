"""
Batch dispatcher and the durable dispatch job around it.

One dispatch cycle for one telemetry type walks
``IDLE → FETCHING → SENDING → RECONCILING → IDLE``:

1. take up to ``batch_max_size`` items from the buffer (the buffer lock is
   released before any network I/O)
2. send their ``data`` payloads through the gateway
3. classify the result and apply it: requeue, drop, pause, log, count
4. raise :class:`DeliveryError` when the outcome asks for a job-level retry

:class:`DispatchJob` wraps a cycle the way a queued job would: at most one
job per type runs at a time across processes, failures are retried on later
ticks following the backoff schedule, and an exhausted job pauses the
feature with reason ``500`` and logs critically.

Architecture:
    ::

        DispatchScheduler.tick()
          └─ DispatchJob.run(type)
               ├─ unique lock  sorane:batch:{type}
               ├─ backoff gate (RetryStateStore)
               └─ BatchDispatcher.dispatch(type)
                    take → send → classify → reconcile

Tags:
    dispatcher, batching, retry, state-machine, sorane

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sorane.core.cache import CacheBackend
from sorane.core.enums import ActionKind, DispatchState, PauseReason, PauseScope, TelemetryType
from sorane.core.errors import DeliveryError, ErrorCategory, SoraneError
from sorane.core.logging import LogContext, get_internal_logger
from sorane.core.sanitize import is_strict_json
from sorane.core.settings import SoraneSettings
from sorane.core.timestamps import Clock, utc_now
from sorane.delivery.buffer import BufferedItem, BufferStore
from sorane.delivery.classifier import Action, classify
from sorane.delivery.gateway import ApiGateway, BatchResult
from sorane.delivery.pause import PauseState
from sorane.delivery.retry import RetryStateStore, RetryStrategy, ScheduledBackoff
from sorane.observability.metrics import PipelineMetrics

logger = get_internal_logger(__name__)


@dataclass
class DispatchOutcome:
    """What one dispatch cycle did."""

    telemetry_type: TelemetryType
    taken: int = 0
    result: BatchResult | None = None
    action: Action | None = None
    requeued: int = 0
    dropped: int = 0

    @property
    def sent(self) -> bool:
        return self.result is not None


class BatchDispatcher:
    """Runs dispatch cycles: take, send, classify, reconcile."""

    def __init__(
        self,
        buffer: BufferStore,
        gateway: ApiGateway,
        pause: PauseState,
        settings: SoraneSettings,
        *,
        metrics: PipelineMetrics | None = None,
    ):
        self.buffer = buffer
        self.gateway = gateway
        self.pause = pause
        self._settings = settings
        self._metrics = metrics
        self._states: dict[TelemetryType, DispatchState] = {t: DispatchState.IDLE for t in TelemetryType}

    def state(self, telemetry_type: TelemetryType | str) -> DispatchState:
        return self._states[TelemetryType.parse(telemetry_type)]

    def dispatch(self, telemetry_type: TelemetryType | str, max_items: int | None = None) -> DispatchOutcome:
        """Run one cycle for ``telemetry_type``.

        Raises:
            DeliveryError: after requeueing, when the outcome is retryable
                (transport failure, 500, unknown status).
            DeliveryError: with category ``INTERNAL``, after requeueing, when
                sending or classifying fails with an unexpected exception.
        """
        ttype = TelemetryType.parse(telemetry_type)
        outcome = DispatchOutcome(telemetry_type=ttype)
        limit = max_items or self._settings.feature(ttype).batch_max_size

        try:
            self._states[ttype] = DispatchState.FETCHING
            items = self.buffer.take(ttype, limit)
            outcome.taken = len(items)
            if not items:
                return outcome

            items = self.drop_unencodable(ttype, items, outcome)
            if not items:
                return outcome

            try:
                self._states[ttype] = DispatchState.SENDING
                result = self.gateway.send(ttype, [item.data for item in items])
                outcome.result = result

                self._states[ttype] = DispatchState.RECONCILING
                action = classify(ttype, len(items), result)
                outcome.action = action
            except Exception as e:
                # Taken items are back in the buffer before the error leaves
                self.buffer.re_append(ttype, items)
                raise DeliveryError(
                    f"Dispatch failed unexpectedly: {e}",
                    category=ErrorCategory.INTERNAL,
                    cause=e,
                ).with_context(telemetry_type=ttype.value, batch_size=len(items))
            self.reconcile(ttype, items, result, action, outcome)
        finally:
            self._states[ttype] = DispatchState.IDLE

        if action.retry:
            raise DeliveryError(
                action.message,
                status=result.status,
                retry_after=result.retry_after,
            ).with_context(
                telemetry_type=ttype.value,
                endpoint=self.gateway.endpoint(ttype),
                batch_size=len(items),
            )
        return outcome

    def drop_unencodable(
        self,
        telemetry_type: TelemetryType,
        items: list[BufferedItem],
        outcome: DispatchOutcome,
    ) -> list[BufferedItem]:
        """Drop items that are not strict JSON so one bad item cannot block the batch."""
        kept = [item for item in items if is_strict_json(item.data)]
        dropped = len(items) - len(kept)
        if dropped:
            outcome.dropped += dropped
            if self._metrics is not None:
                self._metrics.record_drop(telemetry_type.value, "unencodable", dropped)
            logger.warning(
                "dispatch.unencodable_dropped",
                type=telemetry_type.value,
                dropped=dropped,
                kept=len(kept),
            )
        return kept

    def reconcile(
        self,
        telemetry_type: TelemetryType,
        items: list[BufferedItem],
        result: BatchResult,
        action: Action,
        outcome: DispatchOutcome | None = None,
    ) -> None:
        """Apply an action's side effects: requeue, pause, log and count."""
        ttype = telemetry_type
        log_fields: dict[str, Any] = {
            "type": ttype.value,
            "status": result.status,
            "items_count": len(items),
        }
        if result.error:
            log_fields["error"] = result.error
        if action.counts:
            log_fields.update(action.counts)

        requeue = [items[i] for i in action.requeue_indices]
        requeued = self.buffer.re_append(ttype, requeue) if requeue else 0

        dropped = action.dropped_count(len(items))
        if dropped and self._metrics is not None:
            self._metrics.record_drop(ttype.value, str(result.status), dropped)

        accepted = len(items) - len(requeue) - dropped
        if result.success and accepted > 0 and self._metrics is not None:
            self._metrics.sent.labels(type=ttype.value).inc(accepted)

        if action.pause_scope is PauseScope.GLOBAL:
            self.pause.set_global_pause(action.pause_seconds or 1, action.reason or PauseReason.OTHER)
        elif action.pause_scope is PauseScope.FEATURE:
            self.pause.set_feature_pause(ttype, action.pause_seconds or 1, action.reason or PauseReason.OTHER)
            if action.reason is PauseReason.RATE_LIMITED:
                log_fields["retry_after"] = action.pause_seconds

        if action.kind is ActionKind.DROP_ALL:
            log_fields["sample"] = [list(item.data.keys()) for item in items[:3]]
        if action.kind is ActionKind.REQUEUE_PARTIAL:
            log_fields["requeued"] = requeued

        if action.kind is ActionKind.ACCEPT_PROCESSED and action.counts.get("failed", 0) > 0:
            logger.warning("dispatch.items_failed", **log_fields)
        elif action.kind is ActionKind.ACCEPT_PROCESSED:
            logger.debug("dispatch.accepted", **log_fields)
        else:
            getattr(logger, action.log_level)(f"dispatch.{action.kind.value}", message=action.message, **log_fields)

        if outcome is not None:
            outcome.requeued = requeued
            outcome.dropped += dropped


# ── Durable job ──────────────────────────────────────────────────────────


@dataclass
class JobOutcome:
    """Result of one :meth:`DispatchJob.run` call."""

    telemetry_type: TelemetryType
    status: str
    dispatch: DispatchOutcome | None = None
    attempts: int = 0
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class DispatchJob:
    """Bounded-retry wrapper around :meth:`BatchDispatcher.dispatch`.

    Statuses:
        ``empty``      nothing to send
        ``sent``       cycle completed (includes partial, drops and pauses)
        ``retrying``   retryable failure recorded, next attempt scheduled
        ``exhausted``  attempts used up; feature paused with reason 500
        ``backoff``    skipped, previous failure's backoff window still open
        ``locked``     skipped, another worker runs this type's job
        ``error``      set by the scheduler when ``run`` itself raised
    """

    def __init__(
        self,
        dispatcher: BatchDispatcher,
        cache: CacheBackend,
        settings: SoraneSettings,
        *,
        strategy: RetryStrategy | None = None,
        clock: Clock = utc_now,
        metrics: PipelineMetrics | None = None,
    ):
        self.dispatcher = dispatcher
        self._cache = cache
        self._settings = settings
        self._clock = clock
        self._metrics = metrics
        self.strategy = strategy or ScheduledBackoff(
            delays=tuple(settings.batch.retry_backoff),
            max_attempts=settings.batch.max_attempts,
        )
        self.retry_store = RetryStateStore(
            cache,
            key_prefix=settings.batch.key_prefix,
            clock=clock,
        )

    def unique_key(self, telemetry_type: TelemetryType) -> str:
        return f"{self._settings.batch.key_prefix}:batch:{telemetry_type.value}"

    def run(self, telemetry_type: TelemetryType | str, *, ignore_backoff: bool = False) -> JobOutcome:
        ttype = TelemetryType.parse(telemetry_type)
        with LogContext(type=ttype.value):
            return self._run(ttype, ignore_backoff=ignore_backoff)

    def _run(self, ttype: TelemetryType, *, ignore_backoff: bool) -> JobOutcome:
        state = self.retry_store.load(ttype.value)
        if not ignore_backoff and not state.due(self._clock()):
            return JobOutcome(ttype, "backoff", attempts=state.attempts)

        feature = self._settings.feature(ttype)
        lock = self._cache.lock(
            self.unique_key(ttype),
            ttl_seconds=feature.timeout_seconds * 2 + self._settings.batch.lock_timeout_seconds * 2,
        )
        if not lock.acquire(timeout=0):
            logger.debug("dispatch.job_locked", type=ttype.value)
            return JobOutcome(ttype, "locked", attempts=state.attempts)

        try:
            outcome = self.dispatcher.dispatch(ttype)
        except SoraneError as e:
            if not e.retryable:
                raise
            return self._record_failure(ttype, e)
        except Exception as e:
            logger.error("dispatch.job_error", type=ttype.value, error=str(e), error_type=type(e).__name__)
            wrapped = DeliveryError(
                f"Dispatch job failed: {e}",
                category=ErrorCategory.INTERNAL,
                cause=e,
            ).with_context(telemetry_type=ttype.value)
            return self._record_failure(ttype, wrapped)
        finally:
            lock.release()

        # A clean cycle, sent or empty, clears any earlier failure
        if state.attempts:
            self.retry_store.reset(ttype.value)

        if outcome.taken == 0:
            return JobOutcome(ttype, "empty", dispatch=outcome)
        return JobOutcome(ttype, "sent", dispatch=outcome)

    def _record_failure(self, ttype: TelemetryType, error: SoraneError) -> JobOutcome:
        state = self.retry_store.record_failure(ttype.value, self.strategy, error)

        if self.strategy.should_retry(state.attempts, error):
            logger.warning(
                "dispatch.job_retry_scheduled",
                type=ttype.value,
                attempt=state.attempts,
                next_attempt_at=state.next_attempt_at,
                error=error.message,
            )
            return JobOutcome(ttype, "retrying", attempts=state.attempts, error=error.message)

        self.failed(ttype, error, attempts=state.attempts)
        return JobOutcome(ttype, "exhausted", attempts=state.attempts, error=error.message)

    def failed(self, ttype: TelemetryType, error: Exception, *, attempts: int = 0) -> None:
        """Final-attempt handler: pause the feature and log critically."""
        seconds = self._settings.batch.exhausted_pause_seconds
        logger.critical(
            "dispatch.job_failed",
            message="Batch job failed after all retries",
            type=ttype.value,
            attempts=attempts,
            exception=str(error),
            pause_seconds=seconds,
        )
        self.dispatcher.pause.set_feature_pause(ttype, seconds, PauseReason.SERVER_ERROR)
        self.retry_store.reset(ttype.value)
        if self._metrics is not None:
            self._metrics.exhausted.labels(type=ttype.value).inc()


__all__ = ["DispatchOutcome", "BatchDispatcher", "JobOutcome", "DispatchJob"]
