"""
Base class for telemetry producers.

A producer shapes one item for its telemetry type, keeps only the
allow-listed fields, makes the values JSON-safe and appends the result to
the buffer. It never raises into host code: any failure is logged on the
internal channel and the item is dropped.

When a feature is configured with ``queue=False`` the producer asks for an
immediate dispatch of its type after appending (synchronous delivery for
low-volume setups and tests).

Tags:
    producers, allow-list, sorane
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, ClassVar

from sorane.core.enums import TelemetryType
from sorane.core.logging import get_internal_logger
from sorane.core.sanitize import filter_fields, sanitize_for_serialization
from sorane.core.settings import FeatureConfig, SoraneSettings
from sorane.core.timestamps import Clock, utc_now
from sorane.delivery.buffer import BufferStore

logger = get_internal_logger(__name__)

ImmediateDispatch = Callable[[TelemetryType], Any]


class Producer:
    """Validate, shape and buffer items for one telemetry type."""

    telemetry_type: ClassVar[TelemetryType]
    allowed_fields: ClassVar[frozenset[str]] = frozenset()

    def __init__(
        self,
        buffer: BufferStore,
        settings: SoraneSettings,
        *,
        clock: Clock = utc_now,
        immediate_dispatch: ImmediateDispatch | None = None,
    ):
        self.buffer = buffer
        self.settings = settings
        self._clock = clock
        self._immediate_dispatch = immediate_dispatch

    @property
    def config(self) -> FeatureConfig:
        return self.settings.feature(self.telemetry_type)

    @property
    def enabled(self) -> bool:
        return self.settings.feature_enabled(self.telemetry_type)

    def shape(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Keep allow-listed fields and make the values JSON-safe."""
        return sanitize_for_serialization(filter_fields(data, self.allowed_fields))

    def submit(self, data: Mapping[str, Any]) -> bool:
        """Shape and buffer one item. Returns ``True`` if it was buffered."""
        ttype = self.telemetry_type
        try:
            buffered = self.buffer.append(ttype, self.shape(data))
            if buffered and not self.config.queue and self._immediate_dispatch is not None:
                self._immediate_dispatch(ttype)
            return buffered
        except Exception as e:  # noqa: BLE001
            logger.warning("producer.submit_failed", type=ttype.value, error=str(e))
            return False


__all__ = ["Producer", "ImmediateDispatch"]
