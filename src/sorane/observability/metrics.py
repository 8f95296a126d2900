"""Prometheus-style metrics for the telemetry pipeline.

Every place where telemetry can be lost (buffer overflow, lock timeout, a
413/422 batch, an exhausted dispatch job) increments a labelled counter, so
data loss is observable instead of silent. The registry renders Prometheus
text for the ``/metrics`` route of the API app.

Metric types:
- Counter: Monotonically increasing value
- Gauge: Value that can go up or down
- Histogram: Distribution of values

Example:
    >>> from sorane.observability.metrics import MetricsRegistry, PipelineMetrics
    >>> metrics = PipelineMetrics(MetricsRegistry())
    >>> metrics.dropped.labels(type="events", reason="overflow").inc(3)
    >>> metrics.dropped.labels(type="events", reason="overflow").value
    3.0
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

DROP_REASONS = ("overflow", "lock_timeout", "413", "422", "unencodable")


@dataclass(frozen=True)
class Labels:
    """Immutable label set for metrics."""

    _labels: tuple[tuple[str, str], ...]

    @classmethod
    def from_dict(cls, d: dict[str, str] | None) -> "Labels":
        if not d:
            return cls(())
        return cls(tuple(sorted((k, str(v)) for k, v in d.items())))

    def to_dict(self) -> dict[str, str]:
        return dict(self._labels)


class Metric(ABC):
    """Base class for metrics."""

    metric_type = "untyped"

    def __init__(self, name: str, description: str = "", labels: list[str] | None = None):
        self.name = name
        self.description = description
        self._label_names = labels or []
        self._lock = threading.Lock()

    @abstractmethod
    def collect(self) -> list[dict[str, Any]]:
        """Collect metric values for export."""
        ...


class _ScalarMetric(Metric):
    """Shared storage for counters and gauges: one float per label set."""

    def __init__(self, name: str, description: str = "", labels: list[str] | None = None):
        super().__init__(name, description, labels)
        self._values: dict[Labels, float] = {}

    def _add(self, labels: Labels, value: float) -> None:
        with self._lock:
            self._values[labels] = self._values.get(labels, 0.0) + value

    def _set(self, labels: Labels, value: float) -> None:
        with self._lock:
            self._values[labels] = value

    def _get(self, labels: Labels) -> float:
        with self._lock:
            return self._values.get(labels, 0.0)

    def total(self) -> float:
        """Sum across every label set."""
        with self._lock:
            return sum(self._values.values())

    def collect(self) -> list[dict[str, Any]]:
        with self._lock:
            return [
                {
                    "name": self.name,
                    "type": self.metric_type,
                    "labels": labels.to_dict(),
                    "value": value,
                }
                for labels, value in self._values.items()
            ]


class Counter(_ScalarMetric):
    """A monotonically increasing counter (items buffered, sent, dropped)."""

    metric_type = "counter"

    def labels(self, **kwargs: str) -> "CounterChild":
        return CounterChild(self, Labels.from_dict(kwargs))

    def inc(self, value: float = 1.0) -> None:
        self.labels().inc(value)


class CounterChild:
    """Counter with fixed labels."""

    def __init__(self, counter: Counter, labels: Labels):
        self._counter = counter
        self._labels = labels

    def inc(self, value: float = 1.0) -> None:
        if value < 0:
            raise ValueError("Counter can only increase")
        self._counter._add(self._labels, value)

    @property
    def value(self) -> float:
        return self._counter._get(self._labels)


class Gauge(_ScalarMetric):
    """A value that can go up or down (buffer depth)."""

    metric_type = "gauge"

    def labels(self, **kwargs: str) -> "GaugeChild":
        return GaugeChild(self, Labels.from_dict(kwargs))

    def set(self, value: float) -> None:
        self.labels().set(value)


class GaugeChild:
    """Gauge with fixed labels."""

    def __init__(self, gauge: Gauge, labels: Labels):
        self._gauge = gauge
        self._labels = labels

    def set(self, value: float) -> None:
        self._gauge._set(self._labels, value)

    def inc(self, value: float = 1.0) -> None:
        self._gauge._add(self._labels, value)

    def dec(self, value: float = 1.0) -> None:
        self._gauge._add(self._labels, -value)

    @property
    def value(self) -> float:
        return self._gauge._get(self._labels)


class Histogram(Metric):
    """A distribution of values (batch send latency)."""

    metric_type = "histogram"

    DEFAULT_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, float("inf"))

    def __init__(
        self,
        name: str,
        description: str = "",
        labels: list[str] | None = None,
        buckets: tuple[float, ...] | None = None,
    ):
        super().__init__(name, description, labels)
        self._buckets = buckets or self.DEFAULT_BUCKETS
        self._data: dict[Labels, dict[str, Any]] = {}

    def _empty(self) -> dict[str, Any]:
        return {"buckets": dict.fromkeys(self._buckets, 0), "sum": 0.0, "count": 0}

    def labels(self, **kwargs: str) -> "HistogramChild":
        return HistogramChild(self, Labels.from_dict(kwargs))

    def _observe(self, labels: Labels, value: float) -> None:
        with self._lock:
            data = self._data.setdefault(labels, self._empty())
            data["sum"] += value
            data["count"] += 1
            for bucket in self._buckets:
                if value <= bucket:
                    data["buckets"][bucket] += 1

    def _get(self, labels: Labels) -> dict[str, Any]:
        with self._lock:
            return self._data.get(labels, self._empty())

    def collect(self) -> list[dict[str, Any]]:
        with self._lock:
            return [
                {
                    "name": self.name,
                    "type": "histogram",
                    "labels": labels.to_dict(),
                    "buckets": dict(data["buckets"]),
                    "sum": data["sum"],
                    "count": data["count"],
                }
                for labels, data in self._data.items()
            ]


class HistogramChild:
    """Histogram with fixed labels."""

    def __init__(self, histogram: Histogram, labels: Labels):
        self._histogram = histogram
        self._labels = labels

    def observe(self, value: float) -> None:
        self._histogram._observe(self._labels, value)

    @property
    def data(self) -> dict[str, Any]:
        return self._histogram._get(self._labels)


class MetricsRegistry:
    """Registry of all metrics for collection and export."""

    def __init__(self):
        self._metrics: dict[str, Metric] = {}
        self._lock = threading.Lock()

    def _get_or_create(self, cls: type[Metric], name: str, *args: Any) -> Any:
        with self._lock:
            if name not in self._metrics:
                self._metrics[name] = cls(name, *args)
            return self._metrics[name]

    def counter(self, name: str, description: str = "", labels: list[str] | None = None) -> Counter:
        return self._get_or_create(Counter, name, description, labels)

    def gauge(self, name: str, description: str = "", labels: list[str] | None = None) -> Gauge:
        return self._get_or_create(Gauge, name, description, labels)

    def histogram(
        self,
        name: str,
        description: str = "",
        labels: list[str] | None = None,
        buckets: tuple[float, ...] | None = None,
    ) -> Histogram:
        return self._get_or_create(Histogram, name, description, labels, buckets)

    def collect(self) -> list[dict[str, Any]]:
        with self._lock:
            metrics = list(self._metrics.values())
        results = []
        for metric in metrics:
            results.extend(metric.collect())
        return results

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        with self._lock:
            metrics = list(self._metrics.values())

        lines = []
        for metric in metrics:
            samples = metric.collect()
            if not samples:
                continue
            if metric.description:
                lines.append(f"# HELP {metric.name} {metric.description}")
            lines.append(f"# TYPE {metric.name} {metric.metric_type}")

            for data in samples:
                name = data["name"]
                labels = data.get("labels", {})
                label_str = ",".join(f'{k}="{v}"' for k, v in labels.items())

                if data["type"] in ("counter", "gauge"):
                    suffix = "{" + label_str + "}" if label_str else ""
                    lines.append(f"{name}{suffix} {data['value']}")
                    continue

                for bucket, count in data["buckets"].items():
                    le = "+Inf" if bucket == float("inf") else str(bucket)
                    parts = ",".join(filter(None, [label_str, f'le="{le}"']))
                    lines.append(f"{name}_bucket{{{parts}}} {count}")
                suffix = "{" + label_str + "}" if label_str else ""
                lines.append(f"{name}_sum{suffix} {data['sum']}")
                lines.append(f"{name}_count{suffix} {data['count']}")

        return "\n".join(lines) + ("\n" if lines else "")


class PipelineMetrics:
    """Pre-defined metrics for buffering and delivery."""

    def __init__(self, registry: MetricsRegistry | None = None):
        reg = registry or MetricsRegistry()
        self.registry = reg

        self.buffered = reg.counter(
            "sorane_items_buffered_total",
            "Items appended to a buffer",
            ["type"],
        )
        self.dropped = reg.counter(
            "sorane_items_dropped_total",
            "Items lost to overflow, lock timeouts or rejected (413/422) batches",
            ["type", "reason"],
        )
        self.sent = reg.counter(
            "sorane_items_sent_total",
            "Items accepted by the ingestion API",
            ["type"],
        )
        self.requeued = reg.counter(
            "sorane_items_requeued_total",
            "Items put back in a buffer after a failed or partial send",
            ["type"],
        )
        self.batches = reg.counter(
            "sorane_batches_total",
            "Batch send attempts by HTTP status (0 = transport failure)",
            ["type", "status"],
        )
        self.exhausted = reg.counter(
            "sorane_dispatch_exhausted_total",
            "Dispatch jobs that used up every retry and paused their feature",
            ["type"],
        )
        self.buffer_depth = reg.gauge(
            "sorane_buffer_depth",
            "Items currently waiting in a buffer",
            ["type"],
        )
        self.send_duration = reg.histogram(
            "sorane_send_duration_seconds",
            "Batch request latency",
            ["type"],
        )

    def record_drop(self, telemetry_type: str, reason: str, count: int = 1) -> None:
        if count > 0:
            self.dropped.labels(type=telemetry_type, reason=reason).inc(count)


__all__ = [
    "DROP_REASONS",
    "Counter",
    "Gauge",
    "Histogram",
    "MetricsRegistry",
    "PipelineMetrics",
]
