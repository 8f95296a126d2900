"""Observability for the telemetry pipeline (metrics)."""

from sorane.observability.metrics import MetricsRegistry, PipelineMetrics

__all__ = ["MetricsRegistry", "PipelineMetrics"]
