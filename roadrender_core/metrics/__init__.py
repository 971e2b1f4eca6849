"""Metrics module - Engine counters and Prometheus export."""

from roadrender_core.metrics.collector import (
    MetricsCollector,
    RenderMetrics,
    Timer,
)

__all__ = [
    "MetricsCollector",
    "RenderMetrics",
    "Timer",
]
