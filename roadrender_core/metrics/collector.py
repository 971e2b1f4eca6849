"""RoadRender Metrics Collector - Render Cache Observability.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, fields
from typing import Any, Callable, Deque, Dict, List

logger = logging.getLogger(__name__)


@dataclass
class RenderMetrics:
    """Snapshot of engine counters.

    Attributes:
        hits: Fresh cache hits
        stale_serves: Stale payloads served while revalidating
        misses: Requests that blocked on the origin (miss or expired)
        revalidation_successes: Background refreshes that stored a new version
        revalidation_failures: Background refresh attempts that failed
        revalidations_exhausted: Background refreshes that gave up
        origin_fetches: Origin calls issued
        origin_failures: Origin calls that failed (timeouts included)
        origin_timeouts: Origin calls that timed out
        coalesced: Requests that joined another caller's fetch
        fallback_serves: Invalidated payloads served after a failed refetch
        dynamic_requests: Requests for uncached Dynamic routes
        invalidations: Entries marked expired by invalidation
        evictions: Entries evicted for capacity
        origin_latency_avg_ms: Average origin latency
        origin_latency_p99_ms: P99 origin latency
    """

    hits: int = 0
    stale_serves: int = 0
    misses: int = 0
    revalidation_successes: int = 0
    revalidation_failures: int = 0
    revalidations_exhausted: int = 0
    origin_fetches: int = 0
    origin_failures: int = 0
    origin_timeouts: int = 0
    coalesced: int = 0
    fallback_serves: int = 0
    dynamic_requests: int = 0
    invalidations: int = 0
    evictions: int = 0
    origin_latency_avg_ms: float = 0.0
    origin_latency_p99_ms: float = 0.0

    @property
    def hit_rate(self) -> float:
        """Share of cached requests answered without blocking."""
        served = self.hits + self.stale_serves
        total = served + self.misses
        return served / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["hit_rate"] = self.hit_rate
        return data


# Counter name -> Prometheus help text
_COUNTERS = {
    "hits": "Fresh cache hits",
    "stale_serves": "Stale payloads served while revalidating",
    "misses": "Requests that blocked on the origin",
    "revalidation_successes": "Successful background revalidations",
    "revalidation_failures": "Failed background revalidation attempts",
    "revalidations_exhausted": "Background revalidations that gave up",
    "origin_fetches": "Origin calls issued",
    "origin_failures": "Origin calls that failed",
    "origin_timeouts": "Origin calls that timed out",
    "coalesced": "Requests that joined an in-flight fetch",
    "fallback_serves": "Invalidated payloads served after a failed refetch",
    "dynamic_requests": "Requests for dynamic routes",
    "invalidations": "Entries invalidated",
    "evictions": "Entries evicted for capacity",
}


class MetricsCollector:
    """Counts cache decisions and origin behavior.

    Counters are incremented by name through ``increment`` or the
    ``record_*`` shortcuts; origin latency is kept in a bounded window.
    Exporters receive a ``RenderMetrics`` snapshot on ``export``.

    Example:
        collector = MetricsCollector()
        collector.record_hit()
        with Timer(collector):
            fetch()
        print(collector.to_prometheus())
    """

    def __init__(self, prefix: str = "roadrender", latency_window: int = 10000):
        """Initialize collector.

        Args:
            prefix: Metric name prefix for Prometheus export
            latency_window: Number of latency samples kept
        """
        self.prefix = prefix
        self._counters: Dict[str, int] = {name: 0 for name in _COUNTERS}
        self._latencies: Deque[float] = deque(maxlen=latency_window)
        self._lock = threading.RLock()
        self._exporters: List[Callable[[RenderMetrics], None]] = []

    def increment(self, name: str, amount: int = 1) -> None:
        """Increment a counter.

        Args:
            name: Counter name
            amount: Increment

        Raises:
            KeyError: If the counter is unknown
        """
        if name not in _COUNTERS:
            raise KeyError(f"Unknown counter: {name}")
        with self._lock:
            self._counters[name] += amount

    def record_hit(self) -> None:
        self.increment("hits")

    def record_stale_serve(self) -> None:
        self.increment("stale_serves")

    def record_miss(self) -> None:
        self.increment("misses")

    def record_revalidation_success(self) -> None:
        self.increment("revalidation_successes")

    def record_revalidation_failure(self) -> None:
        self.increment("revalidation_failures")

    def record_eviction(self) -> None:
        self.increment("evictions")

    def record_latency(self, ms: float) -> None:
        """Record origin latency.

        Args:
            ms: Latency in milliseconds
        """
        with self._lock:
            self._latencies.append(ms)

    def get(self, name: str) -> int:
        """Current value of a counter."""
        with self._lock:
            return self._counters[name]

    def _latency_avg(self) -> float:
        if not self._latencies:
            return 0.0
        return sum(self._latencies) / len(self._latencies)

    def _latency_p99(self) -> float:
        if not self._latencies:
            return 0.0
        ordered = sorted(self._latencies)
        idx = int(len(ordered) * 0.99)
        return ordered[min(idx, len(ordered) - 1)]

    def get_metrics(self) -> RenderMetrics:
        """Get a snapshot of all metrics."""
        with self._lock:
            return RenderMetrics(
                origin_latency_avg_ms=self._latency_avg(),
                origin_latency_p99_ms=self._latency_p99(),
                **self._counters,
            )

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            for name in self._counters:
                self._counters[name] = 0
            self._latencies.clear()

    def add_exporter(self, exporter: Callable[[RenderMetrics], None]) -> None:
        """Add metrics exporter.

        Args:
            exporter: Callback to receive metrics
        """
        self._exporters.append(exporter)

    def export(self) -> None:
        """Export metrics to all exporters."""
        metrics = self.get_metrics()
        for exporter in self._exporters:
            try:
                exporter(metrics)
            except Exception as e:
                logger.error(f"Exporter error: {e}")

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        metrics = self.get_metrics()
        lines = []
        for name, help_text in _COUNTERS.items():
            metric = f"{self.prefix}_{name}_total"
            lines.extend([
                f"# HELP {metric} {help_text}",
                f"# TYPE {metric} counter",
                f"{metric} {getattr(metrics, name)}",
                "",
            ])
        gauges = [
            ("hit_rate", "Share of cached requests served without blocking", f"{metrics.hit_rate:.4f}"),
            ("origin_latency_avg_ms", "Average origin latency", f"{metrics.origin_latency_avg_ms:.2f}"),
            ("origin_latency_p99_ms", "P99 origin latency", f"{metrics.origin_latency_p99_ms:.2f}"),
        ]
        for name, help_text, value in gauges:
            metric = f"{self.prefix}_{name}"
            lines.extend([
                f"# HELP {metric} {help_text}",
                f"# TYPE {metric} gauge",
                f"{metric} {value}",
                "",
            ])
        return "\n".join(lines).rstrip("\n")

    def __repr__(self) -> str:
        metrics = self.get_metrics()
        return f"MetricsCollector(hits={metrics.hits}, hit_rate={metrics.hit_rate:.2%})"


class Timer:
    """Context manager recording elapsed time as origin latency."""

    def __init__(self, collector: MetricsCollector):
        self._collector = collector
        self._start: float = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        elapsed_ms = (time.perf_counter() - self._start) * 1000
        self._collector.record_latency(elapsed_ms)


__all__ = ["MetricsCollector", "RenderMetrics", "Timer"]
