"""Tests for MetricsCollector.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import pytest

from roadrender_core.metrics.collector import MetricsCollector, Timer


class TestMetricsCollector:
    """Tests for metrics collection."""

    def test_counters(self):
        """Test counter shortcuts."""
        metrics = MetricsCollector()
        metrics.record_hit()
        metrics.record_hit()
        metrics.record_stale_serve()
        metrics.record_miss()
        metrics.increment("coalesced", 4)

        snapshot = metrics.get_metrics()
        assert snapshot.hits == 2
        assert snapshot.coalesced == 4
        assert snapshot.hit_rate == 0.75

    def test_unknown_counter(self):
        metrics = MetricsCollector()
        with pytest.raises(KeyError):
            metrics.increment("nope")

    def test_latency(self):
        """Test latency samples and the timer."""
        metrics = MetricsCollector()
        metrics.record_latency(10.0)
        metrics.record_latency(30.0)
        assert metrics.get_metrics().origin_latency_avg_ms == 20.0

        with Timer(metrics):
            pass
        assert len(metrics._latencies) == 3

    def test_reset(self):
        metrics = MetricsCollector()
        metrics.record_miss()
        metrics.record_latency(5.0)
        metrics.reset()

        assert metrics.get("misses") == 0
        assert metrics.get_metrics().origin_latency_avg_ms == 0.0

    def test_prometheus(self):
        """Test Prometheus text output."""
        metrics = MetricsCollector(prefix="site")
        metrics.record_hit()

        text = metrics.to_prometheus()

        assert "# TYPE site_hits_total counter" in text
        assert "site_hits_total 1" in text
        assert "site_hit_rate 1.0000" in text
        assert "site_origin_latency_p99_ms 0.00" in text

    def test_exporters(self):
        """Test a broken exporter does not stop the others."""
        metrics = MetricsCollector()
        received = []

        def broken(snapshot):
            raise RuntimeError("down")

        metrics.add_exporter(broken)
        metrics.add_exporter(received.append)
        metrics.record_miss()
        metrics.export()

        assert received[0].misses == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
