"""Tests for Dispatcher and CacheRegistry.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import threading

import pytest

from roadrender_core.config import EngineConfig
from roadrender_core.engine.dispatcher import Dispatcher, RenderSource
from roadrender_core.engine.registry import CacheRegistry
from roadrender_core.errors import OriginError, OriginTimeout
from roadrender_core.origin.fetcher import CallableFetcher
from roadrender_core.policy.policy import RenderMode

from conftest import wait_until


def render_all(dispatcher, route, count):
    results = []
    lock = threading.Lock()

    def worker():
        result = dispatcher.render(route)
        with lock:
            results.append(result)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    return threads, results


class TestIncrementalTimeline:
    """Tests for a route with ttl=3600 and grace=300."""

    def test_fresh_then_stale_then_refreshed(self, dispatcher, registry, fetcher, clock):
        """Test serving through the freshness windows."""
        first = dispatcher.render("/blog/a")
        assert first.source is RenderSource.ORIGIN
        assert first.payload == "/blog/a#1"
        assert first.version == 1

        clock.set(3599)
        hit = dispatcher.render("/blog/a")
        assert hit.source is RenderSource.FRESH
        assert fetcher.calls["/blog/a"] == 1

        clock.set(3601)
        fetcher.gate.clear()
        stale = [dispatcher.render("/blog/a") for _ in range(5)]
        assert all(r.source is RenderSource.STALE for r in stale)
        assert all(r.payload == "/blog/a#1" for r in stale)

        fetcher.gate.set()
        assert registry.scheduler.wait_idle(timeout=2)

        assert fetcher.calls["/blog/a"] == 2
        refreshed = dispatcher.render("/blog/a")
        assert refreshed.source is RenderSource.FRESH
        assert refreshed.version == 2
        assert refreshed.payload == "/blog/a#2"

    def test_expired_blocks(self, dispatcher, clock):
        """Test past the grace ceiling requests block on origin."""
        dispatcher.render("/blog/a")

        clock.set(3901)
        result = dispatcher.render("/blog/a")

        assert result.source is RenderSource.ORIGIN
        assert result.version == 2

    def test_failing_origin_extends_stale_window(self, dispatcher, registry, fetcher, clock):
        """Test failing revalidation keeps serving stale up to the error grace."""
        dispatcher.render("/blog/a")

        fetcher.fail = True
        clock.set(3601)
        assert dispatcher.render("/blog/a").source is RenderSource.STALE
        assert registry.scheduler.wait_idle(timeout=2)

        entry = registry.store.peek("/blog/a")
        assert entry.error_count == 3
        assert entry.payload == "/blog/a#1"

        clock.set(3950)
        calls = fetcher.calls["/blog/a"]
        result = dispatcher.render("/blog/a")
        assert result.source is RenderSource.STALE
        assert result.error_count == 3
        assert registry.scheduler.wait_idle(timeout=2)
        assert fetcher.calls["/blog/a"] == calls

        clock.set(4501)
        with pytest.raises(OriginError):
            dispatcher.render("/blog/a")
        assert registry.store.peek("/blog/a") is not None

        fetcher.fail = False
        recovered = dispatcher.render("/blog/a")
        assert recovered.source is RenderSource.ORIGIN
        assert recovered.error_count == 0
        assert recovered.version == 2


class TestSingleFlight:
    """Tests for request coalescing through the dispatcher."""

    def test_concurrent_misses_fetch_once(self, dispatcher, registry, fetcher):
        """Test a burst of misses makes one origin call."""
        fetcher.gate.clear()
        threads, results = render_all(dispatcher, "/blog/a", 10)

        assert wait_until(
            lambda: registry.coordinator.in_flight("/blog/a") is not None
            and registry.coordinator.in_flight("/blog/a").waiters == 9
        )
        fetcher.gate.set()
        for t in threads:
            t.join()

        assert fetcher.calls["/blog/a"] == 1
        assert len(results) == 10
        assert {r.payload for r in results} == {"/blog/a#1"}
        assert registry.metrics.get("coalesced") == 9

    def test_stale_burst_revalidates_once(self, dispatcher, registry, fetcher, clock):
        """Test concurrent stale hits schedule a single refresh."""
        dispatcher.render("/blog/a")
        clock.set(3700)
        fetcher.gate.clear()

        threads, results = render_all(dispatcher, "/blog/a", 10)
        for t in threads:
            t.join()
        assert all(r.source is RenderSource.STALE for r in results)

        fetcher.gate.set()
        assert registry.scheduler.wait_idle(timeout=2)
        assert fetcher.calls["/blog/a"] == 2

    def test_failure_reaches_every_waiter(self, dispatcher, registry, fetcher):
        """Test a failed fetch raises for all coalesced callers."""
        fetcher.fail = True
        fetcher.gate.clear()
        errors = []

        def worker():
            try:
                dispatcher.render("/blog/a")
            except OriginError as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        assert wait_until(
            lambda: registry.coordinator.in_flight("/blog/a") is not None
            and registry.coordinator.in_flight("/blog/a").waiters == 4
        )
        fetcher.gate.set()
        for t in threads:
            t.join()

        assert len(errors) == 5
        assert fetcher.calls["/blog/a"] == 1
        assert registry.coordinator.in_flight("/blog/a") is None


class TestRenderModes:
    """Tests for static and dynamic routes."""

    def test_static_never_ages(self, dispatcher, fetcher, clock):
        """Test static routes stay fresh."""
        dispatcher.render("/about")
        clock.set(10 ** 9)

        result = dispatcher.render("/about")

        assert result.source is RenderSource.FRESH
        assert result.mode is RenderMode.STATIC
        assert fetcher.calls["/about"] == 1

    def test_dynamic_never_cached(self, dispatcher, registry, fetcher):
        """Test dynamic routes always hit origin."""
        first = dispatcher.render("/api/user")
        second = dispatcher.render("/api/user")

        assert first.source is RenderSource.DYNAMIC
        assert first.version is None
        assert second.payload == "/api/user#2"
        assert "/api/user" not in registry.store
        assert registry.metrics.get("dynamic_requests") == 2

    def test_dynamic_burst_coalesced(self, dispatcher, registry, fetcher):
        """Test dynamic requests still share in-flight fetches."""
        fetcher.gate.clear()
        threads, results = render_all(dispatcher, "/api/feed", 5)

        assert wait_until(
            lambda: registry.coordinator.in_flight("/api/feed") is not None
            and registry.coordinator.in_flight("/api/feed").waiters == 4
        )
        fetcher.gate.set()
        for t in threads:
            t.join()

        assert fetcher.calls["/api/feed"] == 1
        assert len(registry.store) == 0

    def test_catch_all_policy(self, dispatcher):
        """Test unlisted routes use the catch-all."""
        result = dispatcher.render("/pricing")
        assert result.mode is RenderMode.INCREMENTAL
        assert dispatcher.classify("/pricing").pattern == "*"


class TestInvalidation:
    """Tests for invalidation through the dispatcher."""

    def test_invalidate_forces_refetch(self, dispatcher, fetcher):
        """Test the next request fetches a newer version."""
        dispatcher.render("/blog/a")

        assert dispatcher.invalidate("/blog/a") == 1
        result = dispatcher.render("/blog/a")

        assert result.source is RenderSource.ORIGIN
        assert result.version == 2
        assert fetcher.calls["/blog/a"] == 2

    def test_invalidate_static(self, dispatcher, fetcher):
        """Test invalidation refreshes a static route."""
        dispatcher.render("/about")
        dispatcher.invalidate("/about")

        assert dispatcher.render("/about").version == 2

    def test_prefix_invalidation(self, dispatcher, registry):
        """Test a prefix expires every key under it."""
        dispatcher.render("/blog/a")
        dispatcher.render("/blog/b")
        dispatcher.render("/pricing")

        assert dispatcher.invalidate("/blog/*") == 2
        assert registry.store.peek("/blog/a").invalidated
        assert not registry.store.peek("/pricing").invalidated
        assert registry.metrics.get("invalidations") == 2

    def test_fallback_when_refetch_fails(self, dispatcher, registry, fetcher):
        """Test the invalidated payload is served if origin fails."""
        dispatcher.render("/blog/a")
        dispatcher.invalidate("/blog/a")
        fetcher.fail = True

        result = dispatcher.render("/blog/a")

        assert result.source is RenderSource.FALLBACK
        assert result.payload == "/blog/a#1"
        assert result.from_cache
        assert registry.metrics.get("fallback_serves") == 1

    def test_invalidate_missing_key(self, dispatcher):
        """Test invalidating an uncached key is a no-op."""
        assert dispatcher.invalidate("/nowhere") == 0


class TestRegistry:
    """Tests for registry lifecycle and metrics."""

    def test_render_requires_init(self, policies, fetcher, engine_config):
        """Test rendering before init fails."""
        registry = CacheRegistry(policies, fetcher, engine_config)
        dispatcher = Dispatcher(registry)

        with pytest.raises(RuntimeError):
            dispatcher.render("/blog/a")

    def test_context_manager(self, policies, fetcher, engine_config):
        """Test init and shutdown through with."""
        with CacheRegistry(policies, fetcher, engine_config) as registry:
            assert registry.running
            Dispatcher(registry).render("/blog/a")
            assert len(registry.store) == 1

        assert not registry.running
        assert len(registry.store) == 0

    def test_origin_timeout(self, policies, fetcher, clock):
        """Test a slow origin times out and frees the key."""
        config = EngineConfig(name="slow", fetch_timeout_seconds=0.05)
        registry = CacheRegistry(policies, fetcher, config, clock=clock).init()
        dispatcher = Dispatcher(registry)
        fetcher.gate.clear()

        try:
            with pytest.raises(OriginTimeout):
                dispatcher.render("/blog/a")

            assert registry.coordinator.in_flight("/blog/a") is None
            assert registry.metrics.get("origin_timeouts") == 1
            assert registry.metrics.get("origin_failures") == 1
            assert "/blog/a" not in registry.store
        finally:
            fetcher.gate.set()
            registry.shutdown()

    def test_callable_fetcher_errors_wrapped(self, policies, engine_config):
        """Test unexpected fetcher exceptions surface as OriginError."""
        def origin(key, deadline):
            if key == "/broken":
                raise ValueError("bad row")
            return key.upper()

        with CacheRegistry(policies, CallableFetcher(origin), engine_config) as registry:
            dispatcher = Dispatcher(registry)
            assert dispatcher.render("/pricing").payload == "/PRICING"
            with pytest.raises(OriginError) as exc_info:
                dispatcher.render("/broken")
            assert "ValueError" in exc_info.value.detail

    def test_hung_origin_does_not_leak_queued_calls(self, policies, fetcher, clock):
        """Test calls that timed out behind a hung fetch never reach the origin."""
        config = EngineConfig(name="narrow", fetch_workers=1, fetch_timeout_seconds=0.25)
        registry = CacheRegistry(policies, fetcher, config, clock=clock).init()
        dispatcher = Dispatcher(registry)
        fetcher.gate.clear()

        try:
            with pytest.raises(OriginTimeout):
                dispatcher.render("/blog/hung")
            with pytest.raises(OriginTimeout):
                dispatcher.render("/blog/ok")
            assert fetcher.calls["/blog/ok"] == 0

            fetcher.gate.set()
            result = dispatcher.render("/blog/ok")

            # The timed-out call was dropped, so this is the first origin call
            assert result.payload == "/blog/ok#1"
            assert fetcher.calls["/blog/ok"] == 1
        finally:
            fetcher.gate.set()
            registry.shutdown()

    def test_request_failure_not_charged_to_revalidation(
        self, dispatcher, registry, fetcher, clock
    ):
        """Test a background refresh joining a failed request fetch."""
        dispatcher.render("/blog/a")
        policy = dispatcher.classify("/blog/a")

        clock.set(4000)
        fetcher.fail = True
        fetcher.gate.clear()
        errors = []
        outcome = []

        def request():
            try:
                dispatcher.render("/blog/a")
            except OriginError as e:
                errors.append(e)

        requester = threading.Thread(target=request)
        requester.start()
        assert wait_until(lambda: registry.coordinator.in_flight("/blog/a") is not None)

        background = threading.Thread(
            target=lambda: outcome.append(registry.revalidate("/blog/a", policy, attempt=1))
        )
        background.start()
        assert wait_until(lambda: registry.coordinator.in_flight("/blog/a").waiters == 1)

        fetcher.gate.set()
        requester.join()
        background.join()

        assert len(errors) == 1
        assert outcome == [None]
        assert fetcher.calls["/blog/a"] == 2
        assert registry.store.peek("/blog/a").error_count == 0

    def test_eviction_clears_exhaustion(self, policies, fetcher, clock):
        """Test an evicted key does not keep its exhaustion mark."""
        config = EngineConfig(
            name="tiny",
            capacity=2,
            backoff_base_seconds=0.01,
            backoff_max_seconds=0.05,
            max_revalidation_attempts=2,
        )
        with CacheRegistry(policies, fetcher, config, clock=clock) as registry:
            dispatcher = Dispatcher(registry)
            dispatcher.render("/a")

            fetcher.fail = True
            clock.set(70)
            assert dispatcher.render("/a").source is RenderSource.STALE
            assert registry.scheduler.wait_idle(timeout=2)
            assert registry.scheduler.is_exhausted("/a", 1)

            fetcher.fail = False
            dispatcher.render("/b")
            dispatcher.render("/c")

            assert "/a" not in registry.store
            assert not registry.scheduler.is_exhausted("/a", 1)

    def test_metrics(self, dispatcher, registry, clock):
        """Test request counters."""
        dispatcher.render("/blog/a")
        dispatcher.render("/blog/a")
        clock.set(3700)
        dispatcher.render("/blog/a")
        registry.scheduler.wait_idle(timeout=2)

        metrics = registry.metrics.get_metrics()
        assert metrics.misses == 1
        assert metrics.hits == 1
        assert metrics.stale_serves == 1
        assert metrics.origin_fetches == 2
        assert metrics.revalidation_successes == 1

    def test_eviction_metric(self, policies, fetcher, clock):
        """Test evictions are counted."""
        config = EngineConfig(name="tiny", capacity=2)
        with CacheRegistry(policies, fetcher, config, clock=clock) as registry:
            dispatcher = Dispatcher(registry)
            for route in ("/a", "/b", "/c"):
                dispatcher.render(route)

            assert len(registry.store) == 2
            assert "/a" not in registry.store
            assert registry.metrics.get("evictions") == 1

    def test_stats(self, dispatcher, registry):
        """Test registry stats snapshot."""
        dispatcher.render("/blog/a")
        stats = registry.get_stats()

        assert stats["running"]
        assert stats["name"] == "test"
        assert stats["metrics"]["misses"] == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
