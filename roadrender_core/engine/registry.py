"""RoadRender Registry - Engine Components and Lifecycle.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional

from roadrender_core.cache.entry import CacheEntry
from roadrender_core.cache.store import CacheStore
from roadrender_core.config import EngineConfig
from roadrender_core.errors import OriginError, OriginTimeout
from roadrender_core.flight.coordinator import SingleFlightCoordinator
from roadrender_core.invalidation.bus import InvalidationBus
from roadrender_core.metrics.collector import MetricsCollector, Timer
from roadrender_core.origin.fetcher import BoundedFetcher, OriginFetcher
from roadrender_core.policy.policy import Policy
from roadrender_core.policy.table import PolicyTable
from roadrender_core.revalidation.scheduler import BackoffPolicy, RevalidationScheduler

logger = logging.getLogger(__name__)


class CacheRegistry:
    """Owns every stateful engine component.

    Nothing in the engine is module-global: a registry is built, ``init``
    starts its background pools, the Dispatcher is handed the registry,
    and ``shutdown`` stops the pools. Several registries can live side
    by side in one process.

    Example:
        with CacheRegistry(policies, fetcher, EngineConfig(capacity=500)) as registry:
            dispatcher = Dispatcher(registry)
            result = dispatcher.render("/blog/hello")
    """

    def __init__(
        self,
        policies: PolicyTable,
        fetcher: OriginFetcher,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.time,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize registry.

        Args:
            policies: Validated policy table
            fetcher: Origin fetcher
            config: Engine configuration
            clock: Time source for entry freshness
            metrics: Metrics collector

        Raises:
            ConfigurationError: If config is invalid
        """
        self.config = config or EngineConfig()
        self.config.validate()
        self.policies = policies
        self.fetcher = fetcher
        self.clock = clock
        self.metrics = metrics or MetricsCollector()

        self.store = CacheStore(
            capacity=self.config.capacity,
            error_grace_seconds=self.config.error_grace_seconds,
            clock=clock,
        )
        self.store.on_evict(self._on_evict)
        self.coordinator = SingleFlightCoordinator(clock=clock)
        self.scheduler = RevalidationScheduler(
            self.store,
            refresh=self.revalidate,
            metrics=self.metrics,
            backoff=BackoffPolicy(
                base_delay=self.config.backoff_base_seconds,
                max_delay=self.config.backoff_max_seconds,
                max_attempts=self.config.max_revalidation_attempts,
            ),
            max_workers=self.config.revalidation_workers,
            clock=clock,
        )
        self.bus = InvalidationBus(self.store, self.metrics)

        self._origin: Optional[BoundedFetcher] = None

    def _on_evict(self, key: str, entry: CacheEntry) -> None:
        self.metrics.record_eviction()
        self.scheduler.forget(key)

    @property
    def running(self) -> bool:
        return self._origin is not None

    def init(self) -> "CacheRegistry":
        """Start origin and revalidation pools.

        Returns:
            Self for chaining
        """
        if self._origin is not None:
            return self

        self._origin = BoundedFetcher(
            self.fetcher,
            timeout=self.config.fetch_timeout_seconds,
            max_workers=self.config.fetch_workers,
        )
        self.scheduler.start()
        logger.info(
            f"Engine {self.config.name} started "
            f"({len(self.policies)} policies, capacity {self.config.capacity})"
        )
        return self

    def shutdown(self, wait: bool = True) -> None:
        """Stop background work. Cached entries are dropped."""
        self.scheduler.shutdown(wait=wait)
        if self._origin is not None:
            self._origin.shutdown(wait=False)
            self._origin = None
        self.store.clear()
        logger.info(f"Engine {self.config.name} stopped")

    def _require_origin(self) -> BoundedFetcher:
        origin = self._origin
        if origin is None:
            raise RuntimeError(f"Engine {self.config.name} is not initialized")
        return origin

    def _fetch(self, origin: BoundedFetcher, key: str) -> Any:
        self.metrics.increment("origin_fetches")
        try:
            with Timer(self.metrics):
                return origin.fetch(key)
        except OriginTimeout:
            self.metrics.increment("origin_timeouts")
            self.metrics.increment("origin_failures")
            raise
        except OriginError:
            self.metrics.increment("origin_failures")
            raise

    def _load(self, origin: BoundedFetcher, key: str, policy: Policy) -> CacheEntry:
        payload = self._fetch(origin, key)
        version = self.store.put(
            key,
            payload,
            ttl=policy.effective_ttl,
            stale_grace=policy.stale_grace_seconds,
        )
        entry = self.store.peek(key)
        if entry is not None and entry.version == version:
            return entry
        # Evicted or replaced right after the put; answer with what we stored
        return CacheEntry(
            key=key,
            payload=payload,
            version=version,
            created_at=self.clock(),
            ttl_seconds=policy.effective_ttl,
            stale_grace_seconds=policy.stale_grace_seconds,
            error_grace_seconds=self.config.error_grace_seconds,
        )

    def refresh(self, key: str, policy: Policy, attempt: int = 0) -> CacheEntry:
        """Fetch key from the origin once and store the result.

        Concurrent callers for the same key share one origin call.

        Args:
            key: Route key
            policy: Policy to store the entry under
            attempt: Background retry attempt, 0 for requests

        Returns:
            The stored entry

        Raises:
            OriginError: If the fetch failed or timed out
        """
        origin = self._require_origin()
        entry, shared = self.coordinator.do(
            key,
            lambda: self._load(origin, key, policy),
            wait_timeout=self.config.join_timeout_seconds,
            attempt=attempt,
        )
        if shared:
            self.metrics.increment("coalesced")
        return entry

    def revalidate(self, key: str, policy: Policy, attempt: int = 0) -> Optional[CacheEntry]:
        """Background refresh of a cached key.

        Like ``refresh``, but when a request already owns the flight for
        key its failure belongs to that request: the error is not raised
        here, so it never counts against the entry.

        Args:
            key: Route key
            policy: Policy to store the entry under
            attempt: Background retry attempt

        Returns:
            The stored entry, or None if the joined request fetch failed

        Raises:
            OriginError: If this refresh owned the fetch and it failed
        """
        origin = self._require_origin()
        handle = self.coordinator.acquire_or_join(key, attempt=attempt)

        if not handle.is_owner:
            self.metrics.increment("coalesced")
            try:
                return handle.result.result(timeout=self.config.join_timeout_seconds)
            except FutureTimeoutError:
                logger.info(f"Stopped waiting on request fetch of {key} during revalidation")
                return None
            except OriginError as e:
                logger.info(f"Request fetch of {key} failed during revalidation: {e}")
                return None

        try:
            entry = self._load(origin, key, policy)
        except BaseException as e:
            self.coordinator.fail(handle, e)
            raise
        self.coordinator.complete(handle, entry)
        return entry

    def fetch_uncached(self, key: str) -> Any:
        """Fetch key from the origin without touching the store.

        Concurrent callers for the same key still share one origin call.

        Raises:
            OriginError: If the fetch failed or timed out
        """
        origin = self._require_origin()
        payload, shared = self.coordinator.do(
            key,
            lambda: self._fetch(origin, key),
            wait_timeout=self.config.join_timeout_seconds,
        )
        if shared:
            self.metrics.increment("coalesced")
        return payload

    def get_stats(self) -> dict:
        return {
            "name": self.config.name,
            "running": self.running,
            "store": self.store.get_stats().to_dict(),
            "flights": self.coordinator.get_stats(),
            "revalidating": len(self.scheduler.active_jobs()),
            "metrics": self.metrics.get_metrics().to_dict(),
        }

    def __enter__(self) -> "CacheRegistry":
        return self.init()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return f"CacheRegistry(name={self.config.name!r}, running={self.running})"


__all__ = ["CacheRegistry"]
