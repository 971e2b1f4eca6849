"""RoadRender Dispatcher - Per-Request Rendering Decisions.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from roadrender_core.cache.entry import CacheEntry, Freshness
from roadrender_core.engine.registry import CacheRegistry
from roadrender_core.errors import OriginError
from roadrender_core.policy.policy import Policy, RenderMode

logger = logging.getLogger(__name__)


class RenderSource(Enum):
    """Where a response payload came from."""

    FRESH = "fresh"        # Cached, within TTL
    STALE = "stale"        # Cached, past TTL, refresh running in background
    ORIGIN = "origin"      # Fetched synchronously and cached
    FALLBACK = "fallback"  # Invalidated payload served because the refetch failed
    DYNAMIC = "dynamic"    # Fetched synchronously, never cached


@dataclass
class RenderResult:
    """Answer to one content request.

    Attributes:
        route: Requested route
        payload: Content to serve
        source: Where the payload came from
        mode: Render mode of the route's policy
        version: Cache version served; None for dynamic routes
        age_seconds: Age of the served payload
        error_count: Failed background revalidations behind this payload
    """

    route: str
    payload: Any
    source: RenderSource
    mode: RenderMode
    version: Optional[int] = None
    age_seconds: float = 0.0
    error_count: int = 0

    @property
    def from_cache(self) -> bool:
        return self.source in (RenderSource.FRESH, RenderSource.STALE, RenderSource.FALLBACK)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "route": self.route,
            "source": self.source.value,
            "mode": self.mode.value,
            "version": self.version,
            "age_seconds": round(self.age_seconds, 3),
            "error_count": self.error_count,
        }


class Dispatcher:
    """Answers content requests from cache or origin.

    Decision per request:
    - Dynamic: fetch from origin (single-flighted), never cache
    - Fresh hit: serve the cached payload
    - Stale hit: serve the cached payload, refresh in background
    - Miss or Expired: block on a single-flighted fetch

    Static routes are Incremental routes that never age; only an
    invalidation makes them refetch.

    Example:
        dispatcher = Dispatcher(registry)
        result = dispatcher.render("/blog/hello")
        if result.source is RenderSource.STALE:
            ...
    """

    def __init__(self, registry: CacheRegistry):
        """Initialize dispatcher.

        Args:
            registry: Initialized engine registry
        """
        self.registry = registry

    def classify(self, route: str) -> Policy:
        return self.registry.policies.classify(route)

    def render(self, route: str) -> RenderResult:
        """Answer one request for a route.

        Args:
            route: Route key

        Returns:
            RenderResult

        Raises:
            UnmatchedRouteError: If the policy table has no match
            OriginError: If a blocking fetch failed and no fallback applies
        """
        policy = self.classify(route)

        if policy.mode is RenderMode.DYNAMIC:
            return self._render_dynamic(route, policy)

        registry = self.registry
        entry = registry.store.get(route)
        if entry is None:
            logger.debug(f"CACHE MISS: {route}")
            return self._render_blocking(route, policy, None)

        now = registry.clock()
        state = entry.freshness(now)

        if state is Freshness.FRESH:
            logger.debug(f"CACHE HIT (fresh): {route} v{entry.version}")
            registry.metrics.record_hit()
            return self._from_entry(route, policy, entry, RenderSource.FRESH, now)

        if state is Freshness.STALE:
            logger.debug(
                f"CACHE HIT (stale, revalidating): {route} v{entry.version} "
                f"[age={entry.age(now):.1f}s]"
            )
            registry.metrics.record_stale_serve()
            registry.scheduler.schedule(route, policy, entry.version)
            return self._from_entry(route, policy, entry, RenderSource.STALE, now)

        logger.debug(
            f"CACHE EXPIRED: {route} v{entry.version}"
            + (" (invalidated)" if entry.invalidated else "")
        )
        return self._render_blocking(route, policy, entry)

    def _render_blocking(
        self,
        route: str,
        policy: Policy,
        previous: Optional[CacheEntry],
    ) -> RenderResult:
        registry = self.registry
        registry.metrics.record_miss()

        try:
            entry = registry.refresh(route, policy)
        except OriginError as e:
            if previous is not None and previous.invalidated:
                logger.warning(
                    f"Refetch of invalidated {route} failed, serving v{previous.version}: {e}"
                )
                registry.metrics.increment("fallback_serves")
                return self._from_entry(
                    route, policy, previous, RenderSource.FALLBACK, registry.clock()
                )
            raise

        return self._from_entry(route, policy, entry, RenderSource.ORIGIN, registry.clock())

    def _render_dynamic(self, route: str, policy: Policy) -> RenderResult:
        self.registry.metrics.increment("dynamic_requests")
        payload = self.registry.fetch_uncached(route)
        return RenderResult(
            route=route,
            payload=payload,
            source=RenderSource.DYNAMIC,
            mode=policy.mode,
        )

    @staticmethod
    def _from_entry(
        route: str,
        policy: Policy,
        entry: CacheEntry,
        source: RenderSource,
        now: float,
    ) -> RenderResult:
        return RenderResult(
            route=route,
            payload=entry.payload,
            source=source,
            mode=policy.mode,
            version=entry.version,
            age_seconds=entry.age(now),
            error_count=entry.error_count,
        )

    def invalidate(self, key_or_prefix: str, source: Optional[str] = None) -> int:
        """Invalidate through the registry's bus."""
        return self.registry.bus.invalidate(key_or_prefix, source=source)

    def __repr__(self) -> str:
        return f"Dispatcher({self.registry!r})"


__all__ = ["Dispatcher", "RenderResult", "RenderSource"]
