"""RoadRender Warmup - Pre-rendering Cached Routes.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from roadrender_core.cache.entry import Freshness
from roadrender_core.engine.registry import CacheRegistry
from roadrender_core.errors import OriginError, UnmatchedRouteError

logger = logging.getLogger(__name__)


@dataclass
class WarmupConfig:
    """Configuration for route warmup.

    Attributes:
        max_workers: Parallel origin fetches
        skip_cached: Skip routes already cached and not expired
    """

    max_workers: int = 4
    skip_cached: bool = True


@dataclass
class WarmupStats:
    """Warmup run statistics.

    Attributes:
        total_routes: Routes requested
        warmed: Routes fetched and stored
        failed: Routes whose fetch failed
        skipped: Dynamic, unmatched or already cached routes
        errors: Route -> failure message
        duration_seconds: Total duration
        started_at: Start time
        completed_at: Completion time
    """

    total_routes: int = 0
    warmed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: Dict[str, str] = field(default_factory=dict)
    duration_seconds: float = 0.0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        total = self.warmed + self.failed
        return self.warmed / total if total > 0 else 0.0


class RouteWarmer:
    """Pre-renders Static and Incremental routes before traffic arrives.

    Dynamic routes are never cached and are skipped, as are routes the
    policy table cannot classify. Fetches go through the registry, so a
    warmup racing real requests still makes one origin call per route.

    Example:
        warmer = RouteWarmer(registry)
        stats = warmer.warm(["/", "/about", "/blog/hello"])
    """

    def __init__(self, registry: CacheRegistry, config: Optional[WarmupConfig] = None):
        self.registry = registry
        self.config = config or WarmupConfig()
        self._stats = WarmupStats()
        self._lock = threading.Lock()

    def _should_skip(self, route: str) -> bool:
        try:
            policy = self.registry.policies.classify(route)
        except UnmatchedRouteError:
            logger.warning(f"Warmup skipping unmatched route {route}")
            return True

        if not policy.is_cacheable:
            return True
        if not self.config.skip_cached:
            return False
        return self.registry.store.freshness(route) in (Freshness.FRESH, Freshness.STALE)

    def warm(
        self,
        routes: Iterable[str],
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> WarmupStats:
        """Fetch and store each route.

        Args:
            routes: Routes to pre-render
            progress_callback: Called with (completed, total)

        Returns:
            Warmup statistics
        """
        routes = list(dict.fromkeys(routes))
        self._stats = WarmupStats(total_routes=len(routes), started_at=datetime.now())
        logger.info(f"Starting warmup of {len(routes)} routes")

        pending: List[str] = []
        for route in routes:
            if self._should_skip(route):
                self._stats.skipped += 1
            else:
                pending.append(route)

        completed = self._stats.skipped
        with ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="roadrender-warmup",
        ) as executor:
            futures = {
                executor.submit(
                    self.registry.refresh, route, self.registry.policies.classify(route)
                ): route
                for route in pending
            }
            for future in as_completed(futures):
                route = futures[future]
                try:
                    future.result()
                    with self._lock:
                        self._stats.warmed += 1
                except OriginError as e:
                    logger.error(f"Warmup failed for {route}: {e}")
                    with self._lock:
                        self._stats.failed += 1
                        self._stats.errors[route] = str(e)
                completed += 1
                if progress_callback:
                    progress_callback(completed, len(routes))

        self._stats.completed_at = datetime.now()
        self._stats.duration_seconds = (
            self._stats.completed_at - self._stats.started_at
        ).total_seconds()

        logger.info(
            f"Warmup completed: {self._stats.warmed} warmed, "
            f"{self._stats.failed} failed, {self._stats.skipped} skipped"
        )
        return self._stats

    def get_stats(self) -> WarmupStats:
        return self._stats


__all__ = ["RouteWarmer", "WarmupConfig", "WarmupStats"]
