"""RoadRender - Content Freshness Cache and Rendering Policy Engine.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Decides, per request, whether to serve a cached render, serve a stale
render while refreshing it in the background, or fetch synchronously
from a slow or unreliable origin:
- Static / Incremental / Dynamic render modes per route pattern
- Stale-while-revalidate with bounded staleness windows
- Single-flight origin calls (one fetch per key per burst)
- Background revalidation with capped exponential backoff
- Invalidation that keeps the old payload as a failure fallback
- LRU-bounded, versioned cache store
- Counters and Prometheus export

Architecture:
    ┌─────────────────────────────────────────────────────────────────┐
    │                        RoadRender Engine                        │
    ├─────────────────────────────────────────────────────────────────┤
    │  ┌─────────────┐  ┌─────────────┐  ┌─────────────┐             │
    │  │ Dispatcher  │  │   Policy    │  │ Invalidation│   REQUEST   │
    │  │   render    │  │    Table    │  │     Bus     │   LAYER     │
    │  └──────┬──────┘  └─────────────┘  └──────┬──────┘             │
    │         │                                 │                     │
    │  ┌──────┴─────────────────────────────────┴──────┐             │
    │  │                  Registry                      │             │
    │  │  ┌──────────────┐  ┌──────────────────────┐   │  FRESHNESS  │
    │  │  │ Single-Flight│  │ Revalidation Sched.  │   │   LAYER     │
    │  │  └──────┬───────┘  └──────────┬───────────┘   │             │
    │  └─────────┼─────────────────────┼───────────────┘             │
    │            │                     │                              │
    │  ┌─────────┴──────┐   ┌──────────┴──────────┐                  │
    │  │ Origin Fetcher │   │ Cache Store (+LRU)  │      STORAGE     │
    │  │  (deadline)    │   │  versioned entries  │      LAYER       │
    │  └────────────────┘   └─────────────────────┘                  │
    └─────────────────────────────────────────────────────────────────┘

Example Usage:
    from roadrender_core import (
        CacheRegistry, CallableFetcher, Dispatcher, load_config,
    )

    config, policies = load_config("config/roadrender.yml")
    fetcher = CallableFetcher(lambda key, deadline: render_page(key))

    with CacheRegistry(policies, fetcher, config) as registry:
        dispatcher = Dispatcher(registry)
        result = dispatcher.render("/blog/hello")
        send(result.payload)

        # Content changed upstream
        registry.bus.invalidate("/blog/*")
"""

__version__ = "1.0.0"
__author__ = "BlackRoad OS"

from roadrender_core.errors import (
    RoadRenderError,
    ConfigurationError,
    UnmatchedRouteError,
    OriginError,
    OriginTimeout,
)
from roadrender_core.policy.policy import Policy, RenderMode
from roadrender_core.policy.table import PolicyTable
from roadrender_core.config import EngineConfig, load_config, parse_config
from roadrender_core.origin.fetcher import (
    OriginFetcher,
    CallableFetcher,
    BoundedFetcher,
)
from roadrender_core.cache.entry import CacheEntry, EntryMetadata, Freshness
from roadrender_core.cache.store import CacheStore, StoreStats
from roadrender_core.eviction.policy import EvictionPolicy, EvictionStats
from roadrender_core.eviction.lru import LRUPolicy
from roadrender_core.flight.coordinator import (
    SingleFlightCoordinator,
    FlightHandle,
    RevalidationJob,
)
from roadrender_core.revalidation.scheduler import (
    RevalidationScheduler,
    BackoffPolicy,
)
from roadrender_core.invalidation.bus import InvalidationBus, InvalidationEvent
from roadrender_core.metrics.collector import MetricsCollector, RenderMetrics
from roadrender_core.engine.registry import CacheRegistry
from roadrender_core.engine.dispatcher import Dispatcher, RenderResult, RenderSource
from roadrender_core.engine.warmup import RouteWarmer, WarmupConfig, WarmupStats

__all__ = [
    # Errors
    "RoadRenderError",
    "ConfigurationError",
    "UnmatchedRouteError",
    "OriginError",
    "OriginTimeout",
    # Policy
    "Policy",
    "RenderMode",
    "PolicyTable",
    # Config
    "EngineConfig",
    "load_config",
    "parse_config",
    # Origin
    "OriginFetcher",
    "CallableFetcher",
    "BoundedFetcher",
    # Cache
    "CacheEntry",
    "EntryMetadata",
    "Freshness",
    "CacheStore",
    "StoreStats",
    # Eviction
    "EvictionPolicy",
    "EvictionStats",
    "LRUPolicy",
    # Flight
    "SingleFlightCoordinator",
    "FlightHandle",
    "RevalidationJob",
    # Revalidation
    "RevalidationScheduler",
    "BackoffPolicy",
    # Invalidation
    "InvalidationBus",
    "InvalidationEvent",
    # Metrics
    "MetricsCollector",
    "RenderMetrics",
    # Engine
    "CacheRegistry",
    "Dispatcher",
    "RenderResult",
    "RenderSource",
    "RouteWarmer",
    "WarmupConfig",
    "WarmupStats",
]
