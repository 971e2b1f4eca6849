"""Engine module - Registry lifecycle, dispatch and warmup."""

from roadrender_core.engine.registry import CacheRegistry
from roadrender_core.engine.dispatcher import (
    Dispatcher,
    RenderResult,
    RenderSource,
)
from roadrender_core.engine.warmup import (
    RouteWarmer,
    WarmupConfig,
    WarmupStats,
)

__all__ = [
    "CacheRegistry",
    "Dispatcher",
    "RenderResult",
    "RenderSource",
    "RouteWarmer",
    "WarmupConfig",
    "WarmupStats",
]
