"""Eviction module - Capacity eviction for the cache store."""

from roadrender_core.eviction.policy import (
    EvictionPolicy,
    EvictionStats,
)
from roadrender_core.eviction.lru import LRUPolicy

__all__ = [
    "EvictionPolicy",
    "EvictionStats",
    "LRUPolicy",
]
