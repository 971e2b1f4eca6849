"""Cache module - Versioned render artifacts and their store."""

from roadrender_core.cache.entry import (
    CacheEntry,
    EntryMetadata,
    Freshness,
)
from roadrender_core.cache.store import CacheStore, StoreStats

__all__ = [
    "CacheEntry",
    "EntryMetadata",
    "Freshness",
    "CacheStore",
    "StoreStats",
]
