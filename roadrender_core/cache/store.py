"""RoadRender Cache Store - Versioned, Capacity-Bounded Entry Storage.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from roadrender_core.cache.entry import CacheEntry, EntryMetadata, Freshness
from roadrender_core.eviction.lru import LRUPolicy
from roadrender_core.eviction.policy import EvictionPolicy

logger = logging.getLogger(__name__)


@dataclass
class StoreStats:
    """Cache store statistics.

    Attributes:
        reads: Reads that found an entry
        misses: Reads that found nothing
        puts: Successful puts
        failures: Recorded revalidation failures
        invalidations: Entries marked expired by invalidation
        evictions: Entries removed for capacity
        entry_count: Current entry count
        capacity: Maximum entries
    """

    reads: int = 0
    misses: int = 0
    puts: int = 0
    failures: int = 0
    invalidations: int = 0
    evictions: int = 0
    entry_count: int = 0
    capacity: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reads": self.reads,
            "misses": self.misses,
            "puts": self.puts,
            "failures": self.failures,
            "invalidations": self.invalidations,
            "evictions": self.evictions,
            "entry_count": self.entry_count,
            "capacity": self.capacity,
        }


class CacheStore:
    """Thread-safe store of versioned render artifacts.

    ``put`` is the only way to change a payload. Every put creates a new
    version, one above the last version the store handed out for that
    key, even if the key was evicted in between. Mutations of a key are
    serialized on a lock stripe for that key; the shared index lock is
    only held for dict and LRU bookkeeping, so work on one key never
    waits on another key's writer.

    Example:
        store = CacheStore(capacity=100)
        version = store.put("/blog/a", "<html>", ttl=3600, stale_grace=300)
        entry = store.get("/blog/a")
        entry.freshness(store.now())  # Freshness.FRESH
    """

    def __init__(
        self,
        capacity: int = 1024,
        error_grace_seconds: float = 0.0,
        clock: Callable[[], float] = time.time,
        eviction: Optional[EvictionPolicy] = None,
        lock_stripes: int = 64,
    ):
        """Initialize store.

        Args:
            capacity: Maximum entries
            error_grace_seconds: Extended stale window while revalidation fails
            clock: Time source in seconds
            eviction: Eviction policy (LRU by default)
            lock_stripes: Number of per-key lock stripes
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")

        self.capacity = capacity
        self.error_grace_seconds = error_grace_seconds
        self.clock = clock
        self._eviction = eviction or LRUPolicy(max_size=capacity)
        self._eviction.max_size = capacity

        self._entries: Dict[str, CacheEntry] = {}
        self._versions: Dict[str, int] = {}
        self._lock = threading.RLock()
        self._key_locks = [threading.Lock() for _ in range(max(1, lock_stripes))]
        self._stats = StoreStats(capacity=capacity)

        self._on_evict: Optional[Callable[[str, CacheEntry], None]] = None

    def now(self) -> float:
        """Current clock reading."""
        return self.clock()

    def _key_lock(self, key: str) -> threading.Lock:
        return self._key_locks[hash(key) % len(self._key_locks)]

    def get(self, key: str) -> Optional[CacheEntry]:
        """Read an entry and record the read for eviction.

        Args:
            key: Route key

        Returns:
            Copy of the entry or None
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            entry.metadata.touch(self.clock())
            self._eviction.on_read(key)
            self._stats.reads += 1
            return entry.copy()

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Read an entry without counting it as a read."""
        with self._lock:
            entry = self._entries.get(key)
            return entry.copy() if entry is not None else None

    def freshness(self, key: str) -> Optional[Freshness]:
        """Freshness of a key right now, or None if absent."""
        entry = self.peek(key)
        if entry is None:
            return None
        return entry.freshness(self.clock())

    def put(
        self,
        key: str,
        payload: Any,
        ttl: Optional[float] = None,
        stale_grace: float = 0.0,
    ) -> int:
        """Store a new version of a key.

        Resets ``error_count`` and clears any invalidation.

        Args:
            key: Route key
            payload: Rendered content
            ttl: Freshness lifetime; None never ages
            stale_grace: Stale window after TTL

        Returns:
            New version number
        """
        with self._key_lock(key):
            with self._lock:
                version = self._versions.get(key, 0) + 1
                self._versions[key] = version

                previous = self._entries.get(key)
                metadata = EntryMetadata()
                if previous is not None:
                    metadata.last_read_at = previous.metadata.last_read_at
                    metadata.read_count = previous.metadata.read_count

                self._entries[key] = CacheEntry(
                    key=key,
                    payload=payload,
                    version=version,
                    created_at=self.clock(),
                    ttl_seconds=ttl,
                    stale_grace_seconds=stale_grace,
                    error_grace_seconds=self.error_grace_seconds,
                    metadata=metadata,
                )
                if previous is None:
                    self._eviction.on_insert(key)
                self._stats.puts += 1
                self._stats.entry_count = len(self._entries)

        logger.debug(f"Stored {key} v{version}")
        self.evict_if_over_capacity()
        return version

    def record_failure(self, key: str, error: Optional[BaseException] = None) -> Optional[int]:
        """Record a failed revalidation without touching the payload.

        Args:
            key: Route key
            error: Failure cause

        Returns:
            New error count, or None if the entry is gone
        """
        with self._key_lock(key):
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    return None

                entry.error_count += 1
                entry.metadata.last_error = str(error) if error is not None else None
                entry.metadata.last_error_at = self.clock()
                self._stats.failures += 1
                return entry.error_count

    def invalidate(self, key: str) -> bool:
        """Force a key to Expired, keeping its payload as fallback.

        Args:
            key: Route key

        Returns:
            True if an entry was marked
        """
        with self._key_lock(key):
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    return False
                entry.invalidated = True
                self._stats.invalidations += 1
                return True

    def invalidate_prefix(self, prefix: str) -> int:
        """Force every key starting with prefix to Expired.

        Args:
            prefix: Key prefix; empty matches everything

        Returns:
            Number of entries marked
        """
        count = 0
        for key in self.keys(prefix):
            if self.invalidate(key):
                count += 1
        return count

    def evict_if_over_capacity(self) -> List[str]:
        """Drop least recently read entries above capacity.

        Returns:
            Evicted keys
        """
        evicted: List[Tuple[str, CacheEntry]] = []
        with self._lock:
            for key in self._eviction.over_capacity():
                entry = self._entries.pop(key, None)
                if entry is not None:
                    evicted.append((key, entry))
            self._stats.evictions += len(evicted)
            self._stats.entry_count = len(self._entries)

        for key, entry in evicted:
            logger.debug(f"Evicted {key} v{entry.version}")
            if self._on_evict:
                self._on_evict(key, entry.copy())

        return [key for key, _ in evicted]

    def version_of(self, key: str) -> int:
        """Last version handed out for key, 0 if never stored."""
        with self._lock:
            return self._versions.get(key, 0)

    def keys(self, prefix: Optional[str] = None) -> List[str]:
        """Get cached keys, optionally filtered by prefix."""
        with self._lock:
            if prefix is None:
                return list(self._entries.keys())
            return [k for k in self._entries.keys() if k.startswith(prefix)]

    def clear(self) -> int:
        """Drop all entries. Version history is kept.

        Returns:
            Number of entries dropped
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._eviction.clear()
            self._stats.entry_count = 0
            return count

    def size(self) -> int:
        return len(self._entries)

    def on_evict(self, callback: Callable[[str, CacheEntry], None]) -> "CacheStore":
        """Set eviction callback.

        Args:
            callback: Function(key, entry)

        Returns:
            Self for chaining
        """
        self._on_evict = callback
        return self

    def get_stats(self) -> StoreStats:
        self._stats.entry_count = len(self._entries)
        return self._stats

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return self.size()

    def __repr__(self) -> str:
        return f"CacheStore(entries={len(self._entries)}, capacity={self.capacity})"


__all__ = ["CacheStore", "StoreStats"]
