"""RoadRender LRU Policy - Least Recently Read Eviction.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Optional

from roadrender_core.eviction.policy import EvictionPolicy


class LRUPolicy(EvictionPolicy):
    """Least recently read eviction.

    Keys are ordered by last read; new keys enter as most recent.
    A refresh of an existing key is not a read and leaves its position
    unchanged, so an entry kept alive only by background revalidation
    still ages out.

    Example:
        policy = LRUPolicy(max_size=2)
        policy.on_insert("/a")
        policy.on_insert("/b")
        policy.on_read("/a")
        policy.choose_eviction()  # "/b"
    """

    def __init__(self, max_size: int = 1024):
        super().__init__(max_size)
        self._order: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.RLock()

    def on_read(self, key: str) -> None:
        with self._lock:
            self._stats.reads += 1
            if key in self._order:
                self._order.move_to_end(key)

    def on_insert(self, key: str) -> None:
        with self._lock:
            if key not in self._order:
                self._order[key] = None
            self._stats.current_size = len(self._order)

    def on_delete(self, key: str) -> None:
        with self._lock:
            if key in self._order:
                del self._order[key]
                self._stats.current_size = len(self._order)

    def choose_eviction(self) -> Optional[str]:
        with self._lock:
            if not self._order:
                return None

            # First key is the least recently read
            key = next(iter(self._order))
            self._stats.evictions += 1
            return key

    def clear(self) -> None:
        with self._lock:
            self._order.clear()
            self._stats.current_size = 0

    def contains(self, key: str) -> bool:
        return key in self._order

    def size(self) -> int:
        return len(self._order)

    def peek_lru(self) -> Optional[str]:
        """Peek at the least recently read key without evicting."""
        with self._lock:
            if not self._order:
                return None
            return next(iter(self._order))

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def __repr__(self) -> str:
        return f"LRUPolicy(size={len(self._order)}, max={self.max_size})"


__all__ = ["LRUPolicy"]
