"""RoadRender Eviction Policy - Capacity Eviction Interface.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class EvictionStats:
    """Eviction policy statistics.

    Attributes:
        evictions: Number of keys chosen for eviction
        reads: Number of reads tracked
        current_size: Current tracked keys
        max_size: Capacity
    """

    evictions: int = 0
    reads: int = 0
    current_size: int = 0
    max_size: int = 0

    @property
    def eviction_rate(self) -> float:
        """Get evictions per tracked read."""
        return self.evictions / self.reads if self.reads > 0 else 0.0


class EvictionPolicy(ABC):
    """Chooses which cached route to drop when the store is full.

    The store reports reads, inserts and removals; the policy only
    ranks keys. It never looks at entry freshness.
    """

    def __init__(self, max_size: int = 1024):
        """Initialize policy.

        Args:
            max_size: Capacity in entries
        """
        self.max_size = max_size
        self._stats = EvictionStats(max_size=max_size)

    @abstractmethod
    def on_read(self, key: str) -> None:
        """Record a read of key."""
        pass

    @abstractmethod
    def on_insert(self, key: str) -> None:
        """Record a new key."""
        pass

    @abstractmethod
    def on_delete(self, key: str) -> None:
        """Record a removed key."""
        pass

    @abstractmethod
    def choose_eviction(self) -> Optional[str]:
        """Choose key to evict.

        Returns:
            Key to evict or None if nothing is tracked
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Forget all keys."""
        pass

    @abstractmethod
    def size(self) -> int:
        """Get number of tracked keys."""
        pass

    def over_capacity(self) -> List[str]:
        """Choose keys to evict until back within capacity.

        Returns:
            Keys to evict, already forgotten by the policy
        """
        keys = []
        while self.size() > self.max_size:
            key = self.choose_eviction()
            if key is None:
                break
            keys.append(key)
            self.on_delete(key)
        return keys

    def get_stats(self) -> EvictionStats:
        """Get eviction statistics."""
        self._stats.current_size = self.size()
        return self._stats

    def __len__(self) -> int:
        return self.size()


__all__ = ["EvictionPolicy", "EvictionStats"]
