"""RoadRender Entry - Versioned Cache Entry with Freshness Windows.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import dataclasses
import sys
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional


class Freshness(Enum):
    """Derived freshness of a cache entry."""

    FRESH = auto()    # Serve as is
    STALE = auto()    # Serve, refresh in background
    EXPIRED = auto()  # Block on a fresh fetch


@dataclass
class EntryMetadata:
    """Bookkeeping for a cache entry.

    Attributes:
        last_read_at: Clock reading of the last read
        read_count: Number of reads
        last_error: Last background revalidation failure
        last_error_at: When it happened
        size_bytes: Approximate payload size
    """

    last_read_at: Optional[float] = None
    read_count: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[float] = None
    size_bytes: int = 0

    def touch(self, now: float) -> None:
        """Record a read."""
        self.last_read_at = now
        self.read_count += 1


@dataclass
class CacheEntry:
    """A cached render artifact.

    Entries are owned by the store; everything handed out is a copy.

    Attributes:
        key: Route key
        payload: Rendered content
        version: Monotonic per-key version, starts at 1
        created_at: Clock reading when the payload was stored
        ttl_seconds: Freshness lifetime; None never ages (Static)
        stale_grace_seconds: Stale-while-revalidate window after TTL
        error_grace_seconds: Extra stale window while revalidation is failing
        error_count: Consecutive failed background revalidations
        invalidated: Forced expired by an invalidation
        metadata: Read and error bookkeeping
    """

    key: str
    payload: Any
    version: int = 1
    created_at: float = 0.0
    ttl_seconds: Optional[float] = None
    stale_grace_seconds: float = 0.0
    error_grace_seconds: float = 0.0
    error_count: int = 0
    invalidated: bool = False
    metadata: EntryMetadata = field(default_factory=EntryMetadata)

    def __post_init__(self):
        if self.metadata.size_bytes == 0:
            self.metadata.size_bytes = sys.getsizeof(self.payload)

    @property
    def fresh_until(self) -> Optional[float]:
        """End of the fresh window; None if the entry never ages."""
        if self.ttl_seconds is None:
            return None
        return self.created_at + self.ttl_seconds

    @property
    def stale_until(self) -> Optional[float]:
        """End of the stale window, extended while revalidation is failing."""
        fresh_until = self.fresh_until
        if fresh_until is None:
            return None
        ceiling = fresh_until + self.stale_grace_seconds
        if self.error_count > 0:
            ceiling += self.error_grace_seconds
        return ceiling

    def freshness(self, now: float) -> Freshness:
        """Derive freshness at a clock reading.

        Args:
            now: Current clock reading

        Returns:
            Freshness state
        """
        if self.invalidated:
            return Freshness.EXPIRED

        fresh_until = self.fresh_until
        if fresh_until is None or now < fresh_until:
            return Freshness.FRESH
        if now < self.stale_until:
            return Freshness.STALE
        return Freshness.EXPIRED

    def age(self, now: float) -> float:
        """Seconds since the payload was stored."""
        return max(0.0, now - self.created_at)

    def copy(self) -> "CacheEntry":
        """Detached copy safe to hand to callers."""
        return dataclasses.replace(self, metadata=dataclasses.replace(self.metadata))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "payload": self.payload,
            "version": self.version,
            "created_at": self.created_at,
            "ttl_seconds": self.ttl_seconds,
            "stale_grace_seconds": self.stale_grace_seconds,
            "error_grace_seconds": self.error_grace_seconds,
            "error_count": self.error_count,
            "invalidated": self.invalidated,
            "metadata": dataclasses.asdict(self.metadata),
        }

    def __repr__(self) -> str:
        return (
            f"CacheEntry(key={self.key!r}, version={self.version}, "
            f"errors={self.error_count}, invalidated={self.invalidated})"
        )


__all__ = ["CacheEntry", "EntryMetadata", "Freshness"]
