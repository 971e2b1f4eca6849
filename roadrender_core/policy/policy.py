"""RoadRender Policy - Per-Route Rendering Policy.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

WILDCARD = "*"


class RenderMode(Enum):
    """How a route's content is produced."""

    STATIC = "static"            # Cached forever, refreshed only by invalidation
    INCREMENTAL = "incremental"  # Cached with TTL and stale-while-revalidate
    DYNAMIC = "dynamic"          # Never cached, fetched per request

    @classmethod
    def parse(cls, value: Any) -> "RenderMode":
        """Parse a mode from config text or an existing mode."""
        if isinstance(value, RenderMode):
            return value
        return cls(str(value).strip().lower())


@dataclass(frozen=True)
class Policy:
    """Rendering policy bound to a route pattern.

    Attributes:
        pattern: Exact route (``/about``) or prefix wildcard (``/blog/*``, ``*``)
        mode: Render mode
        ttl_seconds: Freshness lifetime, Incremental only
        stale_grace_seconds: Window after TTL where stale content may be served
    """

    pattern: str
    mode: RenderMode
    ttl_seconds: Optional[float] = None
    stale_grace_seconds: float = 0.0

    @property
    def is_wildcard(self) -> bool:
        """Check if pattern is a prefix wildcard."""
        return self.pattern.endswith(WILDCARD)

    @property
    def prefix(self) -> str:
        """Literal prefix of a wildcard pattern."""
        return self.pattern[:-1] if self.is_wildcard else self.pattern

    @property
    def is_catch_all(self) -> bool:
        """Check if pattern matches every route."""
        return self.pattern == WILDCARD

    @property
    def is_cacheable(self) -> bool:
        """Check if responses for this policy go through the cache."""
        return self.mode is not RenderMode.DYNAMIC

    @property
    def effective_ttl(self) -> Optional[float]:
        """TTL applied to cached entries; None means never ages."""
        if self.mode is RenderMode.INCREMENTAL:
            return self.ttl_seconds
        return None

    def matches(self, route: str) -> bool:
        """Check if route falls under this pattern."""
        if self.is_wildcard:
            return route.startswith(self.prefix)
        return route == self.pattern

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.pattern,
            "mode": self.mode.value,
            "ttl_seconds": self.ttl_seconds,
            "stale_grace_seconds": self.stale_grace_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Policy":
        """Create from a config mapping.

        Args:
            data: Mapping with ``pattern``, ``mode`` and optional timings

        Returns:
            Policy instance
        """
        ttl = data.get("ttl_seconds")
        return cls(
            pattern=str(data["pattern"]),
            mode=RenderMode.parse(data.get("mode", RenderMode.DYNAMIC)),
            ttl_seconds=float(ttl) if ttl is not None else None,
            stale_grace_seconds=float(data.get("stale_grace_seconds", 0.0)),
        )

    def __repr__(self) -> str:
        return f"Policy({self.pattern!r}, {self.mode.name}, ttl={self.ttl_seconds})"


__all__ = ["Policy", "RenderMode", "WILDCARD"]
