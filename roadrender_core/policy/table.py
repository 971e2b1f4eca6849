"""RoadRender Policy Table - Route Classification.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from roadrender_core.errors import ConfigurationError, UnmatchedRouteError
from roadrender_core.policy.policy import WILDCARD, Policy, RenderMode

logger = logging.getLogger(__name__)


class PolicyTable:
    """Immutable route pattern -> policy lookup.

    Exact patterns always win over wildcard patterns. Among wildcard
    patterns, the longest matching prefix wins. The table is validated
    once at construction and rejects configurations that could leave a
    route unmatched or matched ambiguously.

    Example:
        table = PolicyTable([
            Policy("/about", RenderMode.STATIC),
            Policy("/blog/*", RenderMode.INCREMENTAL, ttl_seconds=3600,
                   stale_grace_seconds=300),
            Policy("*", RenderMode.DYNAMIC),
        ])
        table.classify("/blog/hello").mode  # RenderMode.INCREMENTAL
    """

    def __init__(self, policies: Iterable[Policy]):
        """Initialize and validate table.

        Args:
            policies: Policies in any order

        Raises:
            ConfigurationError: If the set of policies is invalid
        """
        self._policies: List[Policy] = list(policies)
        self.validate()

        self._exact: Dict[str, Policy] = {
            p.pattern: p for p in self._policies if not p.is_wildcard
        }
        # Longest prefix first so the first match is the most specific
        self._wildcards: List[Policy] = sorted(
            (p for p in self._policies if p.is_wildcard),
            key=lambda p: len(p.prefix),
            reverse=True,
        )
        logger.debug(
            f"Policy table loaded: {len(self._exact)} exact, "
            f"{len(self._wildcards)} wildcard"
        )

    def validate(self) -> None:
        """Validate the policy set.

        Raises:
            ConfigurationError: On duplicate patterns, misplaced wildcards,
                bad timings or a missing catch-all
        """
        if not self._policies:
            raise ConfigurationError("Policy table is empty")

        seen = set()
        for policy in self._policies:
            if not policy.pattern:
                raise ConfigurationError("Empty route pattern")
            if policy.pattern in seen:
                raise ConfigurationError(f"Duplicate route pattern {policy.pattern!r}")
            seen.add(policy.pattern)

            if WILDCARD in policy.prefix:
                raise ConfigurationError(
                    f"Wildcard must be the last character in {policy.pattern!r}"
                )

            if policy.mode is RenderMode.INCREMENTAL:
                ttl = policy.ttl_seconds
                if ttl is None or not math.isfinite(ttl) or ttl <= 0:
                    raise ConfigurationError(
                        f"Incremental route {policy.pattern!r} needs a positive ttl_seconds"
                    )
            elif policy.ttl_seconds is not None:
                logger.warning(
                    f"ttl_seconds ignored for {policy.mode.value} route {policy.pattern!r}"
                )

            grace = policy.stale_grace_seconds
            if not math.isfinite(grace) or grace < 0:
                raise ConfigurationError(
                    f"stale_grace_seconds must be finite and non-negative for {policy.pattern!r}"
                )

        if WILDCARD not in seen:
            raise ConfigurationError(
                f"Policy table has no catch-all {WILDCARD!r} pattern"
            )

    def classify(self, route: str) -> Policy:
        """Find the policy for a route.

        Args:
            route: Route key

        Returns:
            Matching policy

        Raises:
            UnmatchedRouteError: If no pattern matches
        """
        policy = self._exact.get(route)
        if policy is not None:
            return policy

        for policy in self._wildcards:
            if route.startswith(policy.prefix):
                return policy

        raise UnmatchedRouteError(route)

    def get(self, pattern: str) -> Optional[Policy]:
        """Get policy by its exact pattern text."""
        for policy in self._policies:
            if policy.pattern == pattern:
                return policy
        return None

    def policies(self) -> List[Policy]:
        """Get policies in load order."""
        return list(self._policies)

    def to_list(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self._policies]

    @classmethod
    def from_dict(cls, routes: Iterable[Mapping[str, Any]]) -> "PolicyTable":
        """Build a table from config mappings.

        Args:
            routes: Iterable of ``{"pattern", "mode", "ttl_seconds",
                "stale_grace_seconds"}`` mappings

        Returns:
            Validated PolicyTable

        Raises:
            ConfigurationError: If a mapping is malformed or the set is invalid
        """
        policies = []
        for index, data in enumerate(routes):
            try:
                policies.append(Policy.from_dict(dict(data)))
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid route entry #{index}: {e}") from e
        return cls(policies)

    def __len__(self) -> int:
        return len(self._policies)

    def __iter__(self) -> Iterator[Policy]:
        return iter(self._policies)

    def __repr__(self) -> str:
        return f"PolicyTable(policies={len(self._policies)})"


__all__ = ["PolicyTable"]
