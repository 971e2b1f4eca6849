"""RoadRender Errors - Engine Exception Hierarchy.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import Optional


class RoadRenderError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(RoadRenderError):
    """Invalid or ambiguous policy configuration.

    Raised at load time; an engine holding a table that fails
    validation must not serve traffic.
    """


class UnmatchedRouteError(ConfigurationError):
    """No policy pattern matches a route."""

    def __init__(self, route: str):
        super().__init__(f"No policy matches route {route!r}")
        self.route = route


class OriginError(RoadRenderError):
    """Origin fetch failed.

    Attributes:
        key: Route key being fetched
        detail: Failure detail from the origin
    """

    def __init__(self, detail: str, key: Optional[str] = None):
        message = f"Origin fetch failed for {key!r}: {detail}" if key else detail
        super().__init__(message)
        self.key = key
        self.detail = detail


class OriginTimeout(OriginError):
    """Origin fetch exceeded its deadline."""

    def __init__(self, key: Optional[str] = None, timeout: Optional[float] = None):
        detail = f"timed out after {timeout}s" if timeout is not None else "timed out"
        super().__init__(detail, key=key)
        self.timeout = timeout


__all__ = [
    "RoadRenderError",
    "ConfigurationError",
    "UnmatchedRouteError",
    "OriginError",
    "OriginTimeout",
]
