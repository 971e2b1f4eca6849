"""Invalidation module - External purge signals."""

from roadrender_core.invalidation.bus import (
    InvalidationBus,
    InvalidationEvent,
)

__all__ = [
    "InvalidationBus",
    "InvalidationEvent",
]
