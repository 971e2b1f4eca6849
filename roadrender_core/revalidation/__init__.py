"""Revalidation module - Background refresh of stale entries."""

from roadrender_core.revalidation.scheduler import (
    RevalidationScheduler,
    BackoffPolicy,
)

__all__ = [
    "RevalidationScheduler",
    "BackoffPolicy",
]
