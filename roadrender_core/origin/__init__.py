"""Origin module - Origin fetcher contract and deadline enforcement."""

from roadrender_core.origin.fetcher import (
    OriginFetcher,
    CallableFetcher,
    BoundedFetcher,
)

__all__ = [
    "OriginFetcher",
    "CallableFetcher",
    "BoundedFetcher",
]
