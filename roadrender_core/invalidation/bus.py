"""RoadRender Invalidation Bus - Content Update Purges.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional

from roadrender_core.cache.store import CacheStore
from roadrender_core.metrics.collector import MetricsCollector
from roadrender_core.policy.policy import WILDCARD

logger = logging.getLogger(__name__)


@dataclass
class InvalidationEvent:
    """A processed invalidation.

    Attributes:
        target: Key, or prefix ending in ``*``
        is_prefix: Whether target is a prefix
        matched: Entries marked expired
        source: Where the signal came from
    """

    target: str
    is_prefix: bool
    matched: int = 0
    source: Optional[str] = None

    @property
    def prefix(self) -> str:
        return self.target[:-1] if self.is_prefix else self.target


Listener = Callable[[InvalidationEvent], None]


class InvalidationBus:
    """Turns external content-update signals into cache invalidations.

    Invalidated entries are marked Expired but keep their payload, so
    the next request blocks on a refetch (or joins one already running)
    and can still fall back to the old payload if that refetch fails.

    Example:
        bus = InvalidationBus(store)
        bus.invalidate("/blog/hello")
        bus.invalidate("/blog/*")
        bus.handle_event({"prefix": "/docs/", "source": "cms"})
    """

    def __init__(self, store: CacheStore, metrics: Optional[MetricsCollector] = None):
        """Initialize bus.

        Args:
            store: Cache store to invalidate
            metrics: Metrics collector
        """
        self._store = store
        self._metrics = metrics or MetricsCollector()
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        self._history: List[InvalidationEvent] = []
        self.history_size = 100

    def invalidate(self, key_or_prefix: str, source: Optional[str] = None) -> int:
        """Invalidate one key or every key under a prefix.

        Args:
            key_or_prefix: Route key, or prefix ending in ``*``
            source: Signal origin for logs and listeners

        Returns:
            Number of entries marked expired
        """
        is_prefix = key_or_prefix.endswith(WILDCARD)
        event = InvalidationEvent(target=key_or_prefix, is_prefix=is_prefix, source=source)

        if is_prefix:
            event.matched = self._store.invalidate_prefix(event.prefix)
        else:
            event.matched = 1 if self._store.invalidate(key_or_prefix) else 0

        if event.matched:
            self._metrics.increment("invalidations", event.matched)
        logger.info(
            f"Invalidated {event.matched} entries for {key_or_prefix!r}"
            + (f" from {source}" if source else "")
        )

        with self._lock:
            self._history.append(event)
            del self._history[:-self.history_size]
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Invalidation listener error for {key_or_prefix!r}: {e}")

        return event.matched

    def handle_event(self, payload: Mapping[str, Any]) -> int:
        """Process a webhook-style invalidation payload.

        Accepts ``{"key": ...}``, ``{"prefix": ...}`` or ``{"keys": [...]}``,
        with an optional ``"source"``. A bare prefix is treated as ``prefix*``.

        Args:
            payload: Decoded event body

        Returns:
            Total entries marked expired

        Raises:
            ValueError: If the payload names nothing to invalidate
        """
        source = payload.get("source")
        targets: List[str] = []

        if payload.get("key"):
            targets.append(str(payload["key"]))
        if payload.get("prefix"):
            prefix = str(payload["prefix"])
            targets.append(prefix if prefix.endswith(WILDCARD) else prefix + WILDCARD)
        keys = payload.get("keys") or []
        if isinstance(keys, str):
            raise ValueError("'keys' must be a list")
        targets.extend(str(k) for k in keys)

        if not targets:
            raise ValueError("Invalidation event has no key, prefix or keys")

        return sum(self.invalidate(target, source=source) for target in targets)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called after each invalidation.

        Args:
            listener: Function(event)

        Returns:
            Function that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def history(self) -> List[InvalidationEvent]:
        """Recent invalidations, oldest first."""
        with self._lock:
            return list(self._history)

    def __repr__(self) -> str:
        return f"InvalidationBus(listeners={len(self._listeners)})"


__all__ = ["InvalidationBus", "InvalidationEvent", "Listener"]
