"""RoadRender Single-Flight Coordinator - Per-Key Fetch Deduplication.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from roadrender_core.errors import OriginTimeout

logger = logging.getLogger(__name__)


@dataclass
class RevalidationJob:
    """An in-flight refresh of one key.

    At most one job exists per key at any instant.

    Attributes:
        key: Route key
        attempt: Retry attempt this flight belongs to, 0 for the first
        started_at: Clock reading when the flight started
        waiters: Callers that joined instead of fetching
        future: Outcome shared by the owner and all joiners
    """

    key: str
    attempt: int = 0
    started_at: float = 0.0
    waiters: int = 0
    future: "Future[Any]" = field(default_factory=Future, repr=False)


@dataclass
class FlightHandle:
    """A caller's view of a flight.

    Attributes:
        key: Route key
        is_owner: True if this caller must perform the fetch
        job: The shared flight record
    """

    key: str
    is_owner: bool
    job: RevalidationJob

    @property
    def result(self) -> "Future[Any]":
        """Future resolved with the flight outcome."""
        return self.job.future


@dataclass
class FlightStats:
    """Coordinator statistics."""

    flights: int = 0
    joins: int = 0
    failures: int = 0


class SingleFlightCoordinator:
    """Ensures one origin call per key at a time.

    Pattern:
    - First caller for a key owns the flight and does the work
    - Concurrent callers for the same key join the owner's future
    - The owner releases the slot, then resolves the future, on every
      exit path, so a failed or crashed fetch never wedges the key

    Example:
        coordinator = SingleFlightCoordinator()
        payload, shared = coordinator.do("/blog/a", lambda: origin.fetch("/blog/a"))
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """Initialize coordinator.

        Args:
            clock: Time source for job start times
        """
        self._clock = clock
        self._flights: Dict[str, RevalidationJob] = {}
        self._lock = threading.Lock()
        self._stats = FlightStats()

    def acquire_or_join(self, key: str, attempt: int = 0) -> FlightHandle:
        """Own a new flight for key or join the running one.

        Args:
            key: Route key
            attempt: Retry attempt recorded on a new flight

        Returns:
            FlightHandle; the owner must call ``complete`` or ``fail``
        """
        with self._lock:
            job = self._flights.get(key)
            if job is not None:
                job.waiters += 1
                self._stats.joins += 1
                logger.debug(f"Joining flight for {key} (waiters: {job.waiters})")
                return FlightHandle(key=key, is_owner=False, job=job)

            job = RevalidationJob(key=key, attempt=attempt, started_at=self._clock())
            self._flights[key] = job
            self._stats.flights += 1
            logger.debug(f"Starting flight for {key} (attempt {attempt})")
            return FlightHandle(key=key, is_owner=True, job=job)

    def complete(self, handle: FlightHandle, value: Any) -> None:
        """Release the slot and hand value to all joiners.

        Args:
            handle: Owner handle
            value: Flight result
        """
        self._release(handle)
        if not handle.job.future.done():
            handle.job.future.set_result(value)

    def fail(self, handle: FlightHandle, error: BaseException) -> None:
        """Release the slot and raise error in all joiners.

        Args:
            handle: Owner handle
            error: Failure cause
        """
        self._release(handle)
        with self._lock:
            self._stats.failures += 1
        if not handle.job.future.done():
            handle.job.future.set_exception(error)

    def _release(self, handle: FlightHandle) -> None:
        if not handle.is_owner:
            raise ValueError(f"Only the owner can release the flight for {handle.key}")
        with self._lock:
            if self._flights.get(handle.key) is handle.job:
                del self._flights[handle.key]

    def do(
        self,
        key: str,
        fn: Callable[[], Any],
        wait_timeout: Optional[float] = None,
        attempt: int = 0,
    ) -> Tuple[Any, bool]:
        """Run fn once per concurrent burst for key.

        A joiner that gives up waiting does not affect the owner's call,
        which runs to completion for the remaining joiners.

        Args:
            key: Route key
            fn: Work performed by the owner
            wait_timeout: Max seconds a joiner waits; None waits for the owner
            attempt: Retry attempt recorded on a new flight

        Returns:
            (result, shared) where shared is True for joiners

        Raises:
            OriginTimeout: If a joiner stopped waiting
            Exception: Whatever fn raised, in the owner and every joiner
        """
        handle = self.acquire_or_join(key, attempt=attempt)

        if handle.is_owner:
            try:
                value = fn()
            except BaseException as e:
                self.fail(handle, e)
                raise
            self.complete(handle, value)
            return value, False

        try:
            return handle.result.result(timeout=wait_timeout), True
        except FutureTimeoutError:
            logger.warning(f"Gave up waiting on flight for {key} after {wait_timeout}s")
            raise OriginTimeout(key=key, timeout=wait_timeout) from None

    def in_flight(self, key: str) -> Optional[RevalidationJob]:
        """Get the running flight for key, if any."""
        with self._lock:
            return self._flights.get(key)

    def active_keys(self) -> List[str]:
        with self._lock:
            return list(self._flights.keys())

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "active": len(self._flights),
                "active_keys": list(self._flights.keys()),
                "flights": self._stats.flights,
                "joins": self._stats.joins,
                "failures": self._stats.failures,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._flights)

    def __repr__(self) -> str:
        return f"SingleFlightCoordinator(active={len(self)})"


__all__ = [
    "SingleFlightCoordinator",
    "FlightHandle",
    "FlightStats",
    "RevalidationJob",
]
