"""RoadRender Revalidation Scheduler - Detached Stale-While-Revalidate.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from roadrender_core.cache.entry import CacheEntry
from roadrender_core.cache.store import CacheStore
from roadrender_core.flight.coordinator import RevalidationJob
from roadrender_core.metrics.collector import MetricsCollector
from roadrender_core.policy.policy import Policy

logger = logging.getLogger(__name__)

# refresh(key, policy, attempt) -> stored entry, or None when a request-owned
# fetch it joined failed; raises on its own origin failure
RefreshFunc = Callable[[str, Policy, int], Optional[CacheEntry]]


@dataclass
class BackoffPolicy:
    """Capped exponential backoff for background retries.

    Attributes:
        base_delay: Delay after the first failure, in seconds
        max_delay: Upper bound on any single delay
        max_attempts: Attempts before giving up, including the first
    """

    base_delay: float = 1.0
    max_delay: float = 60.0
    max_attempts: int = 5

    def delay(self, attempt: int) -> float:
        """Delay before retrying after a failed attempt.

        Args:
            attempt: Zero-based attempt that just failed

        Returns:
            Seconds to wait: ``min(base_delay * 2**attempt, max_delay)``
        """
        return min(self.base_delay * (2 ** attempt), self.max_delay)


class RevalidationScheduler:
    """Refreshes stale entries in the background.

    A scheduled refresh runs on the scheduler's own pool and is never
    tied to the request that triggered it. Failed attempts bump the
    entry's error count and are retried with backoff; the entry itself
    is never removed. A retry waiting out its backoff holds no worker,
    so one failing key cannot starve refreshes of healthy ones. Once attempts are exhausted the scheduler stops
    refreshing that entry version and only reports the failure, leaving
    the entry to be served stale until its extended grace ceiling.

    Example:
        scheduler = RevalidationScheduler(store, refresh=registry.revalidate)
        scheduler.start()
        scheduler.schedule("/blog/a", policy, version=entry.version)
        scheduler.shutdown()
    """

    def __init__(
        self,
        store: CacheStore,
        refresh: RefreshFunc,
        metrics: Optional[MetricsCollector] = None,
        backoff: Optional[BackoffPolicy] = None,
        max_workers: int = 4,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize scheduler.

        Args:
            store: Cache store holding the entries
            refresh: Single-flighted fetch-and-store
            metrics: Metrics collector
            backoff: Retry policy
            max_workers: Background refresh threads
            clock: Time source for job start times
        """
        self._store = store
        self._refresh = refresh
        self._metrics = metrics or MetricsCollector()
        self.backoff = backoff or BackoffPolicy()
        self.max_workers = max_workers
        self._clock = clock

        self._executor: Optional[ThreadPoolExecutor] = None
        self._stop_event = threading.Event()
        self._jobs: Dict[str, RevalidationJob] = {}
        self._exhausted: Dict[str, int] = {}
        self._timers: Dict[str, threading.Timer] = {}
        self._cond = threading.Condition()

    @property
    def running(self) -> bool:
        return self._executor is not None

    def start(self) -> None:
        """Start the background pool."""
        if self._executor is not None:
            return

        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="roadrender-revalidate",
        )
        logger.info(f"Revalidation scheduler started ({self.max_workers} workers)")

    def shutdown(self, wait: bool = True) -> None:
        """Stop the pool; retries waiting out their backoff are abandoned."""
        self._stop_event.set()
        with self._cond:
            timers = list(self._timers.items())
            self._timers.clear()
        for key, timer in timers:
            timer.cancel()
            self._finish(key)
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
        logger.info("Revalidation scheduler stopped")

    def schedule(self, key: str, policy: Policy, version: int) -> bool:
        """Request a background refresh of a stale entry.

        Args:
            key: Route key
            policy: Policy the entry was stored under
            version: Entry version the requester saw

        Returns:
            True if a new refresh was submitted
        """
        executor = self._executor
        with self._cond:
            if executor is None:
                logger.warning(f"Scheduler not running; skipping refresh of {key}")
                return False
            if key in self._jobs:
                logger.debug(f"Already revalidating: {key}")
                return False
            exhausted = self._exhausted.get(key)
            if exhausted == version:
                logger.debug(f"Revalidation exhausted for {key} v{version}")
                return False
            if exhausted is not None:
                del self._exhausted[key]

            job = RevalidationJob(key=key, attempt=0, started_at=self._clock())
            self._jobs[key] = job
            try:
                executor.submit(self._run, job, policy, version)
            except RuntimeError:
                del self._jobs[key]
                logger.warning(f"Scheduler shutting down; skipping refresh of {key}")
                return False

        logger.debug(f"Scheduled revalidation of {key} v{version}")
        return True

    def _run(self, job: RevalidationJob, policy: Policy, version: int) -> None:
        finished = True
        try:
            finished = self._attempt(job, policy, version)
        finally:
            if finished:
                self._finish(job.key)

    def _attempt(self, job: RevalidationJob, policy: Policy, version: int) -> bool:
        """Run one refresh attempt.

        Returns:
            False if a retry is pending and the job stays active
        """
        key = job.key
        attempt = job.attempt
        try:
            entry = self._refresh(key, policy, attempt)
        except Exception as e:
            self._metrics.record_revalidation_failure()
            errors = self._store.record_failure(key, e)
            if errors is None:
                # Evicted while refreshing; the next request is a plain miss
                logger.info(f"{key} left the cache during revalidation")
                return True
            logger.warning(
                f"Revalidation of {key} failed "
                f"(attempt {attempt + 1}/{self.backoff.max_attempts}, "
                f"errors={errors}): {e}"
            )
            if attempt + 1 >= self.backoff.max_attempts:
                self._give_up(key, version)
                return True
            job.attempt = attempt + 1
            return not self._retry_later(job, policy, version, self.backoff.delay(attempt))

        if entry is None:
            logger.debug(f"Request-owned fetch of {key} failed; requests take over")
            return True

        self._metrics.record_revalidation_success()
        with self._cond:
            self._exhausted.pop(key, None)
        logger.debug(f"Revalidated {key}: v{version} -> v{entry.version}")
        return True

    def _retry_later(
        self,
        job: RevalidationJob,
        policy: Policy,
        version: int,
        delay: float,
    ) -> bool:
        # The worker is released during backoff; the timer resubmits the job
        timer = threading.Timer(delay, self._resubmit, args=(job, policy, version))
        timer.daemon = True
        with self._cond:
            if self._stop_event.is_set():
                return False
            self._timers[job.key] = timer
        timer.start()
        return True

    def _resubmit(self, job: RevalidationJob, policy: Policy, version: int) -> None:
        key = job.key
        with self._cond:
            self._timers.pop(key, None)

        executor = self._executor
        if executor is None or self._stop_event.is_set():
            self._finish(key)
            return

        current = self._store.peek(key)
        if current is None or current.version != version or current.invalidated:
            # Replaced, invalidated or evicted meanwhile; requests take over
            logger.debug(f"Dropping retry of {key} v{version}")
            self._finish(key)
            return

        try:
            executor.submit(self._run, job, policy, version)
        except RuntimeError:
            self._finish(key)

    def _give_up(self, key: str, version: int) -> None:
        self._metrics.increment("revalidations_exhausted")
        with self._cond:
            self._exhausted[key] = version
        logger.error(
            f"Giving up revalidating {key} v{version} after "
            f"{self.backoff.max_attempts} attempts; serving stale until grace ceiling"
        )

    def _finish(self, key: str) -> None:
        with self._cond:
            self._jobs.pop(key, None)
            self._cond.notify_all()

    def forget(self, key: str) -> None:
        """Drop the exhaustion mark for a key that left the cache."""
        with self._cond:
            self._exhausted.pop(key, None)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no refresh is running or waiting to retry.

        Args:
            timeout: Max seconds to wait

        Returns:
            True if idle, False on timeout
        """
        with self._cond:
            return self._cond.wait_for(lambda: not self._jobs, timeout=timeout)

    def backoff_delay(self, attempt: int) -> float:
        return self.backoff.delay(attempt)

    def is_exhausted(self, key: str, version: int) -> bool:
        with self._cond:
            return self._exhausted.get(key) == version

    def active_jobs(self) -> List[RevalidationJob]:
        with self._cond:
            return list(self._jobs.values())

    def __repr__(self) -> str:
        return f"RevalidationScheduler(active={len(self._jobs)}, running={self.running})"


__all__ = ["RevalidationScheduler", "BackoffPolicy", "RefreshFunc"]
