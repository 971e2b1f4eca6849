"""RoadRender Origin Fetcher - Origin Content Contract.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional

from roadrender_core.errors import OriginError, OriginTimeout

logger = logging.getLogger(__name__)


class OriginFetcher(ABC):
    """Abstract origin content source.

    Implementations reach the authoritative backend for a route key.
    The engine treats the returned payload as opaque.
    """

    @abstractmethod
    def fetch(self, key: str, deadline: float) -> Any:
        """Fetch fresh content.

        Args:
            key: Route key
            deadline: Absolute ``time.monotonic()`` value the call must finish by

        Returns:
            Payload

        Raises:
            OriginTimeout: If the deadline passed
            OriginError: On any other origin failure
        """
        pass


class CallableFetcher(OriginFetcher):
    """Origin fetcher backed by a plain function.

    Example:
        fetcher = CallableFetcher(lambda key, deadline: render_page(key))
    """

    def __init__(self, func: Callable[[str, float], Any], name: Optional[str] = None):
        """Initialize callable fetcher.

        Args:
            func: Function(key, deadline) -> payload
            name: Name used in logs
        """
        self._func = func
        self.name = name or getattr(func, "__name__", "callable")

    def fetch(self, key: str, deadline: float) -> Any:
        return self._func(key, deadline)

    def __repr__(self) -> str:
        return f"CallableFetcher({self.name!r})"


class BoundedFetcher:
    """Runs origin fetches under a hard deadline.

    The wrapped fetcher runs on a dedicated pool; the caller waits at most
    ``timeout`` seconds. On timeout a call still queued behind busy workers
    is cancelled, and a call that only starts after its deadline never
    reaches the origin. A call already running keeps its worker until it
    returns and its result is discarded. Any exception other than
    ``OriginError`` is wrapped into ``OriginError`` so callers handle a
    single family.

    Example:
        bounded = BoundedFetcher(fetcher, timeout=5.0)
        payload = bounded.fetch("/blog/post")
        bounded.shutdown()
    """

    def __init__(
        self,
        fetcher: OriginFetcher,
        timeout: float = 10.0,
        max_workers: int = 8,
    ):
        """Initialize bounded fetcher.

        Args:
            fetcher: Origin fetcher to wrap
            timeout: Seconds before a call is treated as timed out
            max_workers: Concurrent origin calls
        """
        self.fetcher = fetcher
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="roadrender-origin",
        )

    def fetch(self, key: str) -> Any:
        """Fetch content for key within the deadline.

        Args:
            key: Route key

        Returns:
            Payload

        Raises:
            OriginTimeout: If the call overran the deadline
            OriginError: If the origin failed
        """
        deadline = time.monotonic() + self.timeout
        future = self._executor.submit(self._call, key, deadline)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(f"Origin fetch for {key} timed out after {self.timeout}s")
            raise OriginTimeout(key=key, timeout=self.timeout) from None
        except OriginError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected origin failure for {key}")
            raise OriginError(f"{type(e).__name__}: {e}", key=key) from e

    def _call(self, key: str, deadline: float) -> Any:
        # Queued past the deadline; the caller has already given up
        if time.monotonic() >= deadline:
            logger.debug(f"Skipping origin fetch for {key}: deadline passed in queue")
            raise OriginTimeout(key=key, timeout=self.timeout)
        return self.fetcher.fetch(key, deadline)

    def shutdown(self, wait: bool = False) -> None:
        """Stop the fetch pool."""
        self._executor.shutdown(wait=wait)

    def __repr__(self) -> str:
        return f"BoundedFetcher({self.fetcher!r}, timeout={self.timeout})"


__all__ = ["OriginFetcher", "CallableFetcher", "BoundedFetcher"]
