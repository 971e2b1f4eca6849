"""Shared fixtures for RoadRender tests.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import threading
import time
from collections import Counter

import pytest

from roadrender_core.config import EngineConfig
from roadrender_core.engine.dispatcher import Dispatcher
from roadrender_core.engine.registry import CacheRegistry
from roadrender_core.errors import OriginError
from roadrender_core.origin.fetcher import OriginFetcher
from roadrender_core.policy.policy import Policy, RenderMode
from roadrender_core.policy.table import PolicyTable


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def set(self, now: float) -> None:
        self.now = now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher(OriginFetcher):
    """Origin with controllable latency, gating and failure.

    Payloads are ``"<key>#<n>"`` where n counts calls for that key.
    """

    def __init__(self):
        self.calls = Counter()
        self.fail = False
        self.delay = 0.0
        self.gate = threading.Event()
        self.gate.set()
        self._lock = threading.Lock()

    def fetch(self, key, deadline):
        with self._lock:
            self.calls[key] += 1
            n = self.calls[key]
        self.gate.wait(timeout=5.0)
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise OriginError("origin unavailable", key=key)
        return f"{key}#{n}"


def wait_until(predicate, timeout=2.0):
    """Poll predicate until true or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def policies():
    return PolicyTable([
        Policy("/about", RenderMode.STATIC),
        Policy("/blog/*", RenderMode.INCREMENTAL, ttl_seconds=3600, stale_grace_seconds=300),
        Policy("/api/*", RenderMode.DYNAMIC),
        Policy("*", RenderMode.INCREMENTAL, ttl_seconds=60, stale_grace_seconds=30),
    ])


@pytest.fixture
def engine_config():
    return EngineConfig(
        name="test",
        capacity=100,
        fetch_timeout_seconds=5.0,
        backoff_base_seconds=0.01,
        backoff_max_seconds=0.05,
        max_revalidation_attempts=3,
        error_grace_seconds=600.0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def registry(policies, fetcher, engine_config, clock):
    registry = CacheRegistry(policies, fetcher, engine_config, clock=clock)
    registry.init()
    yield registry
    fetcher.gate.set()
    registry.shutdown()


@pytest.fixture
def dispatcher(registry):
    return Dispatcher(registry)
