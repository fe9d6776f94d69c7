"""Tests for the blocking entry point under real threads."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any

import pytest

from cachefirst.cache import CacheStore
from cachefirst.engine import CachePolicyEngine
from cachefirst.exceptions import NetworkFailure
from cachefirst.models import CacheEntry, CacheMode, CachePolicy, RequestDescriptor, Source

from conftest import FakeClock, GatedTransport, ok

CATEGORIES = RequestDescriptor(path="/categories")
NETWORK_ONLY = CachePolicy(mode=CacheMode.NETWORK_ONLY)


class _ReleaseCounter:
    """Stand-in for the engine's lock that signals every release."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.released = threading.Semaphore(0)

    def __enter__(self) -> _ReleaseCounter:
        self._lock.acquire()
        return self

    def __exit__(self, *args: object) -> None:
        self._lock.release()
        self.released.release()


@pytest.fixture
def engine(store: CacheStore, clock: FakeClock) -> CachePolicyEngine:
    engine = CachePolicyEngine(store, default_ttl=timedelta(minutes=5), clock=clock)
    engine._sync_lock = _ReleaseCounter()
    return engine


def _run_two_callers(engine: CachePolicyEngine, transport: GatedTransport) -> list[Any]:
    """Start a leader and a follower for the same key; return both outcomes.

    The follower is only started once the leader is inside the transport, and
    the gate only opens once the follower has registered on the shared fetch.
    """
    outcomes: list[Any] = [None, None]

    def call(slot: int) -> None:
        try:
            outcomes[slot] = engine.execute_sync(CATEGORIES, NETWORK_ONLY, transport)
        except NetworkFailure as exc:
            outcomes[slot] = exc

    lock = engine._sync_lock
    leader = threading.Thread(target=call, args=(0,))
    leader.start()
    assert transport.entered.wait(timeout=10)
    assert lock.released.acquire(timeout=10)  # leader registered

    follower = threading.Thread(target=call, args=(1,))
    follower.start()
    assert lock.released.acquire(timeout=10)  # follower joined

    transport.gate.set()
    leader.join(timeout=10)
    follower.join(timeout=10)
    return outcomes


class TestSingleFlightThreads:
    def test_concurrent_callers_share_one_fetch(self, engine: CachePolicyEngine) -> None:
        transport = GatedTransport(ok(b"shared"))

        first, second = _run_two_callers(engine, transport)

        assert len(transport.calls) == 1
        assert first.source is Source.NETWORK
        assert second.source is Source.NETWORK
        assert first.body == second.body == b"shared"
        assert engine._sync_inflight == {}

    def test_failure_reaches_every_caller(self, engine: CachePolicyEngine) -> None:
        transport = GatedTransport(NetworkFailure("Connection refused"))

        first, second = _run_two_callers(engine, transport)

        assert len(transport.calls) == 1
        assert isinstance(first, NetworkFailure)
        assert isinstance(second, NetworkFailure)
        assert engine._sync_inflight == {}

    def test_next_call_after_shared_fetch_starts_fresh(self, engine: CachePolicyEngine) -> None:
        transport = GatedTransport(ok(b"v1"), ok(b"v2"))
        _run_two_callers(engine, transport)

        result = engine.execute_sync(CATEGORIES, NETWORK_ONLY, transport)

        assert result.body == b"v2"
        assert len(transport.calls) == 2


class TestConcurrentPuts:
    def test_puts_to_distinct_keys_do_not_interfere(self, store: CacheStore, clock: FakeClock) -> None:
        keys = [f"key-{i}" for i in range(40)]

        def put(key: str) -> None:
            store.put(key, CacheEntry(key=key, body=key.encode(), created_at=clock.now))

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(put, keys))

        assert sorted(store.keys()) == sorted(keys)
        for key in keys:
            assert store.get(key).body == key.encode()
