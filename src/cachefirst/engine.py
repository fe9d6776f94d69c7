"""Offline-first read-through policy engine.

:class:`CachePolicyEngine` sits between application code and a transport.
For every call it derives a cache key, consults the
:class:`~cachefirst.cache.CacheStore`, and applies the per-call
:class:`~cachefirst.models.CachePolicy`:

- **cache_only** -- serve the stored entry or raise
  :class:`~cachefirst.exceptions.NoCachedData`.
- **network_only** -- always fetch; store on success; never fall back.
- **cache_first** -- serve the entry while ``now < stale_at + max_stale``;
  otherwise fetch, falling back to the stale entry when the network fails
  with a status code outside ``bypass_status_codes``.
- **network_first** -- always fetch; on failure serve any stored entry
  regardless of staleness, again unless the failure code is bypassed.

Storage read errors degrade to a cache miss and storage write errors to a
warning on the result; neither hides a network outcome.

Concurrent fetches of the same key share one transport call. The async path
keeps one :class:`asyncio.Task` per key and shields it, so a caller that is
cancelled mid-await leaves the fetch running to completion and the store
still gets populated. The blocking path keeps one
:class:`concurrent.futures.Future` per key.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from concurrent.futures import Future
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from cachefirst.cache import CacheStore
from cachefirst.exceptions import NetworkFailure, NoCachedData, StorageFailure
from cachefirst.freshness import FreshnessFn, cache_control_freshness
from cachefirst.keys import derive_key
from cachefirst.models import (
    CacheEntry,
    CacheMode,
    CachePolicy,
    FetchResult,
    RequestDescriptor,
    Source,
    TransportResponse,
)

logger = logging.getLogger(__name__)

Transport = Callable[[RequestDescriptor], Awaitable[TransportResponse]]
SyncTransport = Callable[[RequestDescriptor], TransportResponse]
Clock = Callable[[], datetime]

_Stored = tuple[CacheEntry, list[str]]

# Response headers worth keeping as entry metadata.
_METADATA_HEADERS = (
    "cache-control",
    "content-type",
    "date",
    "etag",
    "expires",
    "last-modified",
)


def utcnow() -> datetime:
    """Default engine clock: the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class CachePolicyEngine:
    """Stateless-per-call cache policy executor.

    The engine holds no entries of its own; everything lives in the store,
    so one engine (or several) may serve any number of concurrent callers
    with different policies.

    Args:
        store: The persistent entry store.
        freshness: Computes ``stale_at`` for freshly fetched responses.
        default_ttl: Lifetime handed to *freshness* when the response
            carries no caching hints.
        clock: Returns "now"; injectable for tests.

    Example::

        engine = CachePolicyEngine(store, default_ttl=timedelta(minutes=10))
        result = await engine.execute(
            RequestDescriptor(path="/categories"),
            CachePolicy(max_stale=timedelta(days=30)),
            transport,
        )
        if result.source is Source.CACHE:
            ...
    """

    def __init__(
        self,
        store: CacheStore,
        freshness: FreshnessFn = cache_control_freshness,
        default_ttl: timedelta = timedelta(minutes=5),
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._freshness = freshness
        self._default_ttl = default_ttl
        self._clock = clock
        self._inflight: dict[str, asyncio.Task[_Stored]] = {}
        self._sync_inflight: dict[str, Future[_Stored]] = {}
        self._sync_lock = threading.Lock()

    @property
    def store(self) -> CacheStore:
        return self._store

    # ------------------------------------------------------------------ #
    # Public entry points
    # ------------------------------------------------------------------ #

    async def execute(
        self,
        descriptor: RequestDescriptor,
        policy: Optional[CachePolicy],
        transport: Transport,
    ) -> FetchResult:
        """Resolve *descriptor* under *policy*, awaiting *transport* if needed.

        Args:
            descriptor: The logical request.
            policy: Per-call policy; ``None`` means cache-first defaults.
            transport: Async callable returning a
                :class:`~cachefirst.models.TransportResponse` or raising
                :class:`~cachefirst.exceptions.NetworkFailure`.

        Returns:
            A :class:`~cachefirst.models.FetchResult` tagged with its source.

        Raises:
            KeyDerivationError: The descriptor cannot be normalised.
            NoCachedData: Cache-only read with nothing stored.
            NetworkFailure: The fetch failed and no fallback applies.
        """
        policy = policy or CachePolicy()
        key, entry, warnings, answer = self._consult(descriptor, policy)
        if answer is not None:
            return answer
        try:
            stored = await self._fetch_shared(key, descriptor, transport)
        except NetworkFailure as exc:
            return self._fallback(entry, policy, exc, warnings)
        return self._network_result(stored, warnings)

    def execute_sync(
        self,
        descriptor: RequestDescriptor,
        policy: Optional[CachePolicy],
        transport: SyncTransport,
    ) -> FetchResult:
        """Blocking counterpart of :meth:`execute` for synchronous transports."""
        policy = policy or CachePolicy()
        key, entry, warnings, answer = self._consult(descriptor, policy)
        if answer is not None:
            return answer
        try:
            stored = self._fetch_shared_sync(key, descriptor, transport)
        except NetworkFailure as exc:
            return self._fallback(entry, policy, exc, warnings)
        return self._network_result(stored, warnings)

    # ------------------------------------------------------------------ #
    # Decision steps shared by both entry points
    # ------------------------------------------------------------------ #

    def _consult(
        self,
        descriptor: RequestDescriptor,
        policy: CachePolicy,
    ) -> tuple[str, Optional[CacheEntry], list[str], Optional[FetchResult]]:
        """Derive the key, read the store, and answer from cache if the policy allows.

        The last element of the returned tuple is the final result when no
        fetch is needed, or ``None`` when the caller must go to the network.
        """
        key = derive_key(descriptor)
        warnings: list[str] = []

        if policy.mode is CacheMode.NETWORK_ONLY:
            return key, None, warnings, None

        entry = self._lookup(key, warnings)

        if policy.mode is CacheMode.CACHE_ONLY:
            if entry is None:
                raise NoCachedData(f"No cached data for {descriptor.method} {descriptor.path}")
            return key, entry, warnings, self._cache_result(entry, warnings)

        if policy.mode is CacheMode.CACHE_FIRST and entry is not None:
            if self._clock() < entry.stale_at + policy.max_stale:
                logger.debug("Cache hit: %s %s", descriptor.method, descriptor.path)
                return key, entry, warnings, self._cache_result(entry, warnings)

        logger.debug("Cache miss: %s %s", descriptor.method, descriptor.path)
        return key, entry, warnings, None

    def _lookup(self, key: str, warnings: list[str]) -> Optional[CacheEntry]:
        try:
            return self._store.get(key)
        except StorageFailure as exc:
            logger.warning("Treating unreadable entry as a miss: %s", exc)
            warnings.append(str(exc))
            return None

    def _fallback(
        self,
        entry: Optional[CacheEntry],
        policy: CachePolicy,
        failure: NetworkFailure,
        warnings: list[str],
    ) -> FetchResult:
        if entry is None or failure.status_code in policy.bypass_status_codes:
            raise failure
        logger.warning("Serving cached entry %s after network failure: %s", entry.key, failure)
        return self._cache_result(entry, warnings, error=str(failure))

    def _cache_result(
        self,
        entry: CacheEntry,
        warnings: list[str],
        error: Optional[str] = None,
    ) -> FetchResult:
        now = self._clock()
        return FetchResult(
            key=entry.key,
            body=entry.body,
            status_code=entry.status_code,
            source=Source.CACHE,
            age=max(now - entry.created_at, timedelta(0)),
            headers=dict(entry.metadata),
            stale=entry.is_stale(now),
            error=error,
            warnings=list(warnings),
        )

    @staticmethod
    def _network_result(stored: _Stored, warnings: list[str]) -> FetchResult:
        entry, store_warnings = stored
        return FetchResult(
            key=entry.key,
            body=entry.body,
            status_code=entry.status_code,
            source=Source.NETWORK,
            headers=dict(entry.metadata),
            warnings=warnings + store_warnings,
        )

    def _store_response(self, key: str, response: TransportResponse) -> _Stored:
        """Turn a transport response into an entry and persist it."""
        if response.status_code >= 400:
            raise NetworkFailure(f"HTTP {response.status_code}", status_code=response.status_code)

        now = self._clock()
        stale_at = max(self._freshness(response, now, self._default_ttl), now)
        headers = {name.lower(): value for name, value in response.headers.items()}
        entry = CacheEntry(
            key=key,
            body=response.body,
            created_at=now,
            stale_at=stale_at,
            status_code=response.status_code,
            metadata={name: headers[name] for name in _METADATA_HEADERS if name in headers},
        )

        warnings: list[str] = []
        try:
            self._store.put(key, entry)
        except StorageFailure as exc:
            logger.warning("Fetched %s but could not cache it: %s", key, exc)
            warnings.append(str(exc))
        return entry, warnings

    # ------------------------------------------------------------------ #
    # Single-flight fetches
    # ------------------------------------------------------------------ #

    async def _fetch_shared(
        self,
        key: str,
        descriptor: RequestDescriptor,
        transport: Transport,
    ) -> _Stored:
        loop = asyncio.get_running_loop()
        task = self._inflight.get(key)
        if task is None or task.get_loop() is not loop:
            task = loop.create_task(self._fetch(key, descriptor, transport))
            self._inflight[key] = task
            task.add_done_callback(functools.partial(self._forget_task, key))
        else:
            logger.debug("Joining in-flight fetch for %s", key)
        return await asyncio.shield(task)

    async def _fetch(
        self,
        key: str,
        descriptor: RequestDescriptor,
        transport: Transport,
    ) -> _Stored:
        logger.debug("Fetching %s %s", descriptor.method, descriptor.path)
        response = await transport(descriptor)
        return self._store_response(key, response)

    def _forget_task(self, key: str, task: asyncio.Task[_Stored]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Retrieve the exception so an abandoned fetch does not log
        # "exception was never retrieved".
        if not task.cancelled():
            task.exception()

    def _fetch_shared_sync(
        self,
        key: str,
        descriptor: RequestDescriptor,
        transport: SyncTransport,
    ) -> _Stored:
        with self._sync_lock:
            future = self._sync_inflight.get(key)
            leader = future is None
            if future is None:
                future = Future()
                self._sync_inflight[key] = future

        if not leader:
            logger.debug("Joining in-flight fetch for %s", key)
            return future.result()

        try:
            logger.debug("Fetching %s %s", descriptor.method, descriptor.path)
            future.set_result(self._store_response(key, transport(descriptor)))
        except BaseException as exc:
            future.set_exception(exc)
        finally:
            with self._sync_lock:
                self._sync_inflight.pop(key, None)
        return future.result()
