"""Asynchronous cached client -- mirrors :class:`~cachefirst.client.sync_client.CachedClient`.

:class:`AsyncCachedClient` offers the same API with ``await``. Concurrent
``get`` calls for the same request share a single transport call, and a
caller cancelled while waiting (e.g. a screen closed mid-load) does not stop
the fetch from populating the store for the next caller.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

import httpx

from cachefirst.cache import CacheStore
from cachefirst.engine import Clock, CachePolicyEngine, Transport, utcnow
from cachefirst.freshness import FreshnessFn, cache_control_freshness
from cachefirst.keys import derive_key
from cachefirst.models import CachePolicy, FetchResult, GlobalConfig, RequestDescriptor
from cachefirst.transport import HttpxTransport


class AsyncCachedClient:
    """Asynchronous offline-first client. Must be used as an async context manager.

    Example::

        async with AsyncCachedClient(store, config) as client:
            result = await client.get("/categories")
    """

    def __init__(
        self,
        store: CacheStore,
        config: GlobalConfig,
        transport: Optional[Transport] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        freshness: FreshnessFn = cache_control_freshness,
        clock: Clock = utcnow,
    ) -> None:
        self._config = config
        self._transport = transport
        self._http: Optional[HttpxTransport] = None
        if transport is None:
            self._http = HttpxTransport(config.request, transport=http_transport)
        self._engine = CachePolicyEngine(
            store,
            freshness=freshness,
            default_ttl=timedelta(seconds=config.cache.default_ttl_seconds),
            clock=clock,
        )
        self._default_policy = config.cache.to_policy()

    async def __aenter__(self) -> AsyncCachedClient:
        if self._http is not None:
            await self._http.__aenter__()
            self._transport = self._http
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._http is not None:
            await self._http.aclose()

    @property
    def engine(self) -> CachePolicyEngine:
        return self._engine

    def descriptor(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> RequestDescriptor:
        return RequestDescriptor(
            path=path,
            params=dict(params or {}),
            headers=dict(headers or {}),
            vary_headers=tuple(self._config.cache.vary_headers),
        )

    async def get(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        policy: Optional[CachePolicy] = None,
    ) -> FetchResult:
        """Fetch *path* through the cache. See :meth:`CachedClient.get`."""
        return await self.fetch(self.descriptor(path, params, headers), policy)

    async def fetch(
        self,
        descriptor: RequestDescriptor,
        policy: Optional[CachePolicy] = None,
    ) -> FetchResult:
        assert self._transport is not None, "Client not initialised -- use as async context manager"
        return await self._engine.execute(descriptor, policy or self._default_policy, self._transport)

    def invalidate(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> bool:
        key = derive_key(self.descriptor(path, params, headers))
        return self._engine.store.delete(key)
