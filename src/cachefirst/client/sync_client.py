"""Blocking cached client: one call per logical resource.

This module provides :class:`CachedClient`, the application-facing wrapper
that combines a :class:`~cachefirst.engine.CachePolicyEngine`, a shared
:class:`~cachefirst.cache.CacheStore`, and an HTTP transport:

- **Descriptors** -- ``path``/``params``/``headers`` are turned into a
  :class:`~cachefirst.models.RequestDescriptor`, with the configured
  ``vary_headers`` taking part in the key.
- **Default policy** -- built from the ``cache`` config section; any call
  may pass its own :class:`~cachefirst.models.CachePolicy`.
- **Transport** -- a :class:`~cachefirst.transport.SyncHttpxTransport`
  unless a custom callable is supplied.

The store is not owned by the client: open it once per application and
close it on shutdown.

See Also:
    :class:`~cachefirst.client.async_client.AsyncCachedClient` for the
    equivalent non-blocking implementation.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

import httpx

from cachefirst.cache import CacheStore
from cachefirst.engine import Clock, CachePolicyEngine, SyncTransport, utcnow
from cachefirst.freshness import FreshnessFn, cache_control_freshness
from cachefirst.keys import derive_key
from cachefirst.models import CachePolicy, FetchResult, GlobalConfig, RequestDescriptor
from cachefirst.transport import SyncHttpxTransport


class CachedClient:
    """Synchronous offline-first client.

    Args:
        store: The application's cache store.
        config: Effective configuration (cache defaults and request
            settings).
        transport: Optional custom transport callable. When ``None`` an
            httpx transport is opened on ``__enter__``.
        http_transport: Optional :class:`httpx.BaseTransport` for the
            default httpx transport (e.g. :class:`httpx.MockTransport`).
        freshness: ``stale_at`` computation for fresh responses.
        clock: Returns "now"; injectable for tests.

    Example::

        with CacheStore(get_cache_dir()) as store, CachedClient(store, config) as client:
            categories = client.get("/categories").json()
    """

    def __init__(
        self,
        store: CacheStore,
        config: GlobalConfig,
        transport: Optional[SyncTransport] = None,
        http_transport: Optional[httpx.BaseTransport] = None,
        freshness: FreshnessFn = cache_control_freshness,
        clock: Clock = utcnow,
    ) -> None:
        self._config = config
        self._transport = transport
        self._http: Optional[SyncHttpxTransport] = None
        if transport is None:
            self._http = SyncHttpxTransport(config.request, transport=http_transport)
        self._engine = CachePolicyEngine(
            store,
            freshness=freshness,
            default_ttl=timedelta(seconds=config.cache.default_ttl_seconds),
            clock=clock,
        )
        self._default_policy = config.cache.to_policy()

    def __enter__(self) -> CachedClient:
        if self._http is not None:
            self._http.__enter__()
            self._transport = self._http
        return self

    def __exit__(self, *args: object) -> None:
        if self._http is not None:
            self._http.close()

    @property
    def engine(self) -> CachePolicyEngine:
        return self._engine

    @property
    def default_policy(self) -> CachePolicy:
        return self._default_policy

    def descriptor(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> RequestDescriptor:
        """Build the request descriptor for a GET of *path*."""
        return RequestDescriptor(
            path=path,
            params=dict(params or {}),
            headers=dict(headers or {}),
            vary_headers=tuple(self._config.cache.vary_headers),
        )

    def get(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        policy: Optional[CachePolicy] = None,
    ) -> FetchResult:
        """Fetch *path* through the cache.

        Args:
            path: URL path (relative to ``request.base_url``) or absolute URL.
            params: Query parameters.
            headers: Extra request headers.
            policy: Per-call policy; defaults to :attr:`default_policy`.

        Raises:
            NetworkFailure: The fetch failed and no cached fallback applies.
            NoCachedData: Cache-only policy with nothing stored.
            KeyDerivationError: *params* cannot be normalised.
        """
        return self.fetch(self.descriptor(path, params, headers), policy)

    def fetch(self, descriptor: RequestDescriptor, policy: Optional[CachePolicy] = None) -> FetchResult:
        """Resolve an explicit descriptor through the engine."""
        assert self._transport is not None, "Client not initialised -- use as context manager"
        return self._engine.execute_sync(descriptor, policy or self._default_policy, self._transport)

    def invalidate(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> bool:
        """Drop the stored entry for a request. Returns ``True`` if one existed."""
        key = derive_key(self.descriptor(path, params, headers))
        return self._engine.store.delete(key)
