"""Cached client module for cachefirst.

Provides synchronous and asynchronous clients that route every read through
the offline-first :class:`~cachefirst.engine.CachePolicyEngine`, backed by
:mod:`httpx` transports.

Classes:
    :class:`CachedClient` -- blocking client backed by :class:`httpx.Client`.
    :class:`AsyncCachedClient` -- non-blocking client backed by :class:`httpx.AsyncClient`.

Both clients are designed to be used as context managers and accept the
same core parameters: a shared :class:`~cachefirst.cache.CacheStore` and
the effective :class:`~cachefirst.models.GlobalConfig`.

Example::

    from cachefirst.client import CachedClient

    with CachedClient(store, config) as client:
        result = client.get("/categories")
"""

from cachefirst.client.async_client import AsyncCachedClient
from cachefirst.client.sync_client import CachedClient

__all__ = ["CachedClient", "AsyncCachedClient"]
