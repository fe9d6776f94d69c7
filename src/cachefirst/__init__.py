"""cachefirst -- offline-first read-through caching for HTTP-style reads.

Applications issue logical requests; cachefirst derives a deterministic key,
serves stored data when the per-call policy allows it, fetches through a
transport otherwise, and falls back to stored data when the network fails.
Every result is tagged with where it came from and how old it is.

Typical use::

    from cachefirst.cache import CacheStore
    from cachefirst.client import CachedClient
    from cachefirst.config import resolve_cache_dir, resolve_config

    config = resolve_config()
    with CacheStore(resolve_cache_dir(config)) as store:
        with CachedClient(store, config) as client:
            result = client.get("/categories")

Modules:
    models: Pydantic models shared across the package.
    keys: Deterministic cache key derivation.
    cache: Persistent entry store on diskcache.
    engine: The cache policy engine.
    freshness: Freshness-hint functions.
    transport: httpx-backed transports.
    client: Sync and async cached clients.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    app: Typer CLI entry point.
"""

__version__ = "0.1.0"
