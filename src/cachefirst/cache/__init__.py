"""Persistent entry storage for cachefirst.

This package provides :class:`CacheStore`, a key → entry mapping that
survives process restarts, stored on disk with :mod:`diskcache`. The store
knows nothing about HTTP or policies; it is consumed by
:class:`~cachefirst.engine.CachePolicyEngine` and by the ``cache``
maintenance commands.
"""

from cachefirst.cache.store import CacheStore

__all__ = ["CacheStore"]
