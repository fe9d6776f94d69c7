"""Persistent cache entry storage backed by :mod:`diskcache`.

Each :class:`~cachefirst.models.CacheEntry` is stored under its key as a
plain ``dict`` inside a :class:`diskcache.Cache` directory. diskcache wraps
every write in an SQLite transaction, so a concurrent reader sees either the
old entry or the new one, never a partial write, and a failed write to one
key leaves every other key untouched.

diskcache's own size-based culling is disabled (``eviction_policy="none"``):
entries leave the store only through :meth:`CacheStore.delete`,
:meth:`CacheStore.sweep_expired`, or :meth:`CacheStore.clear`.

See Also:
    :class:`~cachefirst.engine.CachePolicyEngine` -- the only consumer of
    this contract inside the library.
"""

from __future__ import annotations

import logging
import pickle
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterator, Optional

import diskcache
from pydantic import ValidationError

from cachefirst.exceptions import StorageFailure
from cachefirst.models import CacheEntry

logger = logging.getLogger(__name__)

_MEDIUM_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout)
# diskcache unpickles values on read; a damaged blob surfaces as one of these.
_DECODE_ERRORS = (pickle.UnpicklingError, EOFError, AttributeError, ImportError, ValueError)


class CacheStore:
    """Disk-backed mapping from cache key to :class:`CacheEntry`.

    One store is opened per application and shared by every consumer;
    per-resource separation comes from key derivation, not from separate
    directories. Use it as a context manager (or call :meth:`close`) so the
    underlying SQLite connections are released on shutdown.

    Args:
        directory: Root directory for the store. An ``entries/``
            subdirectory is created inside it.
        grace_window: Retention past ``stale_at`` before
            :meth:`sweep_expired` removes an entry.
        timeout: Seconds diskcache waits on a locked database before
            giving up.

    Example::

        from cachefirst.cache import CacheStore

        with CacheStore("/tmp/app-cache", grace_window=timedelta(days=1)) as store:
            store.put(entry.key, entry)
            hit = store.get(entry.key)
    """

    def __init__(
        self,
        directory: str | Path,
        grace_window: timedelta = timedelta(0),
        timeout: float = 60.0,
    ) -> None:
        if grace_window < timedelta(0):
            raise ValueError("grace_window must not be negative")
        self._directory = Path(directory) / "entries"
        self._grace_window = grace_window
        try:
            self._cache: Optional[diskcache.Cache] = diskcache.Cache(
                str(self._directory),
                timeout=timeout,
                eviction_policy="none",
            )
        except _MEDIUM_ERRORS as exc:
            raise StorageFailure(f"Cannot open cache store at {self._directory}: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> CacheStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Entry operations
    # ------------------------------------------------------------------ #

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def grace_window(self) -> timedelta:
        return self._grace_window

    def get(self, key: str) -> Optional[CacheEntry]:
        """Look up the entry stored under *key*.

        Returns:
            The :class:`CacheEntry`, or ``None`` when nothing is stored.

        Raises:
            StorageFailure: If the medium is unavailable or the stored
                record cannot be decoded.
        """
        cache = self._require_open()
        try:
            raw = cache.get(key)
        except _MEDIUM_ERRORS as exc:
            raise StorageFailure(f"Cannot read cache entry {key}: {exc}") from exc
        except _DECODE_ERRORS as exc:
            raise StorageFailure(f"Corrupt cache entry {key}: {exc}") from exc
        if raw is None:
            return None
        return self._decode(key, raw)

    def put(self, key: str, entry: CacheEntry) -> None:
        """Store *entry* under *key*, replacing any previous entry.

        Raises:
            ValueError: If ``entry.key`` does not match *key*.
            StorageFailure: If the write fails.
        """
        if entry.key != key:
            raise ValueError(f"Entry key {entry.key!r} does not match {key!r}")
        cache = self._require_open()
        try:
            cache.set(key, entry.model_dump())
        except _MEDIUM_ERRORS as exc:
            raise StorageFailure(f"Cannot write cache entry {key}: {exc}") from exc

    def delete(self, key: str) -> bool:
        """Remove the entry under *key*.

        Returns:
            ``True`` if an entry was removed, ``False`` if none existed.
        """
        cache = self._require_open()
        try:
            return bool(cache.delete(key))
        except _MEDIUM_ERRORS as exc:
            raise StorageFailure(f"Cannot delete cache entry {key}: {exc}") from exc

    def sweep_expired(self, now: datetime) -> int:
        """Remove every entry whose ``stale_at + grace_window`` is before *now*.

        Entries that cannot be decoded are left in place and logged so that a
        sweep never destroys data it could not classify.

        Returns:
            The number of entries removed.
        """
        removed = 0
        for key in self.keys():
            try:
                entry = self.get(key)
            except StorageFailure as exc:
                logger.warning("Skipping unreadable entry during sweep: %s", exc)
                continue
            if entry is None:
                continue
            if entry.stale_at + self._grace_window < now and self.delete(key):
                removed += 1
        logger.debug("Swept %d expired entries", removed)
        return removed

    def clear(self) -> int:
        """Remove all entries and return how many were removed."""
        cache = self._require_open()
        try:
            return cache.clear()
        except _MEDIUM_ERRORS as exc:
            raise StorageFailure(f"Cannot clear cache store: {exc}") from exc

    def keys(self) -> list[str]:
        """Return a snapshot of all stored keys."""
        cache = self._require_open()
        try:
            return list(cache.iterkeys())
        except _MEDIUM_ERRORS + _DECODE_ERRORS as exc:
            raise StorageFailure(f"Cannot list cache entries: {exc}") from exc

    def entries(self) -> Iterator[CacheEntry]:
        """Yield every readable entry; unreadable ones are logged and skipped."""
        for key in self.keys():
            try:
                entry = self.get(key)
            except StorageFailure as exc:
                logger.warning("Skipping unreadable entry: %s", exc)
                continue
            if entry is not None:
                yield entry

    def stats(self) -> dict[str, Any]:
        """Return store statistics.

        Returns:
            A ``dict`` with ``size`` (number of entries), ``volume`` (bytes
            on disk), ``directory`` (str path), and ``grace_seconds``.
        """
        cache = self._require_open()
        try:
            size = len(cache)
            volume = cache.volume()
        except _MEDIUM_ERRORS as exc:
            raise StorageFailure(f"Cannot read cache statistics: {exc}") from exc
        return {
            "size": size,
            "volume": volume,
            "directory": str(self._directory),
            "grace_seconds": int(self._grace_window.total_seconds()),
        }

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`. Safe to call twice."""
        if self._cache is not None:
            self._cache.close()
            self._cache = None

    def __len__(self) -> int:
        return len(self._require_open())

    def __contains__(self, key: object) -> bool:
        return key in self._require_open()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _require_open(self) -> diskcache.Cache:
        if self._cache is None:
            raise StorageFailure("Cache store is closed")
        return self._cache

    @staticmethod
    def _decode(key: str, raw: Any) -> CacheEntry:
        if not isinstance(raw, dict):
            raise StorageFailure(f"Corrupt cache entry {key}: unexpected {type(raw).__name__}")
        try:
            return CacheEntry.model_validate(raw)
        except ValidationError as exc:
            raise StorageFailure(f"Corrupt cache entry {key}: {exc}") from exc
