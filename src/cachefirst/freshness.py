"""Freshness hints: when does a freshly fetched entry become stale?

The policy engine delegates this decision to a :data:`FreshnessFn`, a
callable taking the transport response, the fetch time, and the configured
default TTL and returning the entry's ``stale_at``.

Two implementations ship with the library:

* :func:`cache_control_freshness` (the engine default) honours
  ``Cache-Control`` (``no-store``, ``no-cache``, ``max-age``), the ``Age``
  header, and ``Expires``, falling back to the default TTL.
* :func:`fixed_ttl` ignores response headers entirely.

``no-store`` and ``no-cache`` produce an immediately stale entry. The body is
still stored so an offline cache-first read can fall back to it.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Callable, Optional

from cachefirst.models import TransportResponse

FreshnessFn = Callable[[TransportResponse, datetime, timedelta], datetime]


def cache_control_freshness(
    response: TransportResponse,
    now: datetime,
    default_ttl: timedelta,
) -> datetime:
    """Derive ``stale_at`` from the response's caching headers."""
    headers = {name.lower(): value for name, value in response.headers.items()}
    directives = _parse_cache_control(headers.get("cache-control", ""))

    if "no-store" in directives or "no-cache" in directives:
        return now

    max_age = _parse_seconds(directives.get("max-age"))
    if max_age is not None:
        age = _parse_seconds(headers.get("age")) or 0
        return max(now, now + timedelta(seconds=max_age - age))

    expires = _parse_http_date(headers.get("expires"))
    if "expires" in headers:
        if expires is None:
            # Invalid Expires means "already expired" per RFC 9111.
            return now
        date = _parse_http_date(headers.get("date"))
        lifetime = expires - date if date is not None else expires - now
        return max(now, now + lifetime)

    return now + default_ttl


def fixed_ttl(ttl: timedelta) -> FreshnessFn:
    """Return a freshness function that always grants *ttl*."""
    if ttl < timedelta(0):
        raise ValueError("ttl must not be negative")

    def _fixed(response: TransportResponse, now: datetime, default_ttl: timedelta) -> datetime:
        return now + ttl

    return _fixed


def _parse_cache_control(value: str) -> dict[str, Optional[str]]:
    directives: dict[str, Optional[str]] = {}
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        name, sep, arg = part.partition("=")
        directives[name.strip().lower()] = arg.strip().strip('"') if sep else None
    return directives


def _parse_seconds(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        seconds = int(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _parse_http_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        return None
    return parsed
