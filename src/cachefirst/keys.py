"""Deterministic cache keys for request descriptors.

A key is the SHA-256 hash of ``METHOD|path|sorted_params|vary_headers`` so
that semantically identical requests always resolve to the same entry
regardless of parameter or header ordering.

Normalisation rules:

* The method is upper-cased.
* Absolute URLs keep their scheme and host (lower-cased); any query string
  embedded in the URL is merged into ``params``.
* Repeated slashes collapse and a trailing slash is dropped (except for the
  root path ``/``).
* ``None`` parameter values are omitted, booleans become ``true``/``false``,
  and list values expand into repeated pairs. Pairs are sorted by name, then
  value.
* Only headers listed in ``vary_headers`` are included, compared by
  lower-cased name.
"""

from __future__ import annotations

import hashlib
import re
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from cachefirst.exceptions import KeyDerivationError
from cachefirst.models import RequestDescriptor

_SLASHES = re.compile(r"/{2,}")


def derive_key(descriptor: RequestDescriptor) -> str:
    """Return the cache key for *descriptor*.

    Raises:
        KeyDerivationError: If the path is empty or a parameter value
            cannot be normalised.
    """
    raw = canonical_request(descriptor)
    return hashlib.sha256(raw.encode()).hexdigest()


def canonical_request(descriptor: RequestDescriptor) -> str:
    """Return the normalised, human-readable request string behind a key."""
    path, url_pairs = _normalize_path(descriptor.path)
    pairs = url_pairs + _normalize_params(descriptor.params)
    pairs.sort()

    parts = [descriptor.method.strip().upper(), path]
    if pairs:
        parts.append(urlencode(pairs))
    headers = _vary_header_pairs(descriptor)
    if headers:
        parts.append(";".join(f"{name}={value}" for name, value in headers))
    return "|".join(parts)


def _normalize_path(path: str) -> tuple[str, list[tuple[str, str]]]:
    path = path.strip()
    if not path:
        raise KeyDerivationError("Request path must not be empty")

    scheme = netloc = ""
    if "://" in path:
        split = urlsplit(path)
        scheme, netloc, raw_path, query = split.scheme, split.netloc, split.path, split.query
    else:
        raw_path, _, query = path.partition("#")[0].partition("?")

    pairs = parse_qsl(query, keep_blank_values=True)
    clean = _SLASHES.sub("/", raw_path) or "/"
    if not clean.startswith("/"):
        clean = "/" + clean
    if len(clean) > 1:
        clean = clean.rstrip("/")

    if scheme:
        return urlunsplit((scheme.lower(), netloc.lower(), clean, "", "")), pairs
    return clean, pairs


def _normalize_params(params: dict[str, Any]) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for name, value in params.items():
        if not isinstance(name, str):
            raise KeyDerivationError(f"Query parameter names must be strings, got {name!r}")
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if item is None:
                continue
            pairs.append((name, _scalar_to_str(name, item)))
    return pairs


def _scalar_to_str(name: str, value: Any) -> str:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise KeyDerivationError(
        f"Cannot normalise query parameter '{name}': unsupported value {value!r}"
    )


def _vary_header_pairs(descriptor: RequestDescriptor) -> list[tuple[str, str]]:
    if not descriptor.vary_headers:
        return []
    wanted = {name.lower() for name in descriptor.vary_headers}
    return sorted(
        (name.lower(), value.strip())
        for name, value in descriptor.headers.items()
        if name.lower() in wanted
    )
