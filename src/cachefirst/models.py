"""Canonical Pydantic models shared across all cachefirst modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Cache models** -- the request/entry/result types flowing through the
policy engine:
    :class:`RequestDescriptor`, :class:`CacheEntry`, :class:`CacheMode`,
    :class:`CachePolicy`, :class:`Source`, :class:`TransportResponse`, and
    :class:`FetchResult`.

**Configuration models** -- serialised as JSON in the user's config
directory:
    :class:`CacheConfig`, :class:`RequestConfig`, :class:`OutputConfig`,
    and :class:`GlobalConfig`.

All models use Pydantic v2. Timestamps are timezone-aware UTC datetimes and
durations are :class:`datetime.timedelta`.
"""

from __future__ import annotations

import enum
import json
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# --- Cache models ---


class RequestDescriptor(BaseModel):
    """Logical identity of a retrieval operation.

    Two descriptors that differ only in the ordering of ``params`` or
    ``headers`` describe the same request and derive the same cache key
    (see :func:`~cachefirst.keys.derive_key`). Only headers named in
    ``vary_headers`` take part in the key; the rest are forwarded to the
    transport untouched.

    Example::

        RequestDescriptor(
            path="/categories",
            params={"page": 2, "sort": "name"},
            headers={"Accept-Language": "en"},
            vary_headers=("accept-language",),
        )
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(description="Endpoint path or absolute URL")
    method: str = Field(default="GET", description="HTTP method")
    params: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    vary_headers: tuple[str, ...] = Field(
        default=(), description="Header names whose values are part of the key"
    )


class CacheEntry(BaseModel):
    """A stored response body with its freshness window.

    An entry built without ``stale_at`` is immediately stale: ``stale_at``
    defaults to ``created_at`` so the policy engine revalidates it on the
    next cache-first read.
    """

    key: str
    body: bytes
    created_at: datetime
    stale_at: datetime
    status_code: int = 200
    metadata: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _default_stale_at(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("stale_at") is None and "created_at" in data:
            data = {**data, "stale_at": data["created_at"]}
        return data

    @model_validator(mode="after")
    def _check_window(self) -> CacheEntry:
        if self.stale_at < self.created_at:
            raise ValueError("stale_at must not precede created_at")
        return self

    def is_stale(self, now: datetime) -> bool:
        """Return ``True`` once *now* is past ``stale_at``."""
        return now > self.stale_at


class CacheMode(str, enum.Enum):
    """Per-call read strategy."""

    CACHE_FIRST = "cache_first"
    NETWORK_FIRST = "network_first"
    CACHE_ONLY = "cache_only"
    NETWORK_ONLY = "network_only"


class CachePolicy(BaseModel):
    """Per-call cache configuration.

    ``max_stale`` extends how long past ``stale_at`` a cache-first read may
    still be served without contacting the transport. ``bypass_status_codes``
    lists failure codes that must never be masked by a stale entry (auth
    rejections by default).
    """

    model_config = ConfigDict(frozen=True)

    mode: CacheMode = CacheMode.CACHE_FIRST
    max_stale: timedelta = timedelta(0)
    bypass_status_codes: frozenset[int] = frozenset({401, 403})


class Source(str, enum.Enum):
    """Where a :class:`FetchResult` body came from."""

    CACHE = "cache"
    NETWORK = "network"


class TransportResponse(BaseModel):
    """What a transport returns for a successful retrieval."""

    body: bytes = b""
    status_code: int = 200
    headers: dict[str, str] = Field(default_factory=dict)


class FetchResult(BaseModel):
    """Outcome of :meth:`~cachefirst.engine.CachePolicyEngine.execute`.

    ``age`` is the time since the served entry was created and is ``None``
    for network results. A cached result served because the network failed
    has ``stale=True`` and carries the masked failure in ``error``.
    ``warnings`` collects non-fatal storage problems hit along the way.
    """

    key: str
    body: bytes
    status_code: int
    source: Source
    age: Optional[timedelta] = None
    headers: dict[str, str] = Field(default_factory=dict)
    stale: bool = False
    error: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)

    @property
    def text(self) -> str:
        """The body decoded as UTF-8 (undecodable bytes are replaced)."""
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:  # type: ignore[override]
        """Decode the body as JSON."""
        return json.loads(self.body)


# --- Configuration models ---


class CacheConfig(BaseModel):
    """Cache store and default policy settings stored in :class:`GlobalConfig`."""

    directory: Optional[str] = Field(
        default=None, description="Cache directory (defaults to the XDG cache dir)"
    )
    default_ttl_seconds: int = Field(
        default=300, description="Freshness lifetime when the response gives no hint"
    )
    max_stale_seconds: int = Field(
        default=0, description="Tolerance past staleness before refetching"
    )
    grace_seconds: int = Field(
        default=0, description="Retention past staleness before a sweep removes an entry"
    )
    mode: CacheMode = Field(default=CacheMode.CACHE_FIRST)
    bypass_status_codes: list[int] = Field(default_factory=lambda: [401, 403])
    vary_headers: list[str] = Field(
        default_factory=list, description="Request headers that take part in the key"
    )

    def to_policy(self) -> CachePolicy:
        """Build the default per-call :class:`CachePolicy` from these settings."""
        return CachePolicy(
            mode=self.mode,
            max_stale=timedelta(seconds=self.max_stale_seconds),
            bypass_status_codes=frozenset(self.bypass_status_codes),
        )


class RequestConfig(BaseModel):
    """Default HTTP request settings applied by the bundled transports."""

    base_url: Optional[str] = Field(default=None, description="Base URL for relative paths")
    timeout: int = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(default=3, description="Max retry attempts")


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/cachefirst/config.json``.

    Loaded and saved by :func:`~cachefirst.config.load_global_config` and
    :func:`~cachefirst.config.save_global_config`. See
    :func:`~cachefirst.config.resolve_config` for the precedence chain.
    """

    cache: CacheConfig = Field(default_factory=CacheConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
