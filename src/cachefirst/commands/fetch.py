"""``cachefirst fetch`` -- read one resource through the cache.

The body goes to stdout; a provenance line (``HTTP 200 (cache, age 2h)``)
and any warnings go to stderr. Typed failures exit with their exit code,
so a script can tell an offline miss (7) from rejected credentials (3).
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

import typer

from cachefirst.exceptions import CachefirstError, InvalidUsageError
from cachefirst.models import CacheMode
from cachefirst.output import debug, error


def fetch_command(
    ctx: typer.Context,
    path: str = typer.Argument(help="URL path (relative to --base-url) or absolute URL."),
    param: list[str] = typer.Option(
        [], "--param", "-P", help="Query parameter as key=value (repeatable)."
    ),
    header: list[str] = typer.Option(
        [], "--header", "-H", help="Request header as 'Name: value' (repeatable)."
    ),
    mode: Optional[CacheMode] = typer.Option(
        None, "--mode", "-m", help="Cache mode (defaults to the configured mode)."
    ),
    max_stale: Optional[int] = typer.Option(
        None, "--max-stale", help="Seconds a stale entry may still be served."
    ),
) -> None:
    """Fetch PATH, serving cached data according to the cache policy.

    Example::

        cachefirst fetch /categories --max-stale 2592000
        cachefirst fetch /products -P category=1 -P sort=name --mode network_first
    """
    from cachefirst.cache import CacheStore
    from cachefirst.client import CachedClient
    from cachefirst.client.response import format_fetch_result
    from cachefirst.config import resolve_cache_dir, resolve_config

    obj = ctx.obj or {}
    try:
        params = _parse_params(param)
        headers = _parse_headers(header)
        config = resolve_config(cli_base_url=obj.get("base_url"), cli_cache_dir=obj.get("cache_dir"))

        update: dict[str, Any] = {}
        if mode is not None:
            update["mode"] = mode
        if max_stale is not None:
            if max_stale < 0:
                raise InvalidUsageError("--max-stale must not be negative")
            update["max_stale"] = timedelta(seconds=max_stale)
        policy = config.cache.to_policy().model_copy(update=update)

        grace = timedelta(seconds=config.cache.grace_seconds)
        directory = resolve_cache_dir(config)
        debug(f"Cache directory: {directory}")
        with CacheStore(directory, grace_window=grace) as store:
            with CachedClient(store, config) as client:
                result = client.get(path, params=params, headers=headers, policy=policy)
    except CachefirstError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    debug(f"Cache key: {result.key}")
    format_fetch_result(result)


def _parse_params(values: list[str]) -> dict[str, Any]:
    """Parse ``key=value`` pairs; repeated keys collect into a list."""
    params: dict[str, Any] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise InvalidUsageError(f"Invalid --param '{item}', expected key=value")
        if name in params:
            existing = params[name]
            params[name] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            params[name] = value
    return params


def _parse_headers(values: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            raise InvalidUsageError(f"Invalid --header '{item}', expected 'Name: value'")
        headers[name.strip()] = value.strip()
    return headers
