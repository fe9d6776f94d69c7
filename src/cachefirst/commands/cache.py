"""Cache commands -- inspect and maintain the local store.

Provides the ``cachefirst cache`` sub-command group:

* ``stats`` -- entry count, bytes on disk, and directory.
* ``list`` -- one row per entry with its freshness state.
* ``sweep`` -- remove entries past ``stale_at + grace``.
* ``delete KEY`` -- remove a single entry.
* ``clear`` -- remove everything (asks for confirmation unless ``--force``).
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import timedelta
from typing import Iterator, Optional

import typer

from cachefirst.cache import CacheStore
from cachefirst.exceptions import CachefirstError
from cachefirst.exit_codes import EXIT_INVALID_USAGE, EXIT_NOT_FOUND
from cachefirst.output import error, format_response, info, print_table, success


cache_app = typer.Typer(no_args_is_help=True)


@contextmanager
def _open_store(ctx: typer.Context, grace: Optional[int] = None) -> Iterator[CacheStore]:
    """Open the configured store, mapping typed failures to exit codes."""
    from cachefirst.config import resolve_cache_dir, resolve_config

    obj = ctx.obj or {}
    try:
        config = resolve_config(cli_cache_dir=obj.get("cache_dir"))
        seconds = config.cache.grace_seconds if grace is None else grace
        with CacheStore(resolve_cache_dir(config), grace_window=timedelta(seconds=seconds)) as store:
            yield store
    except CachefirstError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show the number of entries, bytes on disk, and store directory."""
    with _open_store(ctx) as store:
        format_response(store.stats())


@cache_app.command("list")
def cache_list(ctx: typer.Context) -> None:
    """List stored entries with their status code, size, and freshness."""
    from cachefirst.client.response import format_duration
    from cachefirst.engine import utcnow

    now = utcnow()
    with _open_store(ctx) as store:
        entries = sorted(store.entries(), key=lambda e: e.created_at)

    rows = []
    for entry in entries:
        rows.append([
            entry.key,
            str(entry.status_code),
            str(len(entry.body)),
            format_duration(now - entry.created_at),
            "stale" if entry.is_stale(now) else "fresh",
        ])
    print_table(["key", "status", "bytes", "age", "state"], rows, title="Cached entries")


@cache_app.command("sweep")
def cache_sweep(
    ctx: typer.Context,
    grace: Optional[int] = typer.Option(
        None, "--grace", help="Seconds to keep entries past staleness (overrides config)."
    ),
) -> None:
    """Remove entries whose staleness plus grace window has passed."""
    from cachefirst.engine import utcnow

    if grace is not None and grace < 0:
        error("--grace must not be negative")
        raise typer.Exit(code=EXIT_INVALID_USAGE)
    with _open_store(ctx, grace=grace) as store:
        removed = store.sweep_expired(utcnow())
    success(f"Removed {removed} expired entr{'y' if removed == 1 else 'ies'}.")


@cache_app.command("delete")
def cache_delete(
    ctx: typer.Context,
    key: str = typer.Argument(help="Entry key as shown by 'cache list'."),
) -> None:
    """Remove a single entry by key."""
    with _open_store(ctx) as store:
        removed = store.delete(key)
    if not removed:
        error(f"No entry with key {key}")
        raise typer.Exit(code=EXIT_NOT_FOUND)
    success(f"Deleted {key}.")


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Remove every entry. Asks for confirmation unless ``--force`` is active."""
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Remove all cached entries?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    with _open_store(ctx) as store:
        removed = store.clear()
    success(f"Cleared {removed} entr{'y' if removed == 1 else 'ies'}.")
