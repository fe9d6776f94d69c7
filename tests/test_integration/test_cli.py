"""End-to-end tests for the cachefirst command line.

Runs the real Typer app against an isolated config/cache directory with an
:class:`httpx.MockTransport` standing in for the network, and checks exit
codes plus the combined stdout/stderr output.
"""

from __future__ import annotations

import functools
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

from cachefirst import __version__
from cachefirst.app import app
from cachefirst.cache import CacheStore
from cachefirst.client import CachedClient
from cachefirst.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_INVALID_USAGE,
    EXIT_NO_CACHED_DATA,
    EXIT_NOT_FOUND,
    EXIT_SUCCESS,
)
from cachefirst.models import CacheEntry

BASE = ["--base-url", "https://api.example.com", "--no-color", "--plain"]


class _Server:
    def __init__(self) -> None:
        self.online = True
        self.hits = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.hits += 1
        if not self.online:
            raise httpx.ConnectError("Network unreachable")
        if request.url.path == "/secret":
            return httpx.Response(401, json={"message": "token expired"})
        if request.url.path == "/missing":
            return httpx.Response(404, json={"message": "no such resource"})
        return httpx.Response(200, json=[{"id": 1, "name": "Books"}])


@pytest.fixture
def server(isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> _Server:
    """Route the CLI's client through a mock server with retries disabled."""
    (isolated_config / "cachefirst.json").write_text(
        json.dumps({"request": {"max_retries": 0}}), encoding="utf-8"
    )
    handler = _Server()
    monkeypatch.setattr(
        "cachefirst.client.CachedClient",
        functools.partial(CachedClient, http_transport=httpx.MockTransport(handler)),
    )
    return handler


def _store_dir(root: Path) -> Path:
    return root / "cache" / "cachefirst"


# ---------------------------------------------------------------------------
# Root options
# ---------------------------------------------------------------------------


class TestRoot:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == EXIT_SUCCESS
        assert f"cachefirst {__version__}" in result.output

    def test_no_args_shows_help(self, cli_runner) -> None:
        result = cli_runner.invoke(app, [])
        assert "fetch" in result.output
        assert "cache" in result.output


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


class TestFetch:
    def test_network_then_cache(self, cli_runner, server: _Server) -> None:
        first = cli_runner.invoke(app, [*BASE, "fetch", "/categories"])
        second = cli_runner.invoke(app, [*BASE, "fetch", "/categories"])

        assert first.exit_code == EXIT_SUCCESS
        assert "1\tBooks" in first.output
        assert "HTTP 200 (network)" in first.output
        assert second.exit_code == EXIT_SUCCESS
        assert "HTTP 200 (cache, age" in second.output
        assert server.hits == 1

    def test_offline_with_cached_entry(self, cli_runner, server: _Server) -> None:
        cli_runner.invoke(app, [*BASE, "fetch", "/categories"])
        server.online = False

        result = cli_runner.invoke(app, [*BASE, "fetch", "/categories", "--mode", "network_first"])

        assert result.exit_code == EXIT_SUCCESS
        assert "1\tBooks" in result.output
        assert "Network unavailable, served cached data" in result.output

    def test_offline_without_cache(self, cli_runner, server: _Server) -> None:
        server.online = False
        result = cli_runner.invoke(app, [*BASE, "fetch", "/categories"])
        assert result.exit_code == EXIT_CONNECTION_ERROR
        assert "Connection failed" in result.output

    def test_cache_only_miss(self, cli_runner, server: _Server) -> None:
        result = cli_runner.invoke(app, [*BASE, "fetch", "/categories", "--mode", "cache_only"])
        assert result.exit_code == EXIT_NO_CACHED_DATA
        assert "No cached data" in result.output
        assert server.hits == 0

    def test_unauthorized(self, cli_runner, server: _Server) -> None:
        result = cli_runner.invoke(app, [*BASE, "fetch", "/secret"])
        assert result.exit_code == EXIT_AUTH_FAILURE
        assert "HTTP 401: token expired" in result.output

    def test_not_found(self, cli_runner, server: _Server) -> None:
        result = cli_runner.invoke(app, [*BASE, "fetch", "/missing"])
        assert result.exit_code == EXIT_NOT_FOUND

    def test_invalid_param(self, cli_runner, server: _Server) -> None:
        result = cli_runner.invoke(app, [*BASE, "fetch", "/categories", "-P", "novalue"])
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "expected key=value" in result.output
        assert server.hits == 0

    def test_invalid_header(self, cli_runner, server: _Server) -> None:
        result = cli_runner.invoke(app, [*BASE, "fetch", "/categories", "-H", "no-colon"])
        assert result.exit_code == EXIT_INVALID_USAGE

    def test_negative_max_stale(self, cli_runner, server: _Server) -> None:
        result = cli_runner.invoke(app, [*BASE, "fetch", "/categories", "--max-stale", "-1"])
        assert result.exit_code == EXIT_INVALID_USAGE

    def test_params_are_part_of_key(self, cli_runner, server: _Server) -> None:
        cli_runner.invoke(app, [*BASE, "fetch", "/products", "-P", "page=1"])
        cli_runner.invoke(app, [*BASE, "fetch", "/products", "-P", "page=2"])
        cli_runner.invoke(app, [*BASE, "fetch", "/products", "-P", "page=1"])
        assert server.hits == 2

    def test_verbose_reports_cache_key(self, cli_runner, server: _Server) -> None:
        quiet = cli_runner.invoke(app, [*BASE, "fetch", "/categories"])
        verbose = cli_runner.invoke(app, [*BASE, "-v", "fetch", "/categories"])

        assert "[debug]" not in quiet.output
        assert verbose.exit_code == EXIT_SUCCESS
        assert "[debug] Cache directory:" in verbose.output
        assert "[debug] Cache key:" in verbose.output

    def test_json_output(self, cli_runner, server: _Server) -> None:
        result = cli_runner.invoke(
            app, ["--base-url", "https://api.example.com", "--json", "-q", "fetch", "/categories"]
        )
        assert result.exit_code == EXIT_SUCCESS
        assert json.loads(result.output) == [{"id": 1, "name": "Books"}]


# ---------------------------------------------------------------------------
# cache
# ---------------------------------------------------------------------------


def _seed_expired(root: Path) -> str:
    created = datetime(2020, 1, 1, tzinfo=timezone.utc)
    entry = CacheEntry(key="old", body=b"{}", created_at=created, stale_at=created + timedelta(minutes=5))
    with CacheStore(_store_dir(root)) as store:
        store.put(entry.key, entry)
    return entry.key


class TestCacheCommands:
    def test_stats(self, cli_runner, server: _Server) -> None:
        cli_runner.invoke(app, [*BASE, "fetch", "/categories"])
        result = cli_runner.invoke(app, ["--json", "cache", "stats"])

        assert result.exit_code == EXIT_SUCCESS
        assert json.loads(result.output)["size"] == 1

    def test_list(self, cli_runner, server: _Server) -> None:
        cli_runner.invoke(app, [*BASE, "fetch", "/categories"])
        result = cli_runner.invoke(app, ["--plain", "cache", "list"])

        lines = result.output.splitlines()
        assert lines[0] == "key\tstatus\tbytes\tage\tstate"
        assert lines[1].split("\t")[1] == "200"
        assert lines[1].endswith("\tfresh")

    def test_sweep_removes_expired_only(self, cli_runner, server: _Server, isolated_config: Path) -> None:
        cli_runner.invoke(app, [*BASE, "fetch", "/categories"])
        _seed_expired(isolated_config)

        result = cli_runner.invoke(app, ["--no-color", "cache", "sweep"])

        assert result.exit_code == EXIT_SUCCESS
        assert "Removed 1 expired entry." in result.output
        with CacheStore(_store_dir(isolated_config)) as store:
            assert "old" not in store
            assert len(store) == 1

    def test_sweep_grace_keeps_entry(self, cli_runner, isolated_config: Path) -> None:
        _seed_expired(isolated_config)
        result = cli_runner.invoke(app, ["--no-color", "cache", "sweep", "--grace", str(10 * 365 * 86400)])
        assert "Removed 0 expired entries." in result.output

    def test_sweep_negative_grace(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "cache", "sweep", "--grace", "-5"])
        assert result.exit_code == EXIT_INVALID_USAGE

    def test_delete(self, cli_runner, isolated_config: Path) -> None:
        key = _seed_expired(isolated_config)
        result = cli_runner.invoke(app, ["--no-color", "cache", "delete", key])
        assert result.exit_code == EXIT_SUCCESS
        assert f"Deleted {key}." in result.output

    def test_delete_missing(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "cache", "delete", "nope"])
        assert result.exit_code == EXIT_NOT_FOUND
        assert "No entry with key nope" in result.output

    def test_clear_with_force(self, cli_runner, isolated_config: Path) -> None:
        _seed_expired(isolated_config)
        result = cli_runner.invoke(app, ["--no-color", "-f", "cache", "clear"])
        assert result.exit_code == EXIT_SUCCESS
        assert "Cleared 1 entry." in result.output

    def test_clear_declined(self, cli_runner, isolated_config: Path) -> None:
        _seed_expired(isolated_config)
        result = cli_runner.invoke(app, ["--no-color", "cache", "clear"], input="n\n")

        assert "Cancelled." in result.output
        with CacheStore(_store_dir(isolated_config)) as store:
            assert len(store) == 1

    def test_cache_dir_option(self, cli_runner, isolated_config: Path, tmp_path: Path) -> None:
        other = tmp_path / "elsewhere"
        result = cli_runner.invoke(app, ["--json", "--cache-dir", str(other), "cache", "stats"])
        assert json.loads(result.output)["directory"] == str(other / "entries")


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


class TestConfigCommands:
    def test_set_and_show(self, cli_runner, isolated_config: Path) -> None:
        set_result = cli_runner.invoke(app, ["--no-color", "config", "set", "cache.max_stale_seconds", "60"])
        show = cli_runner.invoke(app, ["--json", "-q", "config", "show"])

        assert set_result.exit_code == EXIT_SUCCESS
        assert json.loads(show.output)["cache"]["max_stale_seconds"] == 60

    def test_set_list_value(self, cli_runner, isolated_config: Path) -> None:
        cli_runner.invoke(app, ["config", "set", "cache.bypass_status_codes", "401,403,407"])
        show = cli_runner.invoke(app, ["--json", "-q", "config", "show"])
        assert json.loads(show.output)["cache"]["bypass_status_codes"] == [401, 403, 407]

    def test_set_unknown_key(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "config", "set", "cache.nope", "1"])
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "Unknown config key" in result.output

    def test_set_bad_integer(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "config", "set", "cache.default_ttl_seconds", "soon"])
        assert result.exit_code == EXIT_INVALID_USAGE

    def test_set_invalid_mode(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "config", "set", "cache.mode", "sometimes"])
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "Validation error" in result.output

    def test_reset(self, cli_runner, isolated_config: Path) -> None:
        cli_runner.invoke(app, ["config", "set", "cache.max_stale_seconds", "60"])
        result = cli_runner.invoke(app, ["--no-color", "-f", "config", "reset"])
        show = cli_runner.invoke(app, ["--json", "-q", "config", "show"])

        assert result.exit_code == EXIT_SUCCESS
        assert json.loads(show.output)["cache"]["max_stale_seconds"] == 0
