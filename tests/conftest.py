"""Shared test fixtures for cachefirst.

Provides an isolated config environment, a temporary cache store, a
controllable clock, and scripted transports. These fixtures are
automatically discovered by pytest and available to all test modules.
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Union

import pytest

from cachefirst.cache import CacheStore
from cachefirst.models import RequestDescriptor, TransportResponse
from cachefirst.output import reset_output

Outcome = Union[TransportResponse, BaseException]


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time, which go stale once a CliRunner invocation ends.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Clock and transports
# ---------------------------------------------------------------------------


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class ScriptedTransport:
    """Blocking transport that replays outcomes and records every call.

    Outcomes are consumed in order; the last one repeats forever. An
    exception outcome is raised instead of returned.
    """

    def __init__(self, *outcomes: Outcome) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[RequestDescriptor] = []

    def __call__(self, descriptor: RequestDescriptor) -> TransportResponse:
        self.calls.append(descriptor)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class GatedTransport(ScriptedTransport):
    """Blocking scripted transport that holds every call until ``gate`` is set.

    ``entered`` is set as soon as the first call arrives.
    """

    def __init__(self, *outcomes: Outcome) -> None:
        super().__init__(*outcomes)
        self.entered = threading.Event()
        self.gate = threading.Event()

    def __call__(self, descriptor: RequestDescriptor) -> TransportResponse:
        self.entered.set()
        assert self.gate.wait(timeout=10), "gate never opened"
        return super().__call__(descriptor)


class AsyncScriptedTransport(ScriptedTransport):
    """Async flavour of :class:`ScriptedTransport`."""

    async def __call__(self, descriptor: RequestDescriptor) -> TransportResponse:  # type: ignore[override]
        return ScriptedTransport.__call__(self, descriptor)


def ok(body: bytes = b'[{"id": 1, "name": "Books"}]', **headers: str) -> TransportResponse:
    """Build a 200 transport response; keyword args become headers."""
    return TransportResponse(
        body=body,
        status_code=200,
        headers={"content-type": "application/json", **{k.replace("_", "-"): v for k, v in headers.items()}},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Store fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path: Path) -> CacheStore:
    """A fresh cache store under tmp_path, closed after the test."""
    s = CacheStore(tmp_path / "store")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at tmp_path, clears CACHEFIRST_* variables,
    and changes the working directory to tmp_path.
    """
    monkeypatch.setattr("cachefirst.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in ["CACHEFIRST_BASE_URL", "CACHEFIRST_CACHE_DIR"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()


def damage_record(store: CacheStore, key: str, blob: bytes = b"\x80\x05garbage") -> None:
    """Overwrite the pickled value of *key* directly in the SQLite file."""
    con = sqlite3.connect(str(store.directory / "cache.db"))
    try:
        with con:
            updated = con.execute("UPDATE Cache SET value = ? WHERE key = ?", (blob, key)).rowcount
    finally:
        con.close()
    assert updated == 1
