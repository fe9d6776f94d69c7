"""Exception hierarchy for cachefirst.

All exceptions inherit from :class:`CachefirstError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`cachefirst.exit_codes`.
The CLI entry point in :func:`cachefirst.app.main` catches
``CachefirstError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    CachefirstError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- KeyDerivationError  (exit 2)
    +-- NetworkFailure      (exit 3 / 4 / 5 / 6, derived from status_code)
    +-- NoCachedData        (exit 7)
    +-- StorageFailure      (exit 8)
    +-- ConfigError         (exit 1)
"""

from __future__ import annotations

from typing import Optional

from cachefirst.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NO_CACHED_DATA,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
    EXIT_STORAGE_FAILURE,
)


class CachefirstError(Exception):
    """Base exception for all cachefirst errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`cachefirst.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(CachefirstError):
    """Raised for invalid CLI arguments."""

    exit_code = EXIT_INVALID_USAGE


class KeyDerivationError(CachefirstError):
    """Raised when a request descriptor cannot be normalised into a cache key.

    Typical causes are an empty path or a query parameter whose value is not
    a scalar (e.g. a nested dict or an arbitrary object).
    """

    exit_code = EXIT_INVALID_USAGE


class NetworkFailure(CachefirstError):
    """Raised when the transport could not produce a successful response.

    ``status_code`` is the HTTP status of an error response, or ``None`` for
    network-level failures (timeout, DNS, connection refused) where no
    response was received at all.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, exit_code=_exit_code_for_status(status_code))
        self.status_code = status_code


class NoCachedData(CachefirstError):
    """Raised by a cache-only read when nothing is stored for the request."""

    exit_code = EXIT_NO_CACHED_DATA


class StorageFailure(CachefirstError):
    """Raised when the cache medium fails (disk full, locked, corrupt record)."""

    exit_code = EXIT_STORAGE_FAILURE


class ConfigError(CachefirstError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE


def _exit_code_for_status(status_code: Optional[int]) -> int:
    if status_code is None:
        return EXIT_CONNECTION_ERROR
    if status_code in (401, 403):
        return EXIT_AUTH_FAILURE
    if status_code == 404:
        return EXIT_NOT_FOUND
    return EXIT_SERVER_ERROR
