"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~cachefirst.exceptions.CachefirstError` subclass.
Shell wrappers can inspect the exit code to tell an offline miss apart from
rejected credentials without parsing stderr.

Example::

    $ cachefirst fetch /categories --mode cache_only
    $ echo $?
    7   # EXIT_NO_CACHED_DATA -- nothing stored for this request yet
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or an unusable request descriptor."""

EXIT_AUTH_FAILURE = 3
"""The server rejected the credentials (HTTP 401 / 403)."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an HTTP error other than auth / not found."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_NO_CACHED_DATA = 7
"""A cache-only read found no stored entry."""

EXIT_STORAGE_FAILURE = 8
"""The local cache store could not be read or written."""
