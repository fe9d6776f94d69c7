"""HTTP transports for the policy engine, backed by :mod:`httpx`.

A transport turns a :class:`~cachefirst.models.RequestDescriptor` into a
:class:`~cachefirst.models.TransportResponse` or raises
:class:`~cachefirst.exceptions.NetworkFailure`. The engine does not care how
that happens; these adapters are the batteries-included HTTP version.

Classes:
    :class:`SyncHttpxTransport` -- blocking, wraps :class:`httpx.Client`.
    :class:`HttpxTransport` -- non-blocking, wraps :class:`httpx.AsyncClient`.

Both retry 5xx responses and transport-level errors (refused connections,
timeouts, dropped or malformed responses) with exponential
backoff (1 s, 2 s, 4 s, ...) and map what remains to ``NetworkFailure``:
the HTTP status code for error responses, ``None`` when no response was
received. Both must be used as (async) context managers.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from cachefirst.exceptions import NetworkFailure
from cachefirst.models import RequestConfig, RequestDescriptor, TransportResponse

# Raised by httpx before a usable response arrived.
_NETWORK_ERRORS = (httpx.TransportError,)


class SyncHttpxTransport:
    """Blocking HTTP transport.

    Args:
        config: Base URL, timeout, SSL verification, and retry settings.
        transport: Optional custom :class:`httpx.BaseTransport` (e.g.
            :class:`httpx.MockTransport` in tests).
        backoff: Base delay in seconds; attempt *n* waits ``backoff * 2**n``.

    Example::

        with SyncHttpxTransport(RequestConfig(base_url="https://api.example.com")) as transport:
            response = transport(RequestDescriptor(path="/categories"))
    """

    def __init__(
        self,
        config: RequestConfig,
        transport: Optional[httpx.BaseTransport] = None,
        backoff: float = 1.0,
    ) -> None:
        self._config = config
        self._transport = transport
        self._backoff = backoff
        self._client: Optional[httpx.Client] = None

    def __enter__(self) -> SyncHttpxTransport:
        self._client = httpx.Client(
            base_url=self._config.base_url or "",
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def __call__(self, descriptor: RequestDescriptor) -> TransportResponse:
        """Send *descriptor* with retry and return the successful response.

        Raises:
            NetworkFailure: On an HTTP error status after all retries
                (``status_code`` set) or a network error (``status_code``
                is ``None``).
        """
        assert self._client is not None, "Transport not initialised -- use as context manager"

        max_retries = self._config.max_retries
        kwargs = _request_kwargs(descriptor)

        for attempt in range(max_retries + 1):
            try:
                response = self._client.request(**kwargs)
            except _NETWORK_ERRORS as exc:
                if attempt < max_retries:
                    time.sleep(self._backoff * 2 ** attempt)
                    continue
                raise NetworkFailure(
                    f"Connection failed after {max_retries + 1} attempts: {exc}"
                ) from exc

            if response.status_code >= 500 and attempt < max_retries:
                time.sleep(self._backoff * 2 ** attempt)
                continue
            return _to_transport_response(response)

        raise NetworkFailure("Request failed after all retries")  # pragma: no cover


class HttpxTransport:
    """Non-blocking HTTP transport; mirrors :class:`SyncHttpxTransport`.

    Example::

        async with HttpxTransport(config) as transport:
            result = await engine.execute(descriptor, policy, transport)
    """

    def __init__(
        self,
        config: RequestConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff: float = 1.0,
    ) -> None:
        self._config = config
        self._transport = transport
        self._backoff = backoff
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> HttpxTransport:
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url or "",
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __call__(self, descriptor: RequestDescriptor) -> TransportResponse:
        """Async version of :meth:`SyncHttpxTransport.__call__`."""
        assert self._client is not None, "Transport not initialised -- use as async context manager"

        max_retries = self._config.max_retries
        kwargs = _request_kwargs(descriptor)

        for attempt in range(max_retries + 1):
            try:
                response = await self._client.request(**kwargs)
            except _NETWORK_ERRORS as exc:
                if attempt < max_retries:
                    await asyncio.sleep(self._backoff * 2 ** attempt)
                    continue
                raise NetworkFailure(
                    f"Connection failed after {max_retries + 1} attempts: {exc}"
                ) from exc

            if response.status_code >= 500 and attempt < max_retries:
                await asyncio.sleep(self._backoff * 2 ** attempt)
                continue
            return _to_transport_response(response)

        raise NetworkFailure("Request failed after all retries")  # pragma: no cover


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _request_kwargs(descriptor: RequestDescriptor) -> dict[str, Any]:
    headers: dict[str, str] = {"Accept": "application/json"}
    headers.update(descriptor.headers)
    params = {name: value for name, value in descriptor.params.items() if value is not None}
    return {
        "method": descriptor.method.upper(),
        "url": descriptor.path,
        "headers": headers,
        "params": params,
    }


def _to_transport_response(response: httpx.Response) -> TransportResponse:
    """Convert a final response, raising for error statuses."""
    status = response.status_code
    if status >= 400:
        raise NetworkFailure(_error_message(response), status_code=status)
    return TransportResponse(
        body=response.content,
        status_code=status,
        headers=dict(response.headers),
    )


def _error_message(response: httpx.Response) -> str:
    """Build ``HTTP <status>: <detail>`` from an error response body."""
    try:
        detail = response.json()
        if isinstance(detail, dict):
            msg = detail.get("message") or detail.get("error") or detail.get("detail") or ""
        else:
            msg = str(detail)
    except ValueError:
        msg = response.text[:200] if response.text else ""

    prefix = f"HTTP {response.status_code}"
    return f"{prefix}: {msg}" if msg else prefix
