# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Gateway transport for the status channels.

The subscribers never touch HTTP directly; they receive a
:class:`StatusTransport` so tests can drive them with scripted streams and
responses. :class:`HttpxStatusTransport` is the production implementation.

Both endpoints authenticate with ``Authorization: Bearer <client token>``.
The token is never placed in a URL, where it would leak through access
logs and ``Referer`` headers.

Endpoints
---------
* ``GET /v1/sessions/{id}/status/sse``: ``text/event-stream`` push channel.
* ``GET /v1/verifications/{id}/status``: JSON poll channel.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Dict, Optional, Protocol
from urllib.parse import quote

import httpx

from authbound.config import CLIENT_IDENTIFIER, GATEWAY_URL, REQUEST_TIMEOUT_SECONDS
from authbound.exceptions import AuthboundError
from authbound.http_client import get_shared_client

logger = logging.getLogger("authbound.status.transport")

__all__ = ["HttpxStatusTransport", "StatusTransport"]


class StatusTransport(Protocol):
    """Network boundary used by the push and polling subscribers."""

    def open_stream(
        self, session_id: str, client_token: str
    ) -> AsyncContextManager[AsyncIterator[bytes]]:
        """Open the push stream; the context yields raw body chunks.

        Raises :class:`AuthboundError` when the connection cannot be
        established or a read fails.
        """
        ...

    async def fetch_status(self, session_id: str, client_token: str) -> Dict[str, Any]:
        """Issue one status request and return the decoded JSON object."""
        ...


def _json_or_none(response: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


class HttpxStatusTransport:
    """:class:`StatusTransport` over an ``httpx.AsyncClient``.

    Parameters
    ----------
    client : httpx.AsyncClient, optional
        Client to use; defaults to the process-wide shared client.
    gateway_url : str
        Base URL of the verification gateway.
    request_timeout : float
        Connect/write timeout for both channels and read timeout for
        polls. The push stream has no read timeout.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        gateway_url: str = GATEWAY_URL,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self._base = httpx.URL(gateway_url.rstrip("/") + "/")
        self._request_timeout = request_timeout

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client if self._client is not None else get_shared_client()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _url(self, path: str) -> httpx.URL:
        """Resolve *path* against the gateway, refusing cross-origin results."""
        url = self._base.join(path.lstrip("/"))
        if (url.scheme, url.host, url.port) != (self._base.scheme, self._base.host, self._base.port):
            raise AuthboundError(
                "config_invalid",
                f"Invalid request URL: expected origin {self._base.scheme}://{self._base.host}",
            )
        return url

    @staticmethod
    def _headers(client_token: str, accept: str) -> Dict[str, str]:
        return {
            "Accept": accept,
            "Authorization": f"Bearer {client_token}",
            "X-Authbound-Client": CLIENT_IDENTIFIER,
        }

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def open_stream(
        self, session_id: str, client_token: str
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        url = self._url(f"v1/sessions/{quote(session_id, safe='')}/status/sse")
        headers = self._headers(client_token, "text/event-stream")
        headers["Cache-Control"] = "no-cache"

        request = self.client.build_request(
            "GET",
            url,
            headers=headers,
            timeout=httpx.Timeout(self._request_timeout, read=None),
        )
        try:
            response = await self.client.send(request, stream=True)
        except httpx.TimeoutException as exc:
            raise AuthboundError.network("Event stream connection timed out") from exc
        except httpx.TransportError as exc:
            raise AuthboundError.network(
                f"Event stream connection failed: {type(exc).__name__}"
            ) from exc

        try:
            if not response.is_success:
                await response.aread()
                raise AuthboundError.from_response(response, _json_or_none(response))
            logger.debug("Event stream connected for session %s", session_id)
            yield self._iter_chunks(response)
        finally:
            await response.aclose()

    @staticmethod
    async def _iter_chunks(response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.TimeoutException as exc:
            raise AuthboundError.network("Event stream read timed out") from exc
        except httpx.TransportError as exc:
            raise AuthboundError.network(
                f"Event stream read failed: {type(exc).__name__}"
            ) from exc

    # ------------------------------------------------------------------
    # Poll channel
    # ------------------------------------------------------------------

    async def fetch_status(self, session_id: str, client_token: str) -> Dict[str, Any]:
        url = self._url(f"v1/verifications/{quote(session_id, safe='')}/status")
        try:
            response = await self.client.get(
                url,
                headers=self._headers(client_token, "application/json"),
                timeout=self._request_timeout,
            )
        except httpx.TimeoutException as exc:
            raise AuthboundError.network("Status request timed out") from exc
        except httpx.TransportError as exc:
            raise AuthboundError.network(
                f"Status request failed: {type(exc).__name__}"
            ) from exc

        body = _json_or_none(response)
        if not response.is_success:
            logger.warning(
                "Status request for session %s returned HTTP %d",
                session_id, response.status_code,
            )
            raise AuthboundError.from_response(response, body)
        if body is None:
            raise AuthboundError.parse("status response is not a JSON object")
        return body
