# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Client facade for observing verification sessions.

Usage:
    async with AuthboundClient() as client:
        subscription = client.subscribe_to_status(
            session_id, client_token, on_event=handle_event
        )
        await subscription.wait()
"""

import logging
from typing import List, Optional

import httpx

from authbound.config import GATEWAY_URL, REQUEST_TIMEOUT_SECONDS
from authbound.http_client import build_gateway_client
from authbound.models import GatewayStatusResponse
from authbound.status.clock import Clock
from authbound.status.handlers import ErrorHandler, EventHandler
from authbound.status.polling import DEFAULT_POLLING_CONFIG, PollingConfig, poll_once
from authbound.status.subscription import StatusSubscription
from authbound.status.transport import HttpxStatusTransport, StatusTransport

logger = logging.getLogger("authbound.client")


class AuthboundClient:
    """Entry point for status subscriptions against one gateway.

    Subscriptions created here are tracked so :meth:`aclose` can stop any
    still running before the HTTP client is released.
    """

    def __init__(
        self,
        gateway_url: str = GATEWAY_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
        transport: Optional[StatusTransport] = None,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self._owns_http_client = http_client is None and transport is None
        if self._owns_http_client:
            http_client = build_gateway_client(request_timeout)
        self._http_client = http_client
        self._transport = transport or HttpxStatusTransport(
            http_client, gateway_url=gateway_url, request_timeout=request_timeout
        )
        self._clock = clock
        self._subscriptions: List[StatusSubscription] = []

    @property
    def transport(self) -> StatusTransport:
        return self._transport

    def subscribe_to_status(
        self,
        session_id: str,
        client_token: str,
        on_event: EventHandler,
        on_error: Optional[ErrorHandler] = None,
        *,
        fallback_to_polling: bool = True,
        polling_config: Optional[PollingConfig] = None,
    ) -> StatusSubscription:
        """Start observing *session_id* and return the running subscription."""
        subscription = StatusSubscription(
            self._transport,
            session_id,
            client_token,
            on_event,
            on_error,
            fallback_to_polling=fallback_to_polling,
            polling_config=polling_config or DEFAULT_POLLING_CONFIG,
            clock=self._clock,
        )
        self._subscriptions = [s for s in self._subscriptions if not s.cancelled]
        self._subscriptions.append(subscription)
        return subscription.start()

    async def poll_status(self, session_id: str, client_token: str) -> GatewayStatusResponse:
        """Fetch the current status once, without subscribing."""
        return await poll_once(self._transport, session_id, client_token)

    async def aclose(self) -> None:
        for subscription in self._subscriptions:
            subscription.stop()
        self._subscriptions.clear()
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            logger.debug("Closed client-owned httpx.AsyncClient")

    async def __aenter__(self) -> "AuthboundClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


_client: Optional[AuthboundClient] = None


def get_client() -> AuthboundClient:
    """Get or create the process-wide client backed by the shared HTTP pool."""
    global _client
    if _client is None:
        _client = AuthboundClient(transport=HttpxStatusTransport())
    return _client


def reset_client() -> None:
    """Reset the process-wide client (for testing). Does NOT close it."""
    global _client
    _client = None
