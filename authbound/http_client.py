# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""httpx clients for talking to the gateway.

Every gateway client is built by :func:`build_gateway_client`. The process
also keeps one pooled client that status transports fall back to when none
is injected; the service closes it on shutdown.
"""

import logging
from typing import Optional

import httpx

from authbound.config import CLIENT_IDENTIFIER, REQUEST_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# Event streams hold a connection for the whole session, so the pool is
# sized for many concurrent subscriptions rather than short requests.
GATEWAY_POOL_LIMITS = httpx.Limits(
    max_connections=200,
    max_keepalive_connections=20,
    keepalive_expiry=15.0,
)

_shared_client: Optional[httpx.AsyncClient] = None


def build_gateway_client(
    timeout: float = REQUEST_TIMEOUT_SECONDS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create an ``httpx.AsyncClient`` configured for the gateway.

    Redirects are never followed so a bearer token cannot be replayed to
    another origin. *timeout* is only a default: status transports set
    their own per-request timeouts.
    """
    return httpx.AsyncClient(
        limits=GATEWAY_POOL_LIMITS,
        timeout=httpx.Timeout(timeout),
        follow_redirects=False,
        headers={"X-Authbound-Client": CLIENT_IDENTIFIER},
        transport=transport,
    )


def get_shared_client() -> httpx.AsyncClient:
    global _shared_client
    if _shared_client is None or _shared_client.is_closed:
        _shared_client = build_gateway_client()
        logger.debug("Opened shared gateway client (%s)", CLIENT_IDENTIFIER)
    return _shared_client


async def close_shared_client() -> None:
    global _shared_client
    client, _shared_client = _shared_client, None
    if client is not None and not client.is_closed:
        await client.aclose()
        logger.debug("Closed shared gateway client")


def reset_shared_client() -> None:
    """Forget the shared client without closing it (tests only)."""
    global _shared_client
    _shared_client = None
