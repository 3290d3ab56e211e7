# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Polling subscriber: status fallback when the push stream is unavailable.

Issues one status request, waits, issues the next. Waits follow an
exponential schedule (1s, 2s, 4s, ... capped at 30s by default).

Two independent limits bound total resource use:

* **Overall deadline** (``max_duration``, default 5 minutes from the first
  poll). When it passes, a synthetic ``timeout`` event is emitted and
  polling stops. Inter-poll waits are clipped to the deadline, and an
  in-flight request is cut off at the deadline.
* **Per-request timeout** ``min(remaining, 30s)``. A request exceeding it is
  cancelled and handled exactly like the overall deadline.

Events are emitted only when the mapped status changes or is terminal, so
an unchanged ``pending`` does not produce redundant callbacks. Retryable
(network-class) failures keep the schedule going; anything else emits an
``error`` event and stops.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from authbound.config import (
    POLL_BACKOFF_MULTIPLIER,
    POLL_INITIAL_INTERVAL,
    POLL_MAX_DURATION,
    POLL_MAX_INTERVAL,
    POLL_REQUEST_TIMEOUT_CAP,
)
from authbound.exceptions import AuthboundError
from authbound.models import GatewayStatusResponse, StatusEvent, VerificationStatus
from authbound.status.cancellation import CancellationToken
from authbound.status.clock import Clock, SystemClock
from authbound.status.handlers import ErrorHandler, EventHandler, invoke
from authbound.status.lifecycle import is_terminal
from authbound.status.transport import StatusTransport

logger = logging.getLogger("authbound.status.polling")

__all__ = [
    "DEFAULT_POLLING_CONFIG",
    "PollingConfig",
    "PollingSubscriber",
    "build_status_event",
    "map_gateway_status",
    "poll_once",
]

# Gateway vocabulary -> client vocabulary.
_GATEWAY_STATUS_MAP: Dict[str, VerificationStatus] = {
    "pending": VerificationStatus.PENDING,
    "processing": VerificationStatus.PROCESSING,
    "verified": VerificationStatus.VERIFIED,
    "failed": VerificationStatus.FAILED,
    "expired": VerificationStatus.TIMEOUT,
    "canceled": VerificationStatus.ERROR,
}


def map_gateway_status(status: str) -> VerificationStatus:
    """Map a gateway status to :class:`VerificationStatus`.

    ``expired`` becomes ``timeout`` and ``canceled`` becomes ``error``;
    unrecognised values are treated as still ``pending``.
    """
    mapped = _GATEWAY_STATUS_MAP.get(status)
    if mapped is None:
        logger.warning("Unknown gateway status %r; treating as pending", status)
        return VerificationStatus.PENDING
    return mapped


def build_status_event(response: GatewayStatusResponse) -> StatusEvent:
    """Convert a poll response into the channel-agnostic event shape."""
    if response.result is not None:
        kind = "result"
    elif response.error is not None:
        kind = "error"
    else:
        kind = "status"
    return StatusEvent(
        kind=kind,
        status=map_gateway_status(response.status),
        result=response.result,
        error=response.error,
    )


@dataclass(frozen=True)
class PollingConfig:
    """Polling schedule. All durations are in seconds."""

    initial_interval: float = POLL_INITIAL_INTERVAL
    max_interval: float = POLL_MAX_INTERVAL
    backoff_multiplier: float = POLL_BACKOFF_MULTIPLIER
    max_duration: float = POLL_MAX_DURATION
    request_timeout_cap: float = POLL_REQUEST_TIMEOUT_CAP


DEFAULT_POLLING_CONFIG = PollingConfig()


async def poll_once(
    transport: StatusTransport,
    session_id: str,
    client_token: str,
) -> GatewayStatusResponse:
    """Perform a single status request with the status already mapped.

    For manual polling when an automatic subscription is not needed.

    Raises:
        AuthboundError: On transport failure or a malformed body
            (``parse_error``).
    """
    data = await transport.fetch_status(session_id, client_token)
    try:
        response = GatewayStatusResponse.model_validate(data)
    except ValidationError as exc:
        raise AuthboundError.parse(
            f"status response failed validation ({exc.error_count()} error(s))"
        ) from exc
    return response.model_copy(update={"status": map_gateway_status(response.status).value})


class PollingSubscriber:
    """Deadline-bounded polling loop for one session."""

    def __init__(
        self,
        transport: StatusTransport,
        session_id: str,
        client_token: str,
        on_event: EventHandler,
        on_error: Optional[ErrorHandler] = None,
        *,
        config: PollingConfig = DEFAULT_POLLING_CONFIG,
        clock: Optional[Clock] = None,
    ) -> None:
        self._transport = transport
        self._session_id = session_id
        self._client_token = client_token
        self._on_event = on_event
        self._on_error = on_error
        self._config = config
        self._clock = clock or SystemClock()

        self._token = CancellationToken(f"poll:{session_id}")
        self._task: Optional[asyncio.Task] = None
        self._last_status = VerificationStatus.IDLE
        self.requests = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def active(self) -> bool:
        return (
            self._task is not None
            and not self._task.done()
            and not self._token.cancelled
        )

    @property
    def last_status(self) -> VerificationStatus:
        return self._last_status

    def start(self) -> asyncio.Task:
        """Start polling immediately. Idempotent."""
        if self._task is None:
            self._task = asyncio.create_task(
                self.run(), name=f"authbound-poll-{self._session_id}"
            )
            self._token.bind(self._task)
        return self._task

    def stop(self) -> None:
        """Stop polling. Idempotent; safe to call from a handler."""
        self._token.cancel()

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.wait({self._task})

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def run(self) -> None:
        config = self._config
        started = self._clock.now()
        interval = config.initial_interval

        while not self._token.cancelled:
            remaining = config.max_duration - (self._clock.now() - started)
            if remaining <= 0:
                await self._emit_timeout("overall deadline reached")
                return

            try:
                data = await self._request(min(remaining, config.request_timeout_cap))
            except asyncio.TimeoutError:
                await self._emit_timeout("status request exceeded its time budget")
                return
            except AuthboundError as exc:
                if self._token.cancelled:
                    return
                if exc.code == "parse_error":
                    logger.warning(
                        "parse_error: dropping poll response for session %s (%s)",
                        self._session_id, exc.message,
                    )
                elif not exc.retryable:
                    await self._fail(exc)
                    return
                else:
                    logger.info(
                        "Retryable poll failure for session %s (%s); next poll in %.2fs",
                        self._session_id, exc.code, interval,
                    )
            else:
                if self._token.cancelled:
                    return
                if await self._handle_response(data):
                    return

            # A handler may have stopped us; the task does not cancel itself.
            if self._token.cancelled:
                return
            remaining = config.max_duration - (self._clock.now() - started)
            await self._clock.sleep(min(interval, max(remaining, 0.0)))
            interval = min(interval * config.backoff_multiplier, config.max_interval)

    async def _request(self, timeout: float) -> Dict[str, Any]:
        self.requests += 1
        return await self._clock.wait_for(
            self._transport.fetch_status(self._session_id, self._client_token),
            timeout,
        )

    async def _handle_response(self, data: Dict[str, Any]) -> bool:
        """Emit on change or terminal status. Returns ``True`` when polling must stop."""
        try:
            response = GatewayStatusResponse.model_validate(data)
            event = build_status_event(response)
        except ValidationError as exc:
            logger.warning(
                "parse_error: dropping poll response for session %s (%d validation error(s))",
                self._session_id, exc.error_count(),
            )
            return False

        terminal = is_terminal(event.status)
        if event.status != self._last_status or terminal:
            self._last_status = event.status
            await invoke(self._on_event, event)

        if terminal:
            logger.info(
                "Session %s reached terminal status %s via polling",
                self._session_id, event.status.value,
            )
            self._token.cancel()
        return terminal

    async def _emit_timeout(self, reason: str) -> None:
        if self._token.cancelled:
            return
        logger.info("Polling for session %s timed out: %s", self._session_id, reason)
        self._token.cancel()
        self._last_status = VerificationStatus.TIMEOUT
        await invoke(self._on_event, StatusEvent.timed_out())

    async def _fail(self, error: AuthboundError) -> None:
        logger.warning(
            "Polling for session %s stopped on non-retryable error %s",
            self._session_id, error.code,
        )
        self._token.cancel()
        self._last_status = VerificationStatus.ERROR
        await invoke(self._on_error, error)
        await invoke(self._on_event, StatusEvent.failed_with(error.code, error.message))
