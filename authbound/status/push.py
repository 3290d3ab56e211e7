# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Push subscriber: real-time status over a server-sent event stream.

Opens one authenticated streaming request per connection attempt, feeds
the body through the bounded :class:`~authbound.status.sse.EventStreamParser`
and hands each decoded :class:`~authbound.models.StatusEvent` to the
caller. A terminal status stops the subscriber and releases the
connection.

Reconnection policy
-------------------
A stream error (connection failure, read failure, buffer overflow, or a
stream that ends without a terminal status) schedules a reconnect after::

    min(1s * 2 ** (attempt - 1), 30s) + uniform(0, 1s)

The random jitter spreads out reconnects from many clients after a shared
outage. The attempt counter resets whenever an event is delivered. Once
``max_reconnect_attempts`` is exhausted, or the error is not retryable
(e.g. ``token_invalid``), the error is handed to ``on_error`` and the
subscriber stops.

Cancellation
------------
:meth:`PushSubscriber.stop` cancels the subscriber's
:class:`~authbound.status.cancellation.CancellationToken`, which cancels
the running task: an in-flight read or a pending reconnect delay is
aborted on the next loop turn, and the token is checked before every
callback so nothing is delivered afterwards.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable, Optional

from authbound.config import (
    SSE_MAX_RECONNECT_ATTEMPTS,
    SSE_RECONNECT_BASE_DELAY,
    SSE_RECONNECT_JITTER,
    SSE_RECONNECT_MAX_DELAY,
)
from authbound.exceptions import AuthboundError
from authbound.status.cancellation import CancellationToken
from authbound.status.clock import Clock, SystemClock
from authbound.status.handlers import ErrorHandler, EventHandler, invoke
from authbound.status.lifecycle import is_terminal
from authbound.status.sse import MAX_BUFFER_SIZE, EventStreamParser, decode_status_event
from authbound.status.transport import StatusTransport

logger = logging.getLogger("authbound.status.push")

__all__ = ["PushSubscriber", "reconnect_delay"]


def reconnect_delay(attempt: int, jitter: float = 0.0) -> float:
    """Backoff before reconnect *attempt* (1-based), plus *jitter* seconds."""
    base = min(SSE_RECONNECT_BASE_DELAY * 2 ** (attempt - 1), SSE_RECONNECT_MAX_DELAY)
    return base + jitter


class PushSubscriber:
    """Long-lived event-stream subscription for one session."""

    def __init__(
        self,
        transport: StatusTransport,
        session_id: str,
        client_token: str,
        on_event: EventHandler,
        on_error: Optional[ErrorHandler] = None,
        *,
        auto_reconnect: bool = True,
        max_reconnect_attempts: int = SSE_MAX_RECONNECT_ATTEMPTS,
        clock: Optional[Clock] = None,
        random_source: Callable[[], float] = random.random,
        max_buffer_size: int = MAX_BUFFER_SIZE,
    ) -> None:
        self._transport = transport
        self._session_id = session_id
        self._client_token = client_token
        self._on_event = on_event
        self._on_error = on_error
        self._auto_reconnect = auto_reconnect
        self._max_reconnect_attempts = max_reconnect_attempts
        self._clock = clock or SystemClock()
        self._random = random_source
        self._max_buffer_size = max_buffer_size

        self._token = CancellationToken(f"push:{session_id}")
        self._task: Optional[asyncio.Task] = None
        self._attempts = 0
        self.connections = 0

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
    def reconnect_attempts(self) -> int:
        return self._attempts

    def start(self) -> asyncio.Task:
        """Start the subscription task. Idempotent."""
        if self._task is None:
            self._task = asyncio.create_task(
                self.run(), name=f"authbound-push-{self._session_id}"
            )
            self._token.bind(self._task)
        return self._task

    def stop(self) -> None:
        """Stop the subscription. Idempotent; safe to call from a handler."""
        if not self._token.cancelled:
            logger.debug("Stopping event stream for session %s", self._session_id)
        self._token.cancel()

    async def wait(self) -> None:
        """Wait until the subscription task has finished."""
        if self._task is not None:
            await asyncio.wait({self._task})

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Connect, and reconnect per policy, until terminal, failed or stopped."""
        while not self._token.cancelled:
            error = await self._connect_once()
            if error is None or self._token.cancelled:
                return

            if (
                self._auto_reconnect
                and error.retryable
                and self._attempts >= self._max_reconnect_attempts
            ):
                exhausted = AuthboundError.reconnect_exhausted(self._attempts)
                exhausted.__cause__ = error
                error = exhausted

            if (
                not self._auto_reconnect
                or not error.retryable
                or self._attempts >= self._max_reconnect_attempts
            ):
                logger.warning(
                    "Event stream for session %s failed after %d reconnect attempt(s): %s",
                    self._session_id, self._attempts, error.code,
                )
                self._token.cancel()
                await invoke(self._on_error, error)
                return

            self._attempts += 1
            delay = reconnect_delay(
                self._attempts, self._random() * SSE_RECONNECT_JITTER
            )
            logger.info(
                "Event stream for session %s lost (%s); reconnecting in %.2fs (attempt %d/%d)",
                self._session_id, error.message, delay,
                self._attempts, self._max_reconnect_attempts,
            )
            await self._clock.sleep(delay)

    async def _connect_once(self) -> Optional[AuthboundError]:
        """Run one connection. Returns ``None`` when done, else the stream error."""
        self.connections += 1
        parser = EventStreamParser(self._max_buffer_size)
        try:
            async with self._transport.open_stream(
                self._session_id, self._client_token
            ) as chunks:
                logger.debug("Event stream open for session %s", self._session_id)
                async for chunk in chunks:
                    if self._token.cancelled:
                        return None
                    for sse in parser.feed(chunk):
                        if self._token.cancelled:
                            return None
                        event = decode_status_event(sse)
                        if event is None:
                            continue

                        self._attempts = 0
                        await invoke(self._on_event, event)

                        if is_terminal(event.status):
                            logger.info(
                                "Session %s reached terminal status %s",
                                self._session_id, event.status.value,
                            )
                            self._token.cancel()
                            return None
        except AuthboundError as exc:
            return exc
        except Exception as exc:
            # Injected transports may raise plain I/O errors.
            return AuthboundError.from_exception(exc)

        if self._token.cancelled:
            return None
        return AuthboundError.stream_ended()
