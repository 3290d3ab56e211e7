# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Subscription orchestrator: push first, polling on failure.

:class:`StatusSubscription` owns exactly one active subscriber at a time.
It starts a :class:`~authbound.status.push.PushSubscriber`; when the push
channel gives up and fallback is enabled, it hands over to a
:class:`~authbound.status.polling.PollingSubscriber` in three ordered
steps:

1. stop the push subscriber and drop the reference,
2. re-check the subscription's own cancellation token,
3. start the polling subscriber.

Stopping before starting keeps a single live network subscription.
Re-checking after the teardown keeps a caller's concurrent :meth:`stop`
from being followed by a poller nobody will clean up.

With fallback disabled the push error is forwarded to ``on_error``.

Events from either channel pass through one gate that makes the observed
status monotonic: after a terminal status nothing else is delivered.
"""

from __future__ import annotations

import logging
import random
from typing import Callable, Optional, Union

from authbound.config import SSE_MAX_RECONNECT_ATTEMPTS
from authbound.exceptions import AuthboundError
from authbound.models import StatusEvent, VerificationStatus
from authbound.status.cancellation import CancellationToken
from authbound.status.clock import Clock, SystemClock
from authbound.status.handlers import ErrorHandler, EventHandler, invoke
from authbound.status.lifecycle import advance, is_terminal
from authbound.status.polling import DEFAULT_POLLING_CONFIG, PollingConfig, PollingSubscriber
from authbound.status.push import PushSubscriber
from authbound.status.transport import StatusTransport

logger = logging.getLogger("authbound.status.subscription")

__all__ = ["StatusSubscription"]

Subscriber = Union[PushSubscriber, PollingSubscriber]


class StatusSubscription:
    """Single-session status subscription with push-to-poll failover.

    Parameters
    ----------
    transport : StatusTransport
        Network boundary shared by both channels.
    session_id, client_token : str
        Opaque session identity supplied by session creation.
    on_event : callable
        Receives every delivered :class:`StatusEvent` (sync or async).
    on_error : callable, optional
        Receives terminal :class:`AuthboundError` failures.
    fallback_to_polling : bool
        Fail over to polling when the push channel gives up. Default ``True``.
    """

    def __init__(
        self,
        transport: StatusTransport,
        session_id: str,
        client_token: str,
        on_event: EventHandler,
        on_error: Optional[ErrorHandler] = None,
        *,
        fallback_to_polling: bool = True,
        polling_config: PollingConfig = DEFAULT_POLLING_CONFIG,
        max_reconnect_attempts: int = SSE_MAX_RECONNECT_ATTEMPTS,
        clock: Optional[Clock] = None,
        random_source: Callable[[], float] = random.random,
    ) -> None:
        self._transport = transport
        self._session_id = session_id
        self._client_token = client_token
        self._on_event = on_event
        self._on_error = on_error
        self._fallback_to_polling = fallback_to_polling
        self._polling_config = polling_config
        self._max_reconnect_attempts = max_reconnect_attempts
        self._clock = clock or SystemClock()
        self._random = random_source

        self._token = CancellationToken(f"subscription:{session_id}")
        self._token.on_cancel(self._stop_active)
        self._active: Optional[Subscriber] = None
        self._started = False
        self._status = VerificationStatus.IDLE

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def status(self) -> VerificationStatus:
        """Latest status delivered to the caller."""
        return self._status

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    @property
    def active_subscriber(self) -> Optional[Subscriber]:
        return self._active

    @property
    def channel(self) -> Optional[str]:
        """``"push"``, ``"poll"`` or ``None`` for the current subscriber."""
        if isinstance(self._active, PushSubscriber):
            return "push"
        if isinstance(self._active, PollingSubscriber):
            return "poll"
        return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> "StatusSubscription":
        """Open the push channel. Idempotent."""
        if self._started or self._token.cancelled:
            return self
        self._started = True
        logger.info("Subscribing to status for session %s", self._session_id)

        push = PushSubscriber(
            self._transport,
            self._session_id,
            self._client_token,
            self._handle_event,
            self._handle_push_error,
            max_reconnect_attempts=self._max_reconnect_attempts,
            clock=self._clock,
            random_source=self._random,
        )
        self._active = push
        push.start()
        return self

    def stop(self) -> None:
        """Stop whichever subscriber is active. Idempotent."""
        self._token.cancel()

    async def wait(self) -> None:
        """Wait for the subscription to finish, following any handover."""
        while True:
            active = self._active
            if active is None:
                return
            await active.wait()
            if self._active is active:
                return

    async def __aenter__(self) -> "StatusSubscription":
        return self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _stop_active(self) -> None:
        if self._active is not None:
            self._active.stop()
            logger.debug(
                "Stopped %s subscriber for session %s", self.channel, self._session_id
            )

    async def _handle_event(self, event: StatusEvent) -> None:
        if self._token.cancelled or is_terminal(self._status):
            return
        self._status = advance(self._status, event.status)
        logger.debug(
            "Status event for session %s: %s/%s",
            self._session_id, event.kind, event.status.value,
        )
        await invoke(self._on_event, event)
        if is_terminal(self._status):
            self.stop()

    async def _handle_push_error(self, error: AuthboundError) -> None:
        if self._token.cancelled:
            return

        if not self._fallback_to_polling:
            logger.warning(
                "Push channel for session %s failed: %s", self._session_id, error.code
            )
            self.stop()
            await invoke(self._on_error, error)
            return

        logger.info(
            "Push channel for session %s failed (%s); falling back to polling",
            self._session_id, error.code,
        )

        # Tear down the push subscriber before anything else is started.
        if self._active is not None:
            self._active.stop()
            self._active = None

        # stop() may have been called during the teardown.
        if self._token.cancelled:
            return

        poller = PollingSubscriber(
            self._transport,
            self._session_id,
            self._client_token,
            self._handle_event,
            self._handle_poll_error,
            config=self._polling_config,
            clock=self._clock,
        )
        self._active = poller
        poller.start()

    async def _handle_poll_error(self, error: AuthboundError) -> None:
        if self._token.cancelled:
            return
        logger.warning(
            "Polling for session %s failed: %s", self._session_id, error.code
        )
        await invoke(self._on_error, error)
