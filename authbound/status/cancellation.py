# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Explicit cancellation token for status subscriptions.

Every asynchronous continuation (stream chunk, timer fire, request
completion) checks :attr:`CancellationToken.cancelled` before invoking a
caller callback. Cancelling also cancels the asyncio tasks bound to the
token, which aborts in-flight reads and pending sleeps on the next loop
turn.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Set

logger = logging.getLogger("authbound.status.cancellation")

__all__ = ["CancellationToken"]


class CancellationToken:
    """Idempotent, one-way cancellation flag with task and callback hooks."""

    def __init__(self, name: str = "subscription") -> None:
        self._name = name
        self._cancelled = False
        self._tasks: Set[asyncio.Task] = set()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def bind(self, task: asyncio.Task) -> None:
        """Cancel *task* when this token is cancelled."""
        if self._cancelled:
            task.cancel()
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run *callback* once on cancellation (immediately if already cancelled)."""
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True

        current: Optional[asyncio.Task]
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        # A task stopping itself unwinds normally instead of being cancelled.
        for task in list(self._tasks):
            if task is not current and not task.done():
                task.cancel()
        self._tasks.clear()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed for %s", self._name)

        logger.debug("Cancelled %s", self._name)
