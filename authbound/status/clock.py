# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Injectable time source for backoff and deadline logic."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Protocol, TypeVar

T = TypeVar("T")

__all__ = ["Clock", "SystemClock"]


class Clock(Protocol):
    """Monotonic clock plus the two suspension primitives the subscribers use."""

    def now(self) -> float:
        """Monotonic time in seconds."""
        ...

    async def sleep(self, delay: float) -> None:
        ...

    async def wait_for(self, awaitable: Awaitable[T], timeout: float) -> T:
        """Await *awaitable*, raising ``asyncio.TimeoutError`` after *timeout* seconds."""
        ...


class SystemClock:
    """Clock backed by the running event loop."""

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(max(delay, 0.0))

    async def wait_for(self, awaitable: Awaitable[T], timeout: float) -> T:
        return await asyncio.wait_for(awaitable, timeout=max(timeout, 0.0))
