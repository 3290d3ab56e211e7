# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Caller callback types for status subscriptions.

Handlers may be plain functions or coroutine functions.
"""

import inspect
import logging
from typing import Awaitable, Callable, Optional, TypeVar, Union

from authbound.exceptions import AuthboundError
from authbound.models import StatusEvent

logger = logging.getLogger("authbound.status.handlers")

T = TypeVar("T")

EventHandler = Callable[[StatusEvent], Union[None, Awaitable[None]]]
ErrorHandler = Callable[[AuthboundError], Union[None, Awaitable[None]]]


async def invoke(handler: Optional[Callable[[T], object]], arg: T) -> None:
    """Call *handler* with *arg*, awaiting the result if it is awaitable.

    A failing caller handler is logged and does not tear down the
    subscription that invoked it.
    """
    if handler is None:
        return
    try:
        result = handler(arg)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Status subscription handler %r raised", handler)
