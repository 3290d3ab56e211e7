# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""FastAPI router that receives gateway webhooks.

The handler reads the request body once as raw bytes and verifies those
exact bytes. The body is parsed into a :class:`WebhookEvent` only after
the signature has been accepted, so nothing untrusted reaches the
caller's handlers.

Responses:

* ``401 {"error": ...}``: signature header missing or verification failed.
* ``400 {"error": "Invalid webhook event"}``: verified body is not an event.
* ``500 {"error": "Webhook processing failed"}``: a handler raised.
* ``503 {"error": "Webhook secret not configured"}``: no secret and
  ``require_secret`` is set.
* ``200 {"received": true}``: otherwise.
"""

from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from authbound.config import (
    WEBHOOK_PATH,
    WEBHOOK_SECRET,
    WEBHOOK_SIGNATURE_HEADER,
    WEBHOOK_TOLERANCE_SECONDS,
)
from authbound.webhooks.events import WebhookEvent, WebhookEventType
from authbound.webhooks.signature import verify_webhook_signature

logger = logging.getLogger("authbound.webhooks")

WebhookHandler = Callable[[WebhookEvent], Union[None, Awaitable[None]]]


async def _call(handler: Optional[WebhookHandler], event: WebhookEvent) -> None:
    if handler is None:
        return
    result = handler(event)
    if inspect.isawaitable(result):
        await result


def create_webhook_router(
    secret: str = WEBHOOK_SECRET,
    *,
    on_event: Optional[WebhookHandler] = None,
    on_verified: Optional[WebhookHandler] = None,
    on_failed: Optional[WebhookHandler] = None,
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
    header_name: str = WEBHOOK_SIGNATURE_HEADER,
    path: str = WEBHOOK_PATH,
    require_secret: bool = False,
) -> APIRouter:
    """Build a router exposing ``POST {path}``.

    Parameters
    ----------
    secret : str
        Webhook signing secret. When empty, signatures are not checked and
        every request logs a warning.
    on_event : callable, optional
        Called for every verified event (sync or async).
    on_verified, on_failed : callable, optional
        Called after ``on_event`` for the ``verified`` and ``failed``
        event types respectively.
    tolerance : int
        Accepted clock skew in seconds, in either direction.
    header_name : str
        Request header carrying the signature.
    path : str
        Route path.
    require_secret : bool
        When set and *secret* is empty, every request is refused with 503
        instead of being accepted unsigned.
    """
    router = APIRouter(tags=["webhooks"])

    @router.post(
        path,
        summary="Receive a gateway webhook",
        description=(
            "Verifies the HMAC signature and timestamp of a gateway "
            "callback against the raw request body, then dispatches the "
            "parsed event."
        ),
    )
    async def receive_webhook(request: Request) -> JSONResponse:
        raw_body = await request.body()

        if secret:
            signature = request.headers.get(header_name)
            if not signature:
                logger.warning("Webhook rejected: missing %s header", header_name)
                return JSONResponse({"error": "Missing signature"}, status_code=401)

            verification = verify_webhook_signature(raw_body, signature, secret, tolerance)
            if not verification.valid:
                logger.warning(
                    "Webhook rejected: code=%s reason=%s",
                    verification.code, verification.error,
                )
                return JSONResponse(
                    {"error": verification.error or "Invalid signature"},
                    status_code=401,
                )
        elif require_secret:
            logger.error("Webhook refused: no webhook secret configured")
            return JSONResponse(
                {"error": "Webhook secret not configured"}, status_code=503
            )
        else:
            logger.warning(
                "No webhook secret configured; accepting unsigned webhook. "
                "Set AUTHBOUND_WEBHOOK_SECRET to enable signature verification."
            )

        try:
            event = WebhookEvent.model_validate_json(raw_body)
        except ValidationError as exc:
            logger.warning(
                "Webhook body failed validation (%d error(s))", exc.error_count()
            )
            return JSONResponse({"error": "Invalid webhook event"}, status_code=400)

        logger.info(
            "Webhook received: id=%s type=%s session=%s",
            event.id, event.type.value, event.session_id,
        )

        try:
            await _call(on_event, event)
            if event.type is WebhookEventType.VERIFIED:
                await _call(on_verified, event)
            elif event.type is WebhookEventType.FAILED:
                await _call(on_failed, event)
        except Exception:
            logger.exception("Webhook handler failed for event %s", event.id)
            return JSONResponse(
                {"error": "Webhook processing failed"}, status_code=500
            )

        return JSONResponse({"received": True}, status_code=200)

    return router
