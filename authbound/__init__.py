# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Authbound session-status client and webhook verifier.

Observes a remote verification session through a push stream with a
polling fallback, and authenticates the gateway's signed webhook
callbacks for the same session.
"""

from authbound.client import AuthboundClient, get_client, reset_client
from authbound.exceptions import AuthboundError, WebhookSignatureError
from authbound.models import StatusEvent, VerificationResult, VerificationStatus
from authbound.status.lifecycle import TERMINAL_STATUSES, is_terminal
from authbound.status.subscription import StatusSubscription
from authbound.webhooks.signature import (
    construct_event,
    generate_signature_header,
    verify_signature,
    verify_webhook_signature,
)

__version__ = "0.1.0"

__all__ = [
    "AuthboundClient",
    "AuthboundError",
    "StatusEvent",
    "StatusSubscription",
    "TERMINAL_STATUSES",
    "VerificationResult",
    "VerificationStatus",
    "WebhookSignatureError",
    "construct_event",
    "generate_signature_header",
    "get_client",
    "is_terminal",
    "reset_client",
    "verify_signature",
    "verify_webhook_signature",
]
