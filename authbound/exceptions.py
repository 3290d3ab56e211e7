# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Authbound error codes, metadata and exception types.

Error codes are stable and safe to branch on. Messages are human-readable
and never carry client tokens, webhook secrets or computed digests.
"""

from __future__ import annotations

import time
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Optional

if TYPE_CHECKING:
    import httpx

DOCS_BASE_URL = "https://docs.authbound.io"


# =============================================================================
# Error catalogue
# =============================================================================

ERROR_METADATA: Dict[str, Dict[str, str]] = {
    # Configuration
    "config_invalid": {
        "message": "SDK configuration is invalid.",
        "hint": "Check the gateway URL and API key configuration.",
        "docs_path": "/errors/config-invalid",
    },
    "policy_invalid": {
        "message": "Verification policy configuration is invalid.",
        "hint": "Review policy requirements. Each credential must have valid attributes.",
        "docs_path": "/policies/configuration",
    },
    # Session
    "session_not_found": {
        "message": "Verification session not found.",
        "hint": "The session may have expired or been deleted. Create a new session.",
        "docs_path": "/errors/session-not-found",
    },
    "session_expired": {
        "message": "Verification session has expired.",
        "hint": "Sessions expire after 5 minutes. Create a new session.",
        "docs_path": "/errors/session-expired",
    },
    # Wallet
    "wallet_timeout": {
        "message": "Wallet did not respond in time.",
        "hint": "The user may not have the wallet app installed.",
        "docs_path": "/errors/wallet-timeout",
    },
    # Token
    "token_invalid": {
        "message": "Authentication token is invalid.",
        "hint": "Ensure you are using the client token issued with the session.",
        "docs_path": "/errors/token-invalid",
    },
    "token_signature_invalid": {
        "message": "Token signature verification failed.",
        "hint": "The token was signed with a different key. Check your secret key configuration.",
        "docs_path": "/errors/token-signature-invalid",
    },
    # Network
    "network_error": {
        "message": "Network error. Please check your connection.",
        "hint": "Verify connectivity to the Authbound gateway.",
        "docs_path": "/errors/network-error",
    },
    "gateway_unavailable": {
        "message": "Authbound service is temporarily unavailable.",
        "hint": "The request can be retried.",
        "docs_path": "/errors/gateway-unavailable",
    },
    "rate_limited": {
        "message": "Too many requests. Please wait and try again.",
        "hint": "Back off and honour the Retry-After header.",
        "docs_path": "/errors/rate-limited",
    },
    # Payloads
    "parse_error": {
        "message": "Received a malformed payload.",
        "docs_path": "/errors/parse-error",
    },
    # Webhooks
    "signature_header_invalid": {
        "message": "Webhook signature header is malformed.",
        "hint": "Expected 't=<unix seconds>,v1=<hex hmac>'.",
        "docs_path": "/webhooks/signatures",
    },
    "signature_invalid": {
        "message": "Webhook signature verification failed.",
        "hint": "Check that the webhook secret matches the one configured in the dashboard.",
        "docs_path": "/webhooks/signatures",
    },
    "timestamp_out_of_tolerance": {
        "message": "Webhook timestamp is outside the tolerance window.",
        "hint": "Check the server clock and the configured tolerance.",
        "docs_path": "/webhooks/signatures",
    },
    # Internal
    "internal_error": {
        "message": "An unexpected error occurred.",
        "docs_path": "/errors/internal-error",
    },
    "unknown_error": {
        "message": "An unknown error occurred.",
        "docs_path": "/errors/unknown",
    },
}

RETRYABLE_CODES: FrozenSet[str] = frozenset({
    "network_error",
    "gateway_unavailable",
    "rate_limited",
    "internal_error",
    "wallet_timeout",
})

_HTTP_STATUS_CODES: Dict[int, str] = {
    400: "config_invalid",
    401: "token_invalid",
    403: "token_signature_invalid",
    404: "session_not_found",
    408: "wallet_timeout",
    410: "session_expired",
    422: "policy_invalid",
    429: "rate_limited",
    502: "gateway_unavailable",
    503: "gateway_unavailable",
    504: "gateway_unavailable",
}


def map_http_status(status: int, api_code: Optional[str] = None) -> str:
    """Map an HTTP status (and optional gateway-supplied code) to an error code."""
    if api_code and api_code in ERROR_METADATA:
        return api_code
    if status in _HTTP_STATUS_CODES:
        return _HTTP_STATUS_CODES[status]
    return "internal_error" if status >= 500 else "unknown_error"


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header into seconds.

    Accepts delta-seconds or an HTTP date. Returns ``None`` when absent,
    unparseable or already in the past.
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    delay = when.timestamp() - time.time()
    return delay if delay > 0 else None


# =============================================================================
# Exceptions
# =============================================================================


class AuthboundError(Exception):
    """Base exception for all status-client and webhook errors."""

    def __init__(
        self,
        code: str,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
        retry_after: Optional[float] = None,
        hint: Optional[str] = None,
    ):
        metadata = ERROR_METADATA.get(code, ERROR_METADATA["unknown_error"])
        self.code = code
        self.message = message or metadata["message"]
        self.status_code = status_code
        self.details = details
        self.retryable = code in RETRYABLE_CODES if retryable is None else retryable
        self.retry_after = retry_after
        self.hint = hint or metadata.get("hint")
        docs_path = metadata.get("docs_path")
        self.docs_url = f"{DOCS_BASE_URL}{docs_path}" if docs_path else None
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
            "retryable": self.retryable,
            "retry_after": self.retry_after,
            "hint": self.hint,
            "docs_url": self.docs_url,
        }

    @classmethod
    def network(cls, reason: str, **details: Any) -> "AuthboundError":
        return cls("network_error", reason, details=details or None)

    @classmethod
    def buffer_overflow(cls, size: int, limit: int) -> "AuthboundError":
        return cls(
            "network_error",
            "Event stream buffer overflow: server sent too much data without event delimiters",
            details={"buffered": size, "limit": limit},
        )

    @classmethod
    def stream_ended(cls) -> "AuthboundError":
        return cls("network_error", "Event stream ended before a terminal status was received")

    @classmethod
    def reconnect_exhausted(cls, attempts: int) -> "AuthboundError":
        return cls(
            "network_error",
            "Event stream connection failed after maximum reconnection attempts",
            details={"attempts": attempts},
            retryable=False,
        )

    @classmethod
    def parse(cls, reason: str) -> "AuthboundError":
        return cls("parse_error", f"Malformed payload: {reason}", retryable=False)

    @classmethod
    def from_response(
        cls,
        response: "httpx.Response",
        body: Optional[Dict[str, Any]] = None,
    ) -> "AuthboundError":
        """Build an error from a non-success gateway response."""
        body = body or {}
        api_code = body.get("code") if isinstance(body.get("code"), str) else None
        message = body.get("message") if isinstance(body.get("message"), str) else None
        details = body.get("details") if isinstance(body.get("details"), dict) else None
        return cls(
            map_http_status(response.status_code, api_code),
            message,
            status_code=response.status_code,
            details=details,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )

    @classmethod
    def from_exception(cls, exc: BaseException) -> "AuthboundError":
        """Wrap an arbitrary exception, passing ``AuthboundError`` through."""
        if isinstance(exc, AuthboundError):
            return exc
        # ConnectionError and TimeoutError are both OSError subclasses.
        if isinstance(exc, OSError):
            error = cls("network_error", str(exc) or type(exc).__name__)
        else:
            error = cls("unknown_error", str(exc) or type(exc).__name__)
        error.__cause__ = exc
        return error


class WebhookSignatureError(AuthboundError):
    """Webhook signature or timestamp verification failure."""

    def __init__(self, code: str = "signature_invalid", message: Optional[str] = None):
        super().__init__(code, message, retryable=False)
