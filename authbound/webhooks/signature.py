# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Webhook signature and replay verification.

The gateway signs every webhook callback with HMAC-SHA256 and sends the
result in a signature header::

    X-Signature: t=1718452800,v1=5257a869...[,v1=<rotated key signature>]

The signed material is ``"{t}.{raw body}"``. Verification accepts a
callback when both of the following hold:

* ``|now - t| <= tolerance``. Timestamps too far in the past are replays;
  timestamps too far in the future are rejected as well, so a payload
  pre-signed for later use never becomes valid.
* At least one ``v1`` value equals the expected digest under a
  constant-time comparison. Several ``v1`` values are allowed during
  secret rotation.

Failures are reported with distinct, descriptive messages. No message ever
contains the secret or the computed digest.

The payload must be the exact bytes received. Re-serialising parsed JSON
before verification changes the bytes and breaks the signature.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Union

from pydantic import ValidationError

from authbound.config import WEBHOOK_MAX_SIGNATURE_LENGTH, WEBHOOK_TOLERANCE_SECONDS
from authbound.exceptions import AuthboundError, WebhookSignatureError
from authbound.webhooks.events import WebhookEvent

logger = logging.getLogger("authbound.webhooks.signature")

__all__ = [
    "SignatureHeader",
    "WebhookVerification",
    "construct_event",
    "generate_signature_header",
    "parse_signature_header",
    "sign_payload",
    "verify_signature",
    "verify_webhook_signature",
]

Payload = Union[str, bytes]


# =============================================================================
# Header parsing
# =============================================================================


@dataclass(frozen=True)
class SignatureHeader:
    """Parsed signature header."""

    timestamp: int
    signatures: List[str]


def _is_unsigned_integer(value: str) -> bool:
    return value.isascii() and value.isdigit()


def parse_signature_header(header: str) -> SignatureHeader:
    """Parse ``t=<unix seconds>,v1=<hex>[,v1=<hex>...]``.

    Whitespace around keys and values is tolerated and unknown keys are
    ignored. ``v1`` values longer than 256 characters are dropped.

    Raises:
        WebhookSignatureError: ``signature_header_invalid`` when the
            timestamp or every signature is missing, when the timestamp
            is not a non-negative integer, or when more than one
            timestamp is present.
    """
    timestamp: Optional[int] = None
    signatures: List[str] = []

    for part in header.split(","):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        if not key or not value:
            continue

        if key == "t":
            if timestamp is not None:
                raise WebhookSignatureError(
                    "signature_header_invalid",
                    "Multiple timestamps in signature header",
                )
            if not _is_unsigned_integer(value):
                raise WebhookSignatureError(
                    "signature_header_invalid",
                    "Invalid timestamp format in signature header",
                )
            timestamp = int(value)
        elif key == "v1":
            if len(value) > WEBHOOK_MAX_SIGNATURE_LENGTH:
                logger.debug("Ignoring oversized v1 signature (%d chars)", len(value))
                continue
            signatures.append(value)

    if timestamp is None:
        raise WebhookSignatureError(
            "signature_header_invalid", "Missing timestamp in signature header"
        )
    if not signatures:
        raise WebhookSignatureError(
            "signature_header_invalid", "Missing v1 signature in signature header"
        )
    return SignatureHeader(timestamp=timestamp, signatures=signatures)


# =============================================================================
# Signing
# =============================================================================


def _as_bytes(payload: Payload) -> bytes:
    return payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)


def _digest(secret: str, timestamp: int, payload: Payload) -> bytes:
    signed = f"{timestamp}.".encode("ascii") + _as_bytes(payload)
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).digest()


def sign_payload(secret: str, timestamp: int, payload: Payload) -> str:
    """Hex HMAC-SHA256 of ``"{timestamp}.{payload}"``."""
    return _digest(secret, timestamp, payload).hex()


def generate_signature_header(
    secret: str,
    payload: Payload,
    timestamp: Optional[int] = None,
) -> str:
    """Build a complete signature header, for tests and local tooling."""
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},v1={sign_payload(secret, ts, payload)}"


# =============================================================================
# Verification
# =============================================================================


@dataclass(frozen=True)
class WebhookVerification:
    """Outcome of :func:`verify_webhook_signature`.

    ``error`` is a human-readable reason and ``code`` the matching error
    code; both are ``None`` when ``valid`` is true.
    """

    valid: bool
    error: Optional[str] = None
    code: Optional[str] = None
    timestamp: Optional[int] = None

    def __bool__(self) -> bool:
        return self.valid


def _reject(code: str, error: str, timestamp: Optional[int] = None) -> WebhookVerification:
    return WebhookVerification(valid=False, error=error, code=code, timestamp=timestamp)


def verify_webhook_signature(
    payload: Payload,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> WebhookVerification:
    """Verify a webhook's signature header against its raw payload.

    Pure apart from reading the wall clock when *now* is not given, so
    repeated calls with the same arguments and *now* agree.
    """
    if not signature_header:
        return _reject("signature_header_invalid", "Missing signature header")
    if not secret:
        return _reject("config_invalid", "Missing webhook secret")

    try:
        header = parse_signature_header(signature_header)
    except WebhookSignatureError as exc:
        return _reject(exc.code, exc.message)

    current = time.time() if now is None else now
    ts = header.timestamp
    age = current - ts
    if age > tolerance:
        return _reject(
            "timestamp_out_of_tolerance",
            f"Webhook timestamp too old: {age:g}s exceeds {tolerance}s tolerance",
            ts,
        )
    if -age > tolerance:
        return _reject(
            "timestamp_out_of_tolerance",
            f"Webhook timestamp too far in the future: {-age:g}s exceeds "
            f"{tolerance}s tolerance",
            ts,
        )

    expected = _digest(secret, ts, payload)
    for candidate in header.signatures:
        try:
            provided = bytes.fromhex(candidate)
        except ValueError:
            continue
        if hmac.compare_digest(provided, expected):
            return WebhookVerification(valid=True, timestamp=ts)

    return _reject("signature_invalid", "Signature mismatch", ts)


def verify_signature(
    secret: str,
    payload: Payload,
    signature_header: str,
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
) -> bool:
    """Boolean form of :func:`verify_webhook_signature`."""
    return verify_webhook_signature(payload, signature_header, secret, tolerance).valid


def construct_event(
    payload: Payload,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> WebhookEvent:
    """Verify *payload* and parse it into a :class:`WebhookEvent`.

    Raises:
        WebhookSignatureError: The signature or timestamp is invalid.
        AuthboundError: ``parse_error`` when the verified body is not a
            valid webhook event.
    """
    result = verify_webhook_signature(payload, signature_header, secret, tolerance, now)
    if not result.valid:
        raise WebhookSignatureError(result.code or "signature_invalid", result.error)

    try:
        return WebhookEvent.model_validate_json(_as_bytes(payload))
    except ValidationError as exc:
        raise AuthboundError.parse(
            f"webhook event failed validation ({exc.error_count()} error(s))"
        ) from exc
