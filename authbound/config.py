# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Authbound status client configuration.

Protocol constants are fixed. Configurable defaults may be overridden via
environment variables.
"""

import os

# =============================================================================
# PROTOCOL CONSTANTS (fixed)
# =============================================================================

# Ceiling for un-delimited event-stream data held in memory.
SSE_MAX_BUFFER_BYTES: int = 64 * 1024

SSE_RECONNECT_BASE_DELAY: float = 1.0
SSE_RECONNECT_MAX_DELAY: float = 30.0
SSE_RECONNECT_JITTER: float = 1.0

# Upper bound for any single poll request.
POLL_REQUEST_TIMEOUT_CAP: float = 30.0

# Signatures longer than this are ignored when parsing signature headers.
WEBHOOK_MAX_SIGNATURE_LENGTH: int = 256

CLIENT_IDENTIFIER: str = "authbound-python"

# =============================================================================
# GATEWAY
# =============================================================================

GATEWAY_URL: str = os.getenv("AUTHBOUND_GATEWAY_URL", "https://api.authbound.io").rstrip("/")
REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("AUTHBOUND_REQUEST_TIMEOUT", "30.0"))

# =============================================================================
# PUSH CHANNEL
# =============================================================================

SSE_MAX_RECONNECT_ATTEMPTS: int = int(os.getenv("AUTHBOUND_SSE_MAX_RECONNECT_ATTEMPTS", "5"))

# =============================================================================
# POLLING FALLBACK
# =============================================================================

POLL_INITIAL_INTERVAL: float = float(os.getenv("AUTHBOUND_POLL_INITIAL_INTERVAL", "1.0"))
POLL_MAX_INTERVAL: float = float(os.getenv("AUTHBOUND_POLL_MAX_INTERVAL", "30.0"))
POLL_BACKOFF_MULTIPLIER: float = float(os.getenv("AUTHBOUND_POLL_BACKOFF_MULTIPLIER", "2.0"))
POLL_MAX_DURATION: float = float(os.getenv("AUTHBOUND_POLL_MAX_DURATION", "300.0"))

# =============================================================================
# WEBHOOKS
# =============================================================================

WEBHOOK_SECRET: str = os.getenv("AUTHBOUND_WEBHOOK_SECRET", "")
WEBHOOK_TOLERANCE_SECONDS: int = int(os.getenv("AUTHBOUND_WEBHOOK_TOLERANCE", "300"))
WEBHOOK_SIGNATURE_HEADER: str = os.getenv("AUTHBOUND_WEBHOOK_SIGNATURE_HEADER", "X-Signature")
WEBHOOK_PATH: str = os.getenv("AUTHBOUND_WEBHOOK_PATH", "/webhooks/authbound")

# =============================================================================
# SERVICE
# =============================================================================

HTTP_HOST: str = os.getenv("AUTHBOUND_HTTP_HOST", "0.0.0.0")
HTTP_PORT: int = int(os.getenv("AUTHBOUND_HTTP_PORT", "8000"))
LOG_LEVEL: str = os.getenv("AUTHBOUND_LOG_LEVEL", "INFO")
