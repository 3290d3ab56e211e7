# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""FastAPI application receiving gateway webhooks.

**HTTP Endpoints**

* ``POST /webhooks/authbound``: verify the signature of a gateway
  callback against the raw request body and dispatch the event. The
  path and signature header are configurable.

* ``GET /healthz``: lightweight health check for liveness and readiness
  probes.

**Logging**

Structured JSON logging is configured at startup using the ``LOG_LEVEL``
setting.

Architecture
------------
The lifespan context manager configures logging on startup and closes
the shared HTTP client used by status subscriptions on shutdown.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from authbound import __version__
from authbound.config import (
    GATEWAY_URL,
    HTTP_HOST,
    HTTP_PORT,
    LOG_LEVEL,
    WEBHOOK_PATH,
    WEBHOOK_SECRET,
    WEBHOOK_SIGNATURE_HEADER,
    WEBHOOK_TOLERANCE_SECONDS,
)
from authbound.http_client import close_shared_client
from authbound.webhooks.events import WebhookEvent
from authbound.webhooks.routes import create_webhook_router

logger = logging.getLogger("authbound.main")


# ======================================================================
# Structured JSON logging
# ======================================================================


# Extra attributes copied into the JSON line when a record carries them,
# e.g. ``logger.info("...", extra={"session_id": sid})``.
_CONTEXT_FIELDS = ("session_id", "event_id", "event_type", "code")

# Client tokens travel as bearer credentials and webhook secrets start
# with ``whsec_``; neither may reach a log sink.
_REDACTIONS = (
    (re.compile(r"(?i)(bearer\s+)[^\s\"',]+"), r"\1[redacted]"),
    (re.compile(r"whsec_[A-Za-z0-9_\-]+"), "whsec_[redacted]"),
)


def redact(text: str) -> str:
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


class _JSONFormatter(logging.Formatter):
    """One redacted JSON object per log line.

    Carries ``timestamp``, ``level``, ``logger`` and ``message``, any of
    the session context fields present on the record, and ``exception``
    when the record has one.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = redact(self.formatException(record.exc_info))
        return json.dumps(log_entry, default=str)


def _configure_logging(level: str = LOG_LEVEL) -> None:
    """Send every log line to stdout through :class:`_JSONFormatter`.

    Handlers installed by uvicorn are replaced so lines are not duplicated.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JSONFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ======================================================================
# Application lifespan
# ======================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    _configure_logging()
    logger.info(
        "Authbound webhook receiver starting: HTTP=%s:%d, path=%s, gateway=%s, log_level=%s",
        HTTP_HOST, HTTP_PORT, WEBHOOK_PATH, GATEWAY_URL, LOG_LEVEL,
    )
    if not WEBHOOK_SECRET:
        logger.warning("AUTHBOUND_WEBHOOK_SECRET is not set; webhooks will be refused with 503")

    yield

    logger.info("Authbound webhook receiver shutting down")
    await close_shared_client()
    logger.info("Authbound webhook receiver shutdown complete")


# ======================================================================
# FastAPI application
# ======================================================================

app = FastAPI(
    title="Authbound Webhook Receiver",
    description=(
        "Receives signed verification-session callbacks from the "
        "Authbound gateway and rejects forged or replayed ones."
    ),
    version=__version__,
    lifespan=lifespan,
)


def _log_event(event: WebhookEvent) -> None:
    logger.info(
        "Verification session %s is now %s",
        event.session_id, event.data.session.status,
        extra={
            "session_id": event.session_id,
            "event_id": event.id,
            "event_type": event.type.value,
        },
    )


app.include_router(
    create_webhook_router(
        WEBHOOK_SECRET,
        on_event=_log_event,
        tolerance=WEBHOOK_TOLERANCE_SECONDS,
        header_name=WEBHOOK_SIGNATURE_HEADER,
        path=WEBHOOK_PATH,
        require_secret=True,
    )
)


@app.get(
    "/healthz",
    summary="Health check",
    tags=["health"],
)
async def healthz() -> JSONResponse:
    return JSONResponse(
        content={
            "status": "ok",
            "version": __version__,
            "webhook": {
                "path": WEBHOOK_PATH,
                "signature_header": WEBHOOK_SIGNATURE_HEADER,
                "signing_enabled": bool(WEBHOOK_SECRET),
            },
        },
        status_code=200,
    )


# ======================================================================
# Application runner (for direct invocation)
# ======================================================================


def main() -> None:
    """Run the receiver using uvicorn.

    Development::

        python -m authbound.main

    Production::

        uvicorn authbound.main:app --host 0.0.0.0 --port 8000
    """
    import uvicorn

    _configure_logging()
    logger.info("Starting Authbound webhook receiver: HTTP=%s:%d", HTTP_HOST, HTTP_PORT)

    uvicorn.run(
        "authbound.main:app",
        host=HTTP_HOST,
        port=HTTP_PORT,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
