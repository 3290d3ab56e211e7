# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Tests for the webhook router (authbound.webhooks.routes) and service app.

The router must verify the exact bytes received, reject forged or stale
callbacks with 401 before any handler runs, and report handler failures
as 500.
"""

from __future__ import annotations

import json
import logging
import time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from authbound import config
from authbound.main import _JSONFormatter, redact
from authbound.main import app as service_app
from authbound.webhooks.events import WebhookEvent
from authbound.webhooks.routes import create_webhook_router

SECRET = "whsec_test_secret"
PATH = "/webhooks/authbound"


class Handlers:
    def __init__(self) -> None:
        self.events = []
        self.verified = []
        self.failed = []

    def on_event(self, event: WebhookEvent) -> None:
        self.events.append(event)

    def on_verified(self, event: WebhookEvent) -> None:
        self.verified.append(event)

    def on_failed(self, event: WebhookEvent) -> None:
        self.failed.append(event)


@pytest.fixture
def handlers() -> Handlers:
    return Handlers()


@pytest.fixture
def client(handlers) -> TestClient:
    app = FastAPI()
    app.include_router(
        create_webhook_router(
            SECRET,
            on_event=handlers.on_event,
            on_verified=handlers.on_verified,
            on_failed=handlers.on_failed,
            header_name="X-Signature",
            path=PATH,
        )
    )
    return TestClient(app)


def _post(client: TestClient, body: bytes, header=None, header_name: str = "X-Signature"):
    headers = {"Content-Type": "application/json"}
    if header is not None:
        headers[header_name] = header
    return client.post(PATH, content=body, headers=headers)


class TestWebhookRoute:

    def test_valid_webhook_is_dispatched(self, client, handlers, make_webhook_event, sign):
        body = json.dumps(make_webhook_event()).encode()

        response = _post(client, body, sign(body))

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert len(handlers.events) == 1
        assert handlers.events[0].session_id == "vs_test_123"
        assert len(handlers.verified) == 1
        assert handlers.failed == []

    def test_failed_event_reaches_failed_handler(self, client, handlers, make_webhook_event, sign):
        body = json.dumps(
            make_webhook_event("identity.verification_session.failed", status="failed")
        ).encode()

        response = _post(client, body, sign(body))

        assert response.status_code == 200
        assert len(handlers.failed) == 1
        assert handlers.verified == []

    def test_raw_bytes_are_verified_unmodified(self, client, handlers, make_webhook_event, sign):
        # Unusual spacing and key order would not survive a JSON round trip.
        body = json.dumps(make_webhook_event(), indent=3, sort_keys=True).encode()
        assert json.dumps(json.loads(body)).encode() != body

        response = _post(client, body, sign(body))

        assert response.status_code == 200
        assert len(handlers.events) == 1

    def test_missing_signature_is_rejected(self, client, handlers, make_webhook_event):
        body = json.dumps(make_webhook_event()).encode()

        response = _post(client, body)

        assert response.status_code == 401
        assert response.json() == {"error": "Missing signature"}
        assert handlers.events == []

    def test_invalid_signature_is_rejected(self, client, handlers, make_webhook_event, sign):
        body = json.dumps(make_webhook_event()).encode()

        response = _post(client, body, sign(body, secret="someone_else"))

        assert response.status_code == 401
        assert response.json() == {"error": "Signature mismatch"}
        assert handlers.events == []

    def test_tampered_body_is_rejected(self, client, handlers, make_webhook_event, sign):
        body = json.dumps(make_webhook_event()).encode()
        tampered = body.replace(b"vs_test_123", b"vs_attacker")

        response = _post(client, tampered, sign(body))

        assert response.status_code == 401
        assert handlers.events == []

    def test_stale_timestamp_is_rejected(self, client, handlers, make_webhook_event, sign):
        body = json.dumps(make_webhook_event()).encode()

        response = _post(client, body, sign(body, timestamp=int(time.time()) - 600))

        assert response.status_code == 401
        assert "tolerance" in response.json()["error"]

    def test_malformed_header_is_rejected(self, client, make_webhook_event):
        body = json.dumps(make_webhook_event()).encode()

        response = _post(client, body, "garbage")

        assert response.status_code == 401
        assert "timestamp" in response.json()["error"].lower()

    def test_signed_body_that_is_not_an_event_is_bad_request(self, client, handlers, sign):
        body = b'{"hello": "world"}'

        response = _post(client, body, sign(body))

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid webhook event"}
        assert handlers.events == []

    def test_handler_failure_is_server_error(self, make_webhook_event, sign):
        def explode(event):
            raise RuntimeError("database down")

        app = FastAPI()
        app.include_router(create_webhook_router(SECRET, on_event=explode, path=PATH))
        body = json.dumps(make_webhook_event()).encode()

        response = _post(TestClient(app), body, sign(body))

        assert response.status_code == 500
        assert response.json() == {"error": "Webhook processing failed"}

    def test_async_handlers_are_awaited(self, make_webhook_event, sign):
        seen = []

        async def on_verified(event):
            seen.append(event.id)

        app = FastAPI()
        app.include_router(create_webhook_router(SECRET, on_verified=on_verified, path=PATH))
        body = json.dumps(make_webhook_event()).encode()

        response = _post(TestClient(app), body, sign(body))

        assert response.status_code == 200
        assert seen == ["evt_test_001"]

    def test_custom_header_name(self, make_webhook_event, sign):
        app = FastAPI()
        app.include_router(
            create_webhook_router(SECRET, header_name="X-Authbound-Signature", path=PATH)
        )
        client = TestClient(app)
        body = json.dumps(make_webhook_event()).encode()

        assert _post(client, body, sign(body)).status_code == 401
        response = _post(client, body, sign(body), header_name="X-Authbound-Signature")
        assert response.status_code == 200

    def test_without_secret_unsigned_webhooks_are_accepted(self, make_webhook_event, caplog):
        app = FastAPI()
        app.include_router(create_webhook_router("", path=PATH))
        body = json.dumps(make_webhook_event()).encode()

        response = _post(TestClient(app), body)

        assert response.status_code == 200
        assert "No webhook secret configured" in caplog.text

    def test_required_secret_refuses_when_unset(self, handlers, make_webhook_event, sign):
        app = FastAPI()
        app.include_router(
            create_webhook_router("", on_event=handlers.on_event, path=PATH, require_secret=True)
        )
        body = json.dumps(make_webhook_event()).encode()

        response = _post(TestClient(app), body, sign(body))

        assert response.status_code == 503
        assert response.json() == {"error": "Webhook secret not configured"}
        assert handlers.events == []

    def test_required_secret_is_enforced_when_set(self, make_webhook_event):
        app = FastAPI()
        app.include_router(create_webhook_router(SECRET, path=PATH, require_secret=True))
        body = json.dumps(make_webhook_event()).encode()

        assert _post(TestClient(app), body).status_code == 401


class TestServiceApp:

    def test_healthz(self):
        response = TestClient(service_app).get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["webhook"]["path"] == config.WEBHOOK_PATH
        assert data["webhook"]["signing_enabled"] is bool(config.WEBHOOK_SECRET)

    def test_webhook_route_is_mounted(self):
        response = TestClient(service_app).post(
            config.WEBHOOK_PATH, content=b"not json", headers={"Content-Type": "application/json"}
        )

        # 401 when a secret is configured, refused outright otherwise.
        assert response.status_code == (401 if config.WEBHOOK_SECRET else 503)


class TestJSONLogging:

    def _format(self, message, *args, **extra) -> dict:
        record = logging.LogRecord(
            "authbound.test", logging.WARNING, __file__, 1, message, args, None
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return json.loads(_JSONFormatter().format(record))

    def test_context_fields_are_included(self):
        line = self._format(
            "Session %s updated", "vs_1", session_id="vs_1", event_id="evt_1"
        )

        assert line["message"] == "Session vs_1 updated"
        assert line["level"] == "WARNING"
        assert line["logger"] == "authbound.test"
        assert line["session_id"] == "vs_1"
        assert line["event_id"] == "evt_1"
        assert "code" not in line

    def test_credentials_are_redacted(self):
        line = self._format(
            "headers=%s secret=%s", "Authorization: Bearer ct_live_abc123", SECRET
        )

        assert "ct_live_abc123" not in line["message"]
        assert SECRET not in line["message"]
        assert "Bearer [redacted]" in line["message"]

    def test_redact_leaves_plain_text_alone(self):
        assert redact("Session vs_1 is now verified") == "Session vs_1 is now verified"
