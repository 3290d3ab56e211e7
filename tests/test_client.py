# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Tests for the client facade (authbound.client) and the shared HTTP client."""

from __future__ import annotations

import httpx
import pytest

from authbound import client as client_module
from authbound import http_client
from authbound.client import AuthboundClient, get_client, reset_client
from authbound.config import CLIENT_IDENTIFIER
from authbound.exceptions import AuthboundError
from authbound.models import VerificationStatus
from authbound.status.subscription import StatusSubscription


class TestAuthboundClient:

    @pytest.mark.asyncio
    async def test_subscribe_returns_started_subscription(
        self, transport, recorder, fake_clock, scripted_stream, result_frame
    ):
        transport.streams = [scripted_stream([result_frame])]

        async with AuthboundClient(transport=transport, clock=fake_clock) as client:
            subscription = client.subscribe_to_status(
                "vs_1", "ct_1", recorder.on_event, recorder.on_error
            )
            assert isinstance(subscription, StatusSubscription)
            assert subscription.channel == "push"
            await subscription.wait()

        assert recorder.statuses == ["verified"]
        assert subscription.status == VerificationStatus.VERIFIED

    @pytest.mark.asyncio
    async def test_aclose_stops_running_subscriptions(
        self, transport, recorder, fake_clock, scripted_stream, make_frame, until
    ):
        transport.streams = [
            scripted_stream([make_frame("status", status="pending")], hang=True),
        ]
        client = AuthboundClient(transport=transport, clock=fake_clock)
        subscription = client.subscribe_to_status("vs_1", "ct_1", recorder.on_event)
        await until(lambda: len(recorder.events) == 1)

        await client.aclose()
        await subscription.wait()

        assert subscription.cancelled
        assert transport.open_now == 0

    @pytest.mark.asyncio
    async def test_poll_status_maps_gateway_vocabulary(self, transport):
        transport.responses = [{"status": "expired", "timeRemaining": 0}]

        response = await AuthboundClient(transport=transport).poll_status("vs_1", "ct_1")

        assert response.status == "timeout"
        assert response.time_remaining == 0

    @pytest.mark.asyncio
    async def test_poll_status_propagates_gateway_errors(self, transport):
        transport.responses = [AuthboundError("session_not_found", status_code=404)]

        with pytest.raises(AuthboundError) as exc_info:
            await AuthboundClient(transport=transport).poll_status("vs_1", "ct_1")

        assert exc_info.value.code == "session_not_found"

    @pytest.mark.asyncio
    async def test_owned_http_client_is_closed(self):
        client = AuthboundClient(gateway_url="https://gw.example.test")
        http = client._http_client

        await client.aclose()

        assert http.is_closed

    @pytest.mark.asyncio
    async def test_borrowed_http_client_is_left_open(self):
        http = httpx.AsyncClient()
        try:
            await AuthboundClient(http_client=http).aclose()
            assert not http.is_closed
        finally:
            await http.aclose()


class TestSingletons:

    def test_get_client_is_cached(self):
        reset_client()
        try:
            assert get_client() is get_client()
        finally:
            reset_client()
        assert client_module._client is None

    def test_gateway_client_settings(self):
        client = http_client.build_gateway_client(5.0)

        assert client.follow_redirects is False
        assert client.headers["X-Authbound-Client"] == CLIENT_IDENTIFIER
        assert client.timeout.connect == 5.0

    @pytest.mark.asyncio
    async def test_owned_client_uses_gateway_settings(self):
        client = AuthboundClient(gateway_url="https://gw.example.test")
        try:
            assert client._http_client.headers["X-Authbound-Client"] == CLIENT_IDENTIFIER
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_shared_http_client_lifecycle(self):
        http_client.reset_shared_client()
        first = http_client.get_shared_client()

        assert http_client.get_shared_client() is first
        assert first.follow_redirects is False

        await http_client.close_shared_client()
        assert first.is_closed

        second = http_client.get_shared_client()
        assert second is not first
        await http_client.close_shared_client()
