# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Shared test fixtures for the authbound test suite.

Provides a virtual-time clock, a scripted status transport that stands in
for the gateway, and factories for event-stream frames and signed webhook
payloads.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import pytest

from authbound.exceptions import AuthboundError
from authbound.webhooks.signature import generate_signature_header

T = TypeVar("T")

WEBHOOK_SECRET = "whsec_test_secret"

APPROVED_RESULT: Dict[str, Any] = {
    "verdict": "approved",
    "claims": {"age_over_18": True},
    "verified_at": "2024-06-15T12:00:00Z",
}


# =========================================================================
# Virtual clock
# =========================================================================

class FakeClock:
    """Clock whose sleeps complete at once and advance virtual time.

    Every sleep still yields one loop turn so other tasks interleave as
    they would under real time. ``wait_for`` never times out.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self._now += max(delay, 0.0)
        await asyncio.sleep(0)

    async def wait_for(self, awaitable: Awaitable[T], timeout: float) -> T:
        return await awaitable


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# =========================================================================
# Scripted gateway transport
# =========================================================================

class ScriptedStream:
    """One push connection: chunks, then end, raise, or hang."""

    def __init__(
        self,
        chunks: Sequence[bytes] = (),
        *,
        error: Optional[AuthboundError] = None,
        open_error: Optional[BaseException] = None,
        hang: bool = False,
    ) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.open_error = open_error
        self.hang = hang


HANG = "hang"


class FakeTransport:
    """In-memory :class:`StatusTransport`.

    ``streams`` is consumed one entry per connection attempt; once empty,
    every further attempt fails with a ``network_error``. ``responses`` is
    consumed one entry per poll and the last entry repeats. An entry may
    be a JSON object, an exception to raise, or ``HANG``.
    """

    def __init__(self) -> None:
        self.streams: List[ScriptedStream] = []
        self.responses: List[Any] = [{"status": "pending"}]
        self.opened = 0
        self.open_now = 0
        self.polls = 0
        self.open_streams_during_polls: List[int] = []
        self.log: List[str] = []

    @asynccontextmanager
    async def open_stream(self, session_id: str, client_token: str) -> AsyncIterator[AsyncIterator[bytes]]:
        self.opened += 1
        self.log.append("open")
        if self.streams:
            script = self.streams.pop(0)
        else:
            script = ScriptedStream(open_error=AuthboundError.network("no stream scripted"))
        if script.open_error is not None:
            raise script.open_error

        self.open_now += 1
        try:
            yield self._chunks(script)
        finally:
            self.open_now -= 1

    @staticmethod
    async def _chunks(script: ScriptedStream) -> AsyncIterator[bytes]:
        for chunk in script.chunks:
            await asyncio.sleep(0)
            yield chunk
        if script.error is not None:
            raise script.error
        if script.hang:
            await asyncio.Event().wait()

    async def fetch_status(self, session_id: str, client_token: str) -> Dict[str, Any]:
        self.polls += 1
        self.log.append("poll")
        self.open_streams_during_polls.append(self.open_now)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        if response == HANG:
            await asyncio.Event().wait()
        return dict(response)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def scripted_stream() -> Callable[..., ScriptedStream]:
    return ScriptedStream


# =========================================================================
# Event-stream frames
# =========================================================================

@pytest.fixture
def make_frame() -> Callable[..., bytes]:
    """Factory fixture: encode one event-stream frame.

    ``make_frame("status", status="pending")`` yields
    ``b'event: status\\ndata: {"status": "pending"}\\n\\n'``.
    """

    def _make(event: Optional[str] = None, **payload: Any) -> bytes:
        lines = []
        if event is not None:
            lines.append(f"event: {event}")
        lines.append(f"data: {json.dumps(payload)}")
        return ("\n".join(lines) + "\n\n").encode("utf-8")

    return _make


@pytest.fixture
def result_frame(make_frame: Callable[..., bytes]) -> bytes:
    """A terminal ``verified`` result frame."""
    return make_frame("result", status="verified", result=APPROVED_RESULT)


@pytest.fixture
def approved_result() -> Dict[str, Any]:
    return dict(APPROVED_RESULT)


# =========================================================================
# Event collection
# =========================================================================

class Recorder:
    """Collects events and errors delivered to subscription handlers."""

    def __init__(self) -> None:
        self.events: List[Any] = []
        self.errors: List[AuthboundError] = []

    def on_event(self, event: Any) -> None:
        self.events.append(event)

    def on_error(self, error: AuthboundError) -> None:
        self.errors.append(error)

    @property
    def statuses(self) -> List[str]:
        return [event.status.value for event in self.events]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def until() -> Callable[..., Awaitable[None]]:
    """Yield loop turns until *predicate* holds."""

    async def _until(predicate: Callable[[], bool], turns: int = 200) -> None:
        for _ in range(turns):
            if predicate():
                return
            await asyncio.sleep(0)
        raise AssertionError("condition not reached")

    return _until


# =========================================================================
# Webhooks
# =========================================================================

@pytest.fixture
def webhook_secret() -> str:
    return WEBHOOK_SECRET


@pytest.fixture
def make_webhook_event() -> Callable[..., Dict[str, Any]]:
    """Factory fixture: a webhook event body."""

    def _make(
        event_type: str = "identity.verification_session.verified",
        session_id: str = "vs_test_123",
        status: str = "verified",
    ) -> Dict[str, Any]:
        return {
            "id": "evt_test_001",
            "object": "event",
            "type": event_type,
            "created": 1718452800,
            "livemode": False,
            "data": {
                "object": {
                    "id": session_id,
                    "status": status,
                    "verified_outputs": {"age_over_18": True},
                },
            },
        }

    return _make


@pytest.fixture
def sign() -> Callable[..., str]:
    """Factory fixture: signature header for a payload with the test secret."""

    def _sign(payload: Any, timestamp: Optional[int] = None, secret: str = WEBHOOK_SECRET) -> str:
        return generate_signature_header(secret, payload, timestamp)

    return _sign
