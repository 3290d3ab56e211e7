# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Bounded server-sent event parser.

Turns successive byte chunks from an open ``text/event-stream`` response
into discrete events. Wire format::

    event: status
    data: {"status": "pending", "timestamp": "..."}
    <blank line>

Memory is bounded: complete events are removed from the buffer as soon as
their delimiter arrives, and an un-delimited tail larger than
``SSE_MAX_BUFFER_BYTES`` (64 KiB) raises a ``network_error``. The parser
never retries; the push subscriber decides whether to reconnect or fail
over.

Heartbeats and events without data are dropped here. JSON decoding and
schema validation happen in :func:`decode_status_event`, which drops
malformed payloads with a diagnostic instead of failing the stream.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import List, Optional

from pydantic import ValidationError

from authbound.config import SSE_MAX_BUFFER_BYTES
from authbound.exceptions import AuthboundError
from authbound.models import StatusEvent

logger = logging.getLogger("authbound.status.sse")

__all__ = [
    "EventStreamParser",
    "MAX_BUFFER_SIZE",
    "ServerSentEvent",
    "decode_status_event",
]

MAX_BUFFER_SIZE = SSE_MAX_BUFFER_BYTES

_DELIMITER = b"\n\n"
_HEARTBEAT = "heartbeat"


@dataclass(frozen=True)
class ServerSentEvent:
    """One delimited event block.

    Attributes:
        event: Value of the ``event:`` field, or ``None`` when absent.
        data: ``data:`` lines joined with ``\\n``.
    """

    event: Optional[str]
    data: str


class EventStreamParser:
    """Incremental, size-bounded event-stream splitter."""

    def __init__(self, max_buffer_size: int = MAX_BUFFER_SIZE) -> None:
        self._max_buffer_size = max_buffer_size
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        """Number of un-delimited bytes currently held."""
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()

    def feed(self, chunk: bytes) -> List[ServerSentEvent]:
        """Consume *chunk* and return every event it completes.

        Raises:
            AuthboundError: ``network_error`` (buffer overflow) when the
                remaining un-delimited data exceeds the ceiling. The buffer
                is discarded; the parser is unusable until :meth:`reset`.
        """
        self._buffer += chunk
        if b"\r" in self._buffer:
            # A lone trailing CR is kept until its LF arrives.
            self._buffer = bytearray(self._buffer.replace(b"\r\n", b"\n"))

        events: List[ServerSentEvent] = []
        while True:
            end = self._buffer.find(_DELIMITER)
            if end == -1:
                break
            block = bytes(self._buffer[:end])
            del self._buffer[: end + len(_DELIMITER)]

            event = _parse_block(block)
            if event is None:
                continue
            if event.event == _HEARTBEAT or not event.data:
                logger.debug("Dropping heartbeat/empty event")
                continue
            events.append(event)

        if len(self._buffer) > self._max_buffer_size:
            size = len(self._buffer)
            self._buffer.clear()
            raise AuthboundError.buffer_overflow(size, self._max_buffer_size)

        return events


def _parse_block(block: bytes) -> Optional[ServerSentEvent]:
    """Extract ``event:`` and ``data:`` fields from one event block."""
    text = block.decode("utf-8", errors="replace")
    event_name: Optional[str] = None
    data_lines: List[str] = []

    for line in text.split("\n"):
        if not line or line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event_name = value.strip() or None
        elif field == "data":
            data_lines.append(value.strip())
        # id: and retry: are not used by the status channel.

    if event_name is None and not data_lines:
        return None
    return ServerSentEvent(event=event_name, data="\n".join(data_lines))


def decode_status_event(sse: ServerSentEvent) -> Optional[StatusEvent]:
    """Decode and validate the JSON payload of *sse*.

    The ``event:`` name, when present, overrides the payload's ``type``.
    Returns ``None`` for heartbeats and for malformed payloads
    (``parse_error``), which are logged and skipped.
    """
    try:
        payload = json.loads(sse.data)
    except json.JSONDecodeError as exc:
        logger.warning("parse_error: dropping event with invalid JSON: %s", exc)
        return None

    if not isinstance(payload, dict):
        logger.warning(
            "parse_error: dropping event, expected JSON object, got %s",
            type(payload).__name__,
        )
        return None

    if sse.event:
        payload = {**payload, "type": sse.event}

    try:
        event = StatusEvent.model_validate(payload)
    except ValidationError as exc:
        logger.warning(
            "parse_error: dropping event of type %r with %d validation error(s)",
            payload.get("type"),
            exc.error_count(),
        )
        return None

    if event.kind == _HEARTBEAT:
        return None
    return event
