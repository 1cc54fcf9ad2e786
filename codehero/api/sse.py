"""Server-sent-event decoding for the Anthropic Messages stream.

decode_stream() turns raw response lines into StreamEvent objects.
Only ``data:`` lines count; ``event:`` lines, comments and blanks are
skipped, ``data: [DONE]`` ends the stream, and a payload that is not a
JSON object is dropped without surfacing anything to the caller.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from codehero.api.cancel import CancelToken

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

KNOWN_EVENT_TYPES = frozenset({
    "message_start",
    "content_block_start",
    "content_block_delta",
    "content_block_stop",
    "message_delta",
    "message_stop",
    "ping",
    "error",
})


@dataclass
class StreamEvent:
    """A single decoded event from the streaming response.

    Flat on purpose: ``type`` picks which of the other fields are meaningful.
    ``block`` is the raw content_block of a content_block_start, ``delta``
    the raw delta of a content_block_delta, ``message`` the error body of
    an error event.
    """

    type: str
    index: int = 0
    block: dict[str, Any] = field(default_factory=dict)
    delta: dict[str, Any] = field(default_factory=dict)
    stop_reason: str | None = None
    message: dict[str, Any] = field(default_factory=dict)
    usage: dict[str, Any] | None = None

    @property
    def delta_type(self) -> str:
        return self.delta.get("type", "")


def parse_stream_event(data: dict[str, Any]) -> StreamEvent | None:
    """Map one decoded payload to a StreamEvent. Unknown types return None."""
    event_type = data.get("type")
    if event_type not in KNOWN_EVENT_TYPES:
        return None

    if event_type == "content_block_start":
        return StreamEvent(
            type=event_type,
            index=_index(data),
            block=data.get("content_block") or {},
        )

    if event_type == "content_block_delta":
        return StreamEvent(type=event_type, index=_index(data), delta=data.get("delta") or {})

    if event_type == "content_block_stop":
        return StreamEvent(type=event_type, index=_index(data))

    if event_type == "message_delta":
        delta = data.get("delta") or {}
        return StreamEvent(
            type=event_type,
            stop_reason=delta.get("stop_reason"),
            usage=data.get("usage"),
        )

    if event_type == "message_start":
        message = data.get("message") or {}
        return StreamEvent(type=event_type, usage=message.get("usage"))

    if event_type == "error":
        return StreamEvent(type=event_type, message=data.get("error") or {})

    # ping, message_stop
    return StreamEvent(type=event_type)


def _index(data: dict[str, Any]) -> int:
    index = data.get("index", 0)
    return index if isinstance(index, int) else 0


def extract_payload(line: str) -> str | None:
    """Return the payload of a ``data:`` line, or None for any other line."""
    if not line.startswith("data:"):
        return None
    payload = line[5:]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload.strip()


async def decode_stream(
    lines: AsyncIterable[str],
    cancel: CancelToken | None = None,
) -> AsyncIterator[StreamEvent]:
    """Yield StreamEvents from an async iterable of SSE lines.

    The cancel token is checked before every line; a cancelled token
    raises StreamCancelled out of the generator so the caller's stream
    context closes the connection.
    """
    async for raw in lines:
        if cancel is not None:
            cancel.raise_if_cancelled()

        payload = extract_payload(raw.rstrip("\r\n"))
        if not payload:
            continue
        if payload == DONE_SENTINEL:
            return

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Dropping undecodable stream line: %.120s", payload)
            continue
        if not isinstance(data, dict):
            logger.debug("Dropping non-object stream payload: %.120s", payload)
            continue

        event = parse_stream_event(data)
        if event is None:
            logger.debug("Skipping unknown stream event type: %s", data.get("type"))
            continue
        yield event
