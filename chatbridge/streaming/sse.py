"""
Outbound stream codec.

Frames are `data: <json>\\n\\n`:
  metadata → {"object": "chat", "id": ..., "createdAt": ...}
  delta    → {"delta": <Document>}
  error    → {"error": {"message": ...}}   (terminal)
  done     → the literal `data: [DONE]`     (terminal)
"""
from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterable, AsyncIterator, Optional

from chatbridge.providers.base import StreamEvent
from chatbridge.streaming.framing import DONE_TOKEN, SSE_PREFIX, SSEFraming

logger = logging.getLogger(__name__)


def encode_event(event: StreamEvent) -> bytes:
    if event.type == "done":
        return f"{SSE_PREFIX}{DONE_TOKEN}\n\n".encode("utf-8")
    if event.type == "delta":
        body: Any = {"delta": event.data}
    elif event.type == "error":
        body = {"error": event.data}
    else:
        body = event.data
    return f"{SSE_PREFIX}{json.dumps(body, ensure_ascii=False)}\n\n".encode("utf-8")


async def encode_events(events: AsyncIterator[StreamEvent]) -> AsyncIterator[bytes]:
    """
    Serialise an event generator. Closing the returned stream closes `events`
    too, which is what releases the upstream connection.
    """
    async with aclosing(events):
        async for event in events:
            yield encode_event(event)


def decode_payload(payload: dict[str, Any]) -> Optional[StreamEvent]:
    if payload.get("object") == "chat":
        return StreamEvent(type="metadata", data=payload)
    if "delta" in payload:
        return StreamEvent(type="delta", data=payload["delta"])
    if "error" in payload:
        return StreamEvent(type="error", data=payload["error"])
    return None


async def parse_events(frames: AsyncIterable[bytes]) -> AsyncIterator[StreamEvent]:
    """Read an outbound stream back into StreamEvents (clients, tests)."""
    framing = SSEFraming(source="chat stream")
    async for payload in framing.iter_payloads(frames):
        event = decode_payload(payload)
        if event is None:
            logger.debug("Ignoring unrecognised frame: %s", payload)
            continue
        yield event
    if framing.done:
        yield StreamEvent(type="done")
