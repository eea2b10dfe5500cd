"""
Normalized wire format — what every adapter emits toward the UI boundary.

    data: {"choices": [{"delta": {"content": "<token>"}}]}

    data: [DONE]

One event per `data:` line, events separated by a blank line, always
terminated by the literal `data: [DONE]` line regardless of how the
provider framed its own stream.
"""

from __future__ import annotations

import json
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncGenerator, AsyncIterator

from askrelay.errors import MalformedChunkError, StreamTransportError
from askrelay.llm.contracts import StreamEvent, StreamEventType

DONE_LINE = "data: [DONE]"


@dataclass(frozen=True)
class WireChunk:
    """A decoded wire line: either a token or the completion marker."""

    token: str = ""
    done: bool = False


def encode_token(token: str) -> str:
    payload = {"choices": [{"delta": {"content": token}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def encode_done() -> str:
    return f"{DONE_LINE}\n\n"


async def to_sse(events: AsyncGenerator[StreamEvent, None]) -> AsyncIterator[str]:
    """Frame a StreamEvent sequence as wire lines.

    An ERROR event cannot be expressed on the wire; it is raised as
    StreamTransportError so the consumer aborts instead of waiting for [DONE].
    Closing this generator closes the event source.
    """
    async with aclosing(events):
        async for event in events:
            if event.type == StreamEventType.TOKEN:
                yield encode_token(event.text)
            elif event.type == StreamEventType.END:
                yield encode_done()
                return
            else:
                raise StreamTransportError(
                    event.message or "Provider stream failed", code=event.error_kind or None
                )


def decode_line(line: str) -> WireChunk | None:
    """Parse one wire line.

    Returns None for blank lines and non-data lines (comments, keep-alives).
    Raises MalformedChunkError when a data line does not carry the expected
    JSON shape.
    """
    line = line.strip()
    if not line or not line.startswith("data:"):
        return None
    data = line[5:].strip()
    if data == "[DONE]":
        return WireChunk(done=True)
    try:
        payload = json.loads(data)
        choices = payload["choices"]
        delta = (choices[0].get("delta") or {}) if choices else {}
        token = delta.get("content") or ""
    except (json.JSONDecodeError, KeyError, TypeError, AttributeError, IndexError) as e:
        raise MalformedChunkError(f"Unparseable stream chunk: {e}", raw=data) from e
    if not isinstance(token, str):
        raise MalformedChunkError("Stream chunk content is not text", raw=data)
    return WireChunk(token=token)
