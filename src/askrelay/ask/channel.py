"""
UI Channel — the one-way outbound path from the orchestrator to the UI.

The orchestrator writes hide_input / chunk / stream_end notifications; the
UI side drains them with events() or sse(). The queue is bounded, so a slow
reader applies backpressure to the stream instead of buffering without limit.
close() ends the stream for readers when a request finishes without stream_end.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator

from askrelay.llm.sse import encode_done, encode_token


@dataclass(frozen=True)
class ChannelEvent:
    kind: str  # "hide_input" | "chunk" | "stream_end"
    token: str = ""


class QueueChannel:
    """AskChannel over a bounded asyncio.Queue."""

    def __init__(self, maxsize: int = 256):
        self._queue: asyncio.Queue[ChannelEvent] = asyncio.Queue(maxsize=maxsize)
        self._closed = asyncio.Event()

    async def hide_input(self) -> None:
        await self._queue.put(ChannelEvent(kind="hide_input"))

    async def chunk(self, token: str) -> None:
        await self._queue.put(ChannelEvent(kind="chunk", token=token))

    async def stream_end(self) -> None:
        await self._queue.put(ChannelEvent(kind="stream_end"))

    def close(self) -> None:
        """No more events will be written; readers drain what is queued and stop."""
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def events(self) -> AsyncIterator[ChannelEvent]:
        """Drain events up to and including stream_end, or until closed and empty."""
        while True:
            if self._queue.empty() and self._closed.is_set():
                return
            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closed.wait())
            try:
                await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                closer.cancel()
                if not getter.done():
                    getter.cancel()
            if getter.cancelled() or not getter.done():
                continue
            event = getter.result()
            yield event
            if event.kind == "stream_end":
                return

    async def sse(self) -> AsyncIterator[str]:
        """The drained stream in the normalized wire format."""
        async for event in self.events():
            if event.kind == "chunk":
                yield encode_token(event.token)
            elif event.kind == "stream_end":
                yield encode_done()


class NullChannel:
    """AskChannel for callers that only want the final AskResult."""

    async def hide_input(self) -> None:
        pass

    async def chunk(self, token: str) -> None:
        pass

    async def stream_end(self) -> None:
        pass
