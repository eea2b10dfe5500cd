"""
Ask API — JSON and SSE endpoints over the SessionManager.

Endpoints:
    POST /v1/ask          → {"text", "session_id"?} -> AskResult JSON
    POST /v1/ask/stream   → same body, text/event-stream in the wire format
    GET  /v1/providers    → providers grouped by capability

A client that disconnects mid-stream cancels the in-flight request; nothing
is saved for it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import TYPE_CHECKING, AsyncGenerator

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from askrelay.ask.channel import QueueChannel
from askrelay.providers.registry import available_providers

if TYPE_CHECKING:
    from askrelay.ask.sessions import SessionManager

logger = logging.getLogger(__name__)


def create_router(session_manager: "SessionManager") -> APIRouter:
    """Create the ask router bound to a SessionManager."""

    router = APIRouter(prefix="/v1", tags=["ask"])

    @router.post("/ask")
    async def ask(request: Request) -> JSONResponse:
        body = await _read_body(request)
        if body is None:
            return _bad_request("Request body must be a JSON object")

        text = body.get("text") or ""
        if not isinstance(text, str):
            return _bad_request("text must be a string")

        result = await session_manager.ask(body.get("session_id"), text)
        status = 200 if result.success else 400 if result.error == "Empty message" else 502
        return JSONResponse(result.as_dict(), status_code=status)

    @router.post("/ask/stream", response_model=None)
    async def ask_stream(request: Request):
        body = await _read_body(request)
        if body is None:
            return _bad_request("Request body must be a JSON object")

        session_id = body.get("session_id") or str(uuid.uuid4())
        text = body.get("text") or ""
        if not isinstance(text, str):
            return _bad_request("text must be a string")
        if not text.strip():
            return JSONResponse({"success": False, "error": "Empty message"}, status_code=400)

        channel = QueueChannel(maxsize=session_manager.config.ask.channel_buffer)
        return StreamingResponse(
            _stream_response(session_manager, session_id, text, channel),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
                "X-Session-Id": session_id,
            },
        )

    @router.get("/providers")
    async def providers() -> JSONResponse:
        return JSONResponse(available_providers())

    return router


async def _stream_response(
    session_manager: "SessionManager",
    session_id: str,
    text: str,
    channel: QueueChannel,
) -> AsyncGenerator[str, None]:
    """Drain the channel while the request runs in its own task."""
    task = asyncio.create_task(session_manager.ask(session_id, text, channel=channel))
    task.add_done_callback(lambda _: channel.close())
    try:
        async for line in channel.sse():
            yield line
        result = await task
        if not result.success:
            # The wire format has no error frame; send one JSON error event instead of [DONE].
            yield f"data: {json.dumps({'error': result.error})}\n\n"
    finally:
        if not task.done():
            logger.info("Client disconnected; cancelling ask", extra={"session_id": session_id})
            task.cancel()


async def _read_body(request: Request) -> dict | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=400)
