"""
Bedrock Claude Provider — Anthropic messages API on AWS Bedrock.

Uses boto3 `bedrock-runtime`:
- InvokeModel for one-shot completions
- InvokeModelWithResponseStream for streaming; only `content_block_delta`
  events (or untyped chunks with a text delta) carry text, everything else
  (message_start, ping, ...) is skipped

boto3 is synchronous, so every call and every pull from the response
EventStream runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from askrelay.errors import MalformedChunkError, StreamTransportError
from askrelay.llm.contracts import ImagePart, PreparedPrompt, Role, TextPart
from askrelay.providers.base import Capability, LLMProvider

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "bedrock-2023-05-31"

# EventStream keys that signal a failure instead of a chunk.
_STREAM_EXCEPTIONS = (
    "internalServerException",
    "modelStreamErrorException",
    "validationException",
    "throttlingException",
    "modelTimeoutException",
    "serviceUnavailableException",
)


def to_anthropic_messages(prompt: PreparedPrompt) -> list[dict]:
    messages: list[dict] = []
    for turn in prompt.turns:
        content: list[dict[str, Any]] = []
        for part in turn.content:
            if isinstance(part, TextPart) and part.text:
                content.append({"type": "text", "text": part.text})
            elif isinstance(part, ImagePart):
                content.append(
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": part.mime_type,
                            "data": part.to_base64(),
                        },
                    }
                )
        if content:
            role = "assistant" if turn.role == Role.ASSISTANT else "user"
            messages.append({"role": role, "content": content})
    return messages


def parse_chunk(raw: bytes) -> str:
    """Text carried by one stream chunk, "" for non-text events."""
    try:
        chunk = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedChunkError(f"Unparseable Bedrock chunk: {e}", raw=repr(raw[:80])) from e
    if not isinstance(chunk, dict):
        return ""
    # Untyped chunks with a text delta count as content deltas.
    if chunk.get("type", "content_block_delta") != "content_block_delta":
        return ""
    delta = chunk.get("delta") or {}
    text = delta.get("text") if isinstance(delta, dict) else None
    return text if isinstance(text, str) else ""


class BedrockClaudeProvider(LLMProvider):
    name = "bedrock"
    capabilities = frozenset({Capability.LLM, Capability.STREAMING_LLM})

    def __init__(self, credentials, params=None, memory=None, retrieval=None,
                 mode=Capability.STREAMING_LLM, client: Any = None):
        super().__init__(credentials, params, memory, retrieval, mode)
        self.client = client or boto3.client(
            "bedrock-runtime",
            region_name=credentials.region,
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            aws_session_token=credentials.session_token,
        )
        logger.info("Bedrock LLM ready (model=%s, region=%s)", self.model, credentials.region)

    def _retrieval_model(self) -> str | None:
        return self.model

    def _body(self, prompt: PreparedPrompt) -> str:
        return json.dumps(
            {
                "anthropic_version": ANTHROPIC_VERSION,
                "max_tokens": self.params.max_tokens,
                "temperature": self.params.temperature,
                "system": prompt.system,
                "messages": to_anthropic_messages(prompt),
            }
        )

    async def _complete(self, prompt: PreparedPrompt) -> str:
        response = await asyncio.to_thread(
            self.client.invoke_model,
            modelId=self.model,
            contentType="application/json",
            accept="application/json",
            body=self._body(prompt),
        )
        payload = json.loads(response["body"].read())
        return "".join(
            block.get("text", "")
            for block in payload.get("content") or []
            if block.get("type") == "text"
        )

    async def _stream_text(self, prompt: PreparedPrompt) -> AsyncIterator[str]:
        try:
            response = await asyncio.to_thread(
                self.client.invoke_model_with_response_stream,
                modelId=self.model,
                contentType="application/json",
                accept="application/json",
                body=self._body(prompt),
            )
        except (ClientError, BotoCoreError) as e:
            raise StreamTransportError(f"Bedrock request failed: {e}") from e

        body = response["body"]
        events = iter(body)
        try:
            while True:
                try:
                    event = await asyncio.to_thread(next, events, None)
                except (ClientError, BotoCoreError) as e:
                    raise StreamTransportError(f"Bedrock stream failed: {e}") from e
                if event is None:
                    break

                failure = next((k for k in _STREAM_EXCEPTIONS if k in event), None)
                if failure:
                    message = (event[failure] or {}).get("message", failure)
                    raise StreamTransportError(f"Bedrock stream failed: {message}")

                raw = (event.get("chunk") or {}).get("bytes")
                if not raw:
                    continue
                try:
                    text = parse_chunk(raw)
                except MalformedChunkError as e:
                    logger.warning("Skipping chunk: %s", e.message, extra={"provider": self.name})
                    continue
                if text:
                    yield text
        finally:
            close = getattr(body, "close", None)
            if close is not None:
                close()
