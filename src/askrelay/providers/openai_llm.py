"""
OpenAI LLM Provider — chat completions, standard and streaming.

Images travel as base64 data URLs in `image_url` content parts. Chunks
without choices (usage-only chunks) are skipped.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import openai
from openai import AsyncOpenAI

from askrelay.errors import StreamTransportError
from askrelay.llm.contracts import ImagePart, PreparedPrompt, Role, TextPart
from askrelay.providers.base import Capability, LLMProvider

logger = logging.getLogger(__name__)


def to_openai_messages(prompt: PreparedPrompt) -> list[dict]:
    messages: list[dict] = [{"role": "system", "content": prompt.system}]
    for turn in prompt.turns:
        if turn.role == Role.USER and turn.images:
            parts: list[dict[str, Any]] = []
            for part in turn.content:
                if isinstance(part, TextPart):
                    parts.append({"type": "text", "text": part.text})
                elif isinstance(part, ImagePart):
                    parts.append({"type": "image_url", "image_url": {"url": part.to_data_url()}})
            messages.append({"role": "user", "content": parts})
        else:
            messages.append({"role": turn.role.value, "content": turn.text})
    return messages


class OpenAILLMProvider(LLMProvider):
    name = "openai"
    capabilities = frozenset({Capability.LLM, Capability.STREAMING_LLM})

    def __init__(self, credentials, params=None, memory=None, retrieval=None,
                 mode=Capability.STREAMING_LLM, client: AsyncOpenAI | None = None):
        super().__init__(credentials, params, memory, retrieval, mode)
        self.client = client or AsyncOpenAI(api_key=credentials.api_key)
        logger.info("OpenAI LLM ready (model=%s)", self.model)

    def _request(self, prompt: PreparedPrompt, stream: bool) -> dict:
        return {
            "model": self.model,
            "messages": to_openai_messages(prompt),
            "max_tokens": self.params.max_tokens,
            "temperature": self.params.temperature,
            "stream": stream,
        }

    async def _complete(self, prompt: PreparedPrompt) -> str:
        response = await self.client.chat.completions.create(**self._request(prompt, stream=False))
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def _stream_text(self, prompt: PreparedPrompt) -> AsyncIterator[str]:
        try:
            stream = await self.client.chat.completions.create(**self._request(prompt, stream=True))
        except openai.APIError as e:
            raise StreamTransportError(f"OpenAI request failed: {e}") from e

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except openai.APIError as e:
            raise StreamTransportError(f"OpenAI stream failed: {e}") from e
        finally:
            await stream.close()

    async def aclose(self) -> None:
        await self.client.close()
