"""
Gemini LLM Provider — Google Generative Language REST API.

REST API:
  POST {base}/models/{model}:generateContent
  POST {base}/models/{model}:streamGenerateContent?alt=sse

The streaming endpoint answers with SSE `data: {...}` lines, each a full
GenerateContentResponse carrying the next text delta in
candidates[0].content.parts[].text. Uses httpx (already a transitive dep via
openai).
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

from askrelay.errors import MalformedChunkError, StreamTransportError
from askrelay.llm.contracts import ImagePart, PreparedPrompt, Role, TextPart
from askrelay.providers.base import Capability, LLMProvider

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"


def to_gemini_request(prompt: PreparedPrompt, temperature: float, max_tokens: int) -> dict:
    contents: list[dict] = []
    for turn in prompt.turns:
        parts: list[dict[str, Any]] = []
        for part in turn.content:
            if isinstance(part, TextPart) and part.text:
                parts.append({"text": part.text})
            elif isinstance(part, ImagePart):
                parts.append(
                    {"inline_data": {"mime_type": part.mime_type, "data": part.to_base64()}}
                )
        if parts:
            contents.append(
                {"role": "model" if turn.role == Role.ASSISTANT else "user", "parts": parts}
            )
    return {
        "systemInstruction": {"parts": [{"text": prompt.system}]},
        "contents": contents,
        "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
    }


def response_text(payload: Any) -> str:
    """Concatenated text of the first candidate."""
    try:
        candidates = payload.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts if isinstance(p.get("text"), str))
    except AttributeError as e:
        raise MalformedChunkError(f"Unexpected Gemini payload: {e}", raw=str(payload)[:80]) from e


class GeminiLLMProvider(LLMProvider):
    name = "gemini"
    capabilities = frozenset({Capability.LLM, Capability.STREAMING_LLM})

    def __init__(self, credentials, params=None, memory=None, retrieval=None,
                 mode=Capability.STREAMING_LLM, client: httpx.AsyncClient | None = None,
                 timeout: float = 60.0):
        super().__init__(credentials, params, memory, retrieval, mode)
        self.client = client or httpx.AsyncClient(
            base_url=GEMINI_API_URL,
            timeout=httpx.Timeout(timeout),
        )
        self._headers = {
            "x-goog-api-key": credentials.api_key or "",
            "Content-Type": "application/json",
        }
        logger.info("Gemini LLM ready (model=%s)", self.model)

    def _body(self, prompt: PreparedPrompt) -> dict:
        return to_gemini_request(prompt, self.params.temperature, self.params.max_tokens)

    async def _complete(self, prompt: PreparedPrompt) -> str:
        response = await self.client.post(
            f"/models/{self.model}:generateContent",
            json=self._body(prompt),
            headers=self._headers,
        )
        response.raise_for_status()
        return response_text(response.json())

    async def _stream_text(self, prompt: PreparedPrompt) -> AsyncIterator[str]:
        try:
            async with self.client.stream(
                "POST",
                f"/models/{self.model}:streamGenerateContent",
                params={"alt": "sse"},
                json=self._body(prompt),
                headers=self._headers,
            ) as response:
                if response.status_code >= 400:
                    detail = (await response.aread()).decode("utf-8", "replace")[:200]
                    raise StreamTransportError(
                        f"Gemini request failed ({response.status_code}): {detail}"
                    )
                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    try:
                        text = response_text(json.loads(line[5:].strip()))
                    except (json.JSONDecodeError, MalformedChunkError) as e:
                        logger.warning("Skipping chunk: %s", e, extra={"provider": self.name})
                        continue
                    if text:
                        yield text
        except httpx.HTTPError as e:
            raise StreamTransportError(f"Gemini stream failed: {e}") from e

    async def aclose(self) -> None:
        await self.client.aclose()
