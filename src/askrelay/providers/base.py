"""
Provider base classes — the contract every backend adapter honors.

LLMProvider owns the steps that are the same for every backend:

1. translate: walk the normalized messages, feeding every user/assistant
   text turn (and a marker per image) into the session MemoryWindow
2. retrieve: query the knowledge base with the latest user text, if one is
   configured, and inject the answer with KNOWLEDGE_BASE_TEMPLATE
3. remember: append the rendered memory context to the system prompt
4. stream: sanitize each native delta into a TOKEN event, append the full
   reply to memory once, finish with END, or ERROR on transport failure

Subclasses only implement the native calls: _complete() and _stream_text().
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from contextlib import aclosing
from enum import Enum
from typing import TYPE_CHECKING, AsyncGenerator, AsyncIterator, ClassVar

from askrelay.core.metrics import metrics
from askrelay.errors import StreamTransportError, UnsupportedCapabilityError
from askrelay.llm.contracts import (
    ImagePart,
    NormalizedMessage,
    PreparedPrompt,
    RequestParams,
    Role,
    StreamEvent,
    TextPart,
    validate_messages,
)
from askrelay.llm.sse import to_sse
from askrelay.memory.window import EMPTY_CONTEXT
from askrelay.providers.sanitize import sanitize_chunk

if TYPE_CHECKING:
    from askrelay.credentials import ResolvedCredentials
    from askrelay.memory.window import MemoryWindow
    from askrelay.retrieval.client import KnowledgeBaseClient

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

KNOWLEDGE_BASE_TEMPLATE = """
{system}

##############################################################
## IMPORTANT - KNOWLEDGE BASE INFORMATION - USE THIS FIRST ##
##############################################################

{context}

INSTRUCTIONS:
1. You MUST use the above knowledge base information as your PRIMARY source to answer the user's question.
2. If the knowledge base contains relevant information, incorporate it fully into your response.
3. Cite your sources by mentioning "According to the knowledge base" when using this information.
4. Do NOT claim ignorance about topics covered in the knowledge base information.
5. If the knowledge base information conflicts with your training data, prioritize the knowledge base.

##############################################################
"""


class Capability(str, Enum):
    """Operation modes an adapter can be built for."""

    STT = "stt"
    LLM = "llm"
    STREAMING_LLM = "streamingLlm"


def check_capability(provider_cls: type, mode: str) -> "Capability":
    """Normalize a mode string and reject one the adapter class does not declare."""
    try:
        capability = Capability(mode)
    except ValueError:
        raise UnsupportedCapabilityError(provider_cls.name, str(mode)) from None
    if capability not in provider_cls.capabilities:
        raise UnsupportedCapabilityError(provider_cls.name, capability.value)
    return capability


class LLMProvider(ABC):
    """Text generation, standard and streaming."""

    name: ClassVar[str] = ""
    capabilities: ClassVar[frozenset[Capability]] = frozenset(
        {Capability.LLM, Capability.STREAMING_LLM}
    )

    def __init__(
        self,
        credentials: "ResolvedCredentials",
        params: RequestParams | None = None,
        memory: "MemoryWindow | None" = None,
        retrieval: "KnowledgeBaseClient | None" = None,
        mode: str = Capability.STREAMING_LLM,
    ):
        self.mode = check_capability(type(self), mode)
        self.credentials = credentials
        self.params = params or RequestParams()
        self.memory = memory
        self.retrieval = retrieval

    @property
    def model(self) -> str:
        return self.params.model or self.credentials.model_id

    # ─── Public contract ────────────────────────────────────────

    async def generate(self, messages: list[NormalizedMessage]) -> str:
        """One-shot completion."""
        prompt = await self.prepare(messages)
        started = time.monotonic()
        metrics.inc("provider.llm.requests", labels={"provider": self.name, "mode": "standard"})
        try:
            text = sanitize_chunk(await self._complete(prompt))
        except Exception:
            metrics.inc("provider.llm.errors", labels={"provider": self.name})
            raise
        metrics.observe(
            "provider.llm.latency_ms",
            (time.monotonic() - started) * 1000,
            labels={"provider": self.name},
        )
        self._remember(text, "assistant")
        return text

    async def stream_generate(
        self, messages: list[NormalizedMessage]
    ) -> AsyncGenerator[StreamEvent, None]:
        """Stream the reply as TOKEN events, ending in exactly one END or ERROR."""
        prompt = await self.prepare(messages)
        started = time.monotonic()
        first_token_at: float | None = None
        pieces: list[str] = []
        metrics.inc("provider.llm.requests", labels={"provider": self.name, "mode": "stream"})

        try:
            async with aclosing(self._stream_text(prompt)) as native:
                async for raw in native:
                    text = sanitize_chunk(raw)
                    if not text:
                        continue
                    if first_token_at is None:
                        first_token_at = time.monotonic()
                        metrics.observe(
                            "provider.llm.ttft_ms",
                            (first_token_at - started) * 1000,
                            labels={"provider": self.name},
                        )
                    pieces.append(text)
                    yield StreamEvent.token(text)
        except StreamTransportError as e:
            metrics.inc("provider.llm.errors", labels={"provider": self.name})
            logger.error(
                "%s stream failed after %d chunks: %s",
                self.name,
                len(pieces),
                e.message,
                extra={"provider": self.name},
            )
            yield StreamEvent.error(e.code, e.message)
            return

        full_text = "".join(pieces)
        logger.info(
            "%s stream complete (%d chars)",
            self.name,
            len(full_text),
            extra={"provider": self.name, "duration_ms": round((time.monotonic() - started) * 1000)},
        )
        self._remember(full_text, "assistant")
        yield StreamEvent.end()

    def stream_chat(self, messages: list[NormalizedMessage]) -> AsyncIterator[str]:
        """The stream in the normalized `data: ...` wire format."""
        return to_sse(self.stream_generate(messages))

    # ─── Shared prompt preparation ──────────────────────────────

    async def prepare(self, messages: list[NormalizedMessage]) -> PreparedPrompt:
        validate_messages(messages)
        system = DEFAULT_SYSTEM_PROMPT
        turns: list[NormalizedMessage] = []
        for message in messages:
            if message.role == Role.SYSTEM:
                system = message.text or DEFAULT_SYSTEM_PROMPT
                continue
            self._translate_into_memory(message)
            turns.append(message)

        query_text = next((m.text for m in reversed(turns) if m.role == Role.USER), "")

        if query_text and self.retrieval is not None:
            context, citations = await self.retrieval.query(query_text, self._retrieval_model())
            if context:
                logger.info(
                    "Knowledge base added %d chars of context (%d citations)",
                    len(context),
                    len(citations),
                    extra={"provider": self.name},
                )
                system = KNOWLEDGE_BASE_TEMPLATE.format(system=system, context=context)

        if self.memory is not None:
            conversation = self.memory.render_context()
            if conversation != EMPTY_CONTEXT:
                system = f"{system}\n\n{conversation}"

        return PreparedPrompt(system=system, turns=turns, query_text=query_text)

    def _translate_into_memory(self, message: NormalizedMessage) -> None:
        for part in message.content:
            if isinstance(part, TextPart) and part.text:
                self._remember(part.text, message.role.value)
            elif isinstance(part, ImagePart):
                self._remember("[Image data]", "vision")

    def _remember(self, content: str, role: str) -> None:
        if self.memory is not None and content:
            self.memory.append(content, role)

    def _retrieval_model(self) -> str | None:
        """Model used to generate knowledge-base answers; None means the KB client default."""
        return None

    # ─── Native calls ───────────────────────────────────────────

    @abstractmethod
    async def _complete(self, prompt: PreparedPrompt) -> str:
        ...

    @abstractmethod
    def _stream_text(self, prompt: PreparedPrompt) -> AsyncIterator[str]:
        """Yield native text deltas. Raise StreamTransportError on transport failure.

        Malformed native chunks are logged and skipped by the implementation.
        When the consumer stops early the generator is closed and must close
        the native stream.
        """
        ...

    async def aclose(self) -> None:
        """Release provider clients."""


class STTProvider(ABC):
    """Speech-to-text provider."""

    name: ClassVar[str] = ""
    capabilities: ClassVar[frozenset[Capability]] = frozenset({Capability.STT})

    def __init__(self, credentials: "ResolvedCredentials", mode: str = Capability.STT):
        self.mode = check_capability(type(self), mode)
        self.credentials = credentials

    @abstractmethod
    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str | None:
        ...

    async def aclose(self) -> None:
        """Release provider clients."""
