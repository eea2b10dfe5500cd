"""
Ask Orchestrator — one question in, a streamed answer out, the exchange saved.

Per request:
  idle → capturing_context → dispatched → streaming → saving → done
with aborted reachable from any state.

1. capturing_context: reject blank input, hide the UI input, grab a
   screenshot (best-effort) and the last N transcript turns
2. dispatched: build system + user messages, create the streaming adapter
3. streaming: decode wire lines, forward tokens in order, salvage
   malformed lines
4. saving: persist the user turn then the assistant turn; a failure here
   annotates the result, it never fails it

Only fatal errors leave this module, and only as AskResult(success=False).
"""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import aclosing
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Mapping, Protocol

from askrelay.core.config import RelayConfig
from askrelay.core.config import config as default_config
from askrelay.core.logging import PipelineTimer
from askrelay.core.metrics import metrics
from askrelay.errors import (
    AskRelayError,
    EmptyInputError,
    MalformedChunkError,
    PersistenceError,
    StreamTransportError,
)
from askrelay.llm.contracts import AskRequest, ImageAttachment, NormalizedMessage, RequestParams
from askrelay.llm.sse import decode_line
from askrelay.memory.window import MemoryWindow
from askrelay.providers.base import Capability, LLMProvider
from askrelay.providers.registry import ProviderFactory

logger = logging.getLogger(__name__)

NO_HISTORY = "No conversation history available."
USER_REQUEST_PREFIX = "User Request: "
TIMEOUT_ERROR = "Request timed out"

# A malformed line is salvaged when anything readable survives this filter.
_SALVAGEABLE = re.compile(r"[\w.,?!;:'\"()\[\]{}-]")


# ─── Collaborators ──────────────────────────────────────────────


class AskChannel(Protocol):
    async def hide_input(self) -> None: ...

    async def chunk(self, token: str) -> None: ...

    async def stream_end(self) -> None: ...


class HistorySource(Protocol):
    async def recent(self, limit: int) -> list[str]: ...


class ScreenshotSource(Protocol):
    async def capture(self) -> ImageAttachment | None: ...


class PromptBuilder(Protocol):
    def build(self, history_text: str) -> str: ...


class SessionRepository(Protocol):
    async def get_or_create_active_session(self, user_id: str, feature: str) -> str: ...

    async def add_message(self, session_id: str, role: str, content: str) -> None: ...


# ─── Results ────────────────────────────────────────────────────


class AskState(str, Enum):
    IDLE = "idle"
    CAPTURING_CONTEXT = "capturing_context"
    DISPATCHED = "dispatched"
    STREAMING = "streaming"
    SAVING = "saving"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class AskResult:
    success: bool
    response: str | None = None
    error: str | None = None
    persist_error: str | None = None

    def as_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


def format_history(turns: list[str] | tuple[str, ...], limit: int) -> str:
    if not turns:
        return NO_HISTORY
    return "\n".join(turns[-limit:])


def build_messages(
    request: AskRequest, prompts: PromptBuilder, history_limit: int
) -> list[NormalizedMessage]:
    """System prompt with the rendered history, then the tagged user turn."""
    return [
        NormalizedMessage.system(prompts.build(format_history(request.history, history_limit))),
        NormalizedMessage.user(f"{USER_REQUEST_PREFIX}{request.text}", request.image),
    ]


# ─── Orchestrator ───────────────────────────────────────────────


class AskOrchestrator:
    """Runs ask requests for one session, one at a time."""

    def __init__(
        self,
        factory: ProviderFactory,
        channel: AskChannel,
        history: HistorySource,
        screenshots: ScreenshotSource | None,
        prompts: PromptBuilder,
        repository: SessionRepository,
        *,
        user_id: str | None,
        provider_name: str | None = None,
        memory: MemoryWindow | None = None,
        config: RelayConfig | None = None,
        overrides: Mapping[str, str | None] | None = None,
    ):
        self.factory = factory
        self.channel = channel
        self.history = history
        self.screenshots = screenshots
        self.prompts = prompts
        self.repository = repository
        self.user_id = user_id
        self.config = config or default_config
        self.provider_name = provider_name or self.config.ask.provider
        self.memory = memory
        self.overrides = overrides
        self.state = AskState.IDLE
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def send_message(
        self,
        text: str,
        *,
        timeout: float | None = None,
        channel: AskChannel | None = None,
    ) -> AskResult:
        """Answer one question. Never raises except on cancellation.

        channel replaces the default outbound channel for this request only.
        """
        async with self._lock:
            run = self._run(text, channel or self.channel)
            if timeout is None:
                return await run
            try:
                return await asyncio.wait_for(run, timeout)
            except asyncio.TimeoutError:
                self._set_state(AskState.ABORTED)
                metrics.inc("ask.timeouts")
                logger.warning("Ask timed out after %.1fs", timeout)
                return AskResult(success=False, error=TIMEOUT_ERROR)

    async def _run(self, text: str, channel: AskChannel) -> AskResult:
        self.state = AskState.IDLE
        timer = PipelineTimer()
        metrics.inc("ask.requests", labels={"provider": self.provider_name})
        try:
            if not text or not text.strip():
                raise EmptyInputError("Empty message")
            result = await self._ask(text.strip(), channel, timer)
        except asyncio.CancelledError:
            self._set_state(AskState.ABORTED)
            logger.info("Ask cancelled; nothing saved")
            raise
        except EmptyInputError as e:
            logger.warning("Cannot process empty message")
            return AskResult(success=False, error=e.message)
        except AskRelayError as e:
            self._set_state(AskState.ABORTED)
            metrics.inc("ask.errors", labels={"code": e.code})
            logger.error("Ask failed (%s): %s", e.code, e.message)
            return AskResult(success=False, error=e.message)
        except Exception as e:
            self._set_state(AskState.ABORTED)
            metrics.inc("ask.errors", labels={"code": "unexpected"})
            logger.exception("Ask failed unexpectedly")
            return AskResult(success=False, error=str(e) or type(e).__name__)

        logger.info(
            "Ask done: %s",
            timer.summary(),
            extra={"provider": self.provider_name, "duration_ms": round(timer.total() * 1000)},
        )
        return result

    async def _ask(self, text: str, channel: AskChannel, timer: PipelineTimer) -> AskResult:
        logger.info("Processing message: %s...", text[:50])
        self._set_state(AskState.CAPTURING_CONTEXT)
        await channel.hide_input()
        image = await self._capture_screenshot()
        limit = self.config.ask.history_turns
        turns = await self.history.recent(limit)
        request = AskRequest(
            text=text,
            provider_name=self.provider_name,
            image=image,
            history=tuple(turns[-limit:]),
        )
        timer.mark("context")

        messages = build_messages(request, self.prompts, limit)
        params = RequestParams(
            temperature=self.config.ask.temperature,
            max_tokens=self.config.ask.max_tokens,
        )

        self._set_state(AskState.DISPATCHED)
        adapter = await self.factory.create(
            request.provider_name,
            Capability.STREAMING_LLM,
            overrides=self.overrides,
            params=params,
            memory=self.memory,
        )
        timer.mark("dispatch")

        try:
            self._set_state(AskState.STREAMING)
            response = await self._stream(adapter, messages, channel)
        finally:
            await adapter.aclose()
        timer.mark("stream")

        await channel.stream_end()
        self._set_state(AskState.SAVING)
        persist_error = await self._save(text, response)
        timer.mark("save")

        self._set_state(AskState.DONE)
        return AskResult(success=True, response=response, persist_error=persist_error)

    async def _capture_screenshot(self) -> ImageAttachment | None:
        if self.screenshots is None:
            return None
        try:
            return await self.screenshots.capture()
        except Exception as e:
            logger.warning("Screenshot capture failed, continuing without image: %s", e)
            return None

    async def _stream(
        self, adapter: LLMProvider, messages: list[NormalizedMessage], channel: AskChannel
    ) -> str:
        """Forward tokens to the channel; return the full text at [DONE]."""
        pieces: list[str] = []
        async with aclosing(adapter.stream_chat(messages)) as wire:
            async for payload in wire:
                for line in payload.splitlines():
                    try:
                        chunk = decode_line(line)
                    except MalformedChunkError as e:
                        metrics.inc("ask.malformed_chunks")
                        logger.warning("Stream parse error: %s", e.message)
                        if _SALVAGEABLE.search(e.raw):
                            pieces.append(" ")
                            await channel.chunk(" ")
                        continue
                    if chunk is None:
                        continue
                    if chunk.done:
                        return "".join(pieces)
                    if chunk.token:
                        pieces.append(chunk.token)
                        await channel.chunk(chunk.token)
        raise StreamTransportError("Stream ended without completion marker")

    async def _save(self, text: str, response: str) -> str | None:
        """Persist the exchange; returns the failure message, if any."""
        try:
            if not self.user_id:
                raise PersistenceError("User not logged in, cannot save message.")
            try:
                session_id = await self.repository.get_or_create_active_session(
                    self.user_id, self.config.ask.feature
                )
                await self.repository.add_message(session_id, "user", text)
                await self.repository.add_message(session_id, "assistant", response)
            except Exception as e:
                raise PersistenceError(f"Failed to save ask/answer pair: {e}") from e
        except PersistenceError as e:
            metrics.inc("ask.persist_errors")
            logger.error("DB: %s", e.message)
            return e.message

        logger.info("DB: Saved ask/answer pair to session %s", session_id, extra={"session_id": session_id})
        return None

    def _set_state(self, state: AskState) -> None:
        self.state = state
        logger.debug("Ask state -> %s", state.value, extra={"state": state.value})
