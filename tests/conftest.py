"""Shared fakes for the askrelay test suite. No network, no API keys."""

from __future__ import annotations

import asyncio

import pytest

from askrelay.core.metrics import metrics
from askrelay.credentials import ResolvedCredentials
from askrelay.errors import StreamTransportError
from askrelay.llm.contracts import PreparedPrompt
from askrelay.providers.base import Capability, LLMProvider


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLLM(LLMProvider):
    """Scripted adapter: yields `chunks`, then optionally fails."""

    name = "fake"
    capabilities = frozenset({Capability.LLM, Capability.STREAMING_LLM})

    def __init__(self, chunks=("Hello", " world"), fail_with: str | None = None,
                 delay: float = 0.0, **kwargs):
        kwargs.setdefault("credentials", ResolvedCredentials(provider="fake", model_id="fake-1"))
        super().__init__(**kwargs)
        self.chunks = list(chunks)
        self.fail_with = fail_with
        self.delay = delay
        self.prompts: list[PreparedPrompt] = []
        self.stream_closed = False
        self.closed = False

    async def _complete(self, prompt: PreparedPrompt) -> str:
        self.prompts.append(prompt)
        return "".join(self.chunks)

    async def _stream_text(self, prompt: PreparedPrompt):
        self.prompts.append(prompt)
        try:
            for chunk in self.chunks:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield chunk
            if self.fail_with:
                raise StreamTransportError(self.fail_with)
        finally:
            self.stream_closed = True

    async def aclose(self) -> None:
        self.closed = True


class RawWireLLM(FakeLLM):
    """Adapter whose wire output is given verbatim, malformed lines included."""

    def __init__(self, lines, **kwargs):
        super().__init__(**kwargs)
        self.lines = list(lines)

    async def _wire(self):
        for line in self.lines:
            yield line

    def stream_chat(self, messages):
        return self._wire()


class FakeFactory:
    def __init__(self, adapter=None, error: Exception | None = None):
        self.adapter = adapter if adapter is not None else FakeLLM()
        self.error = error
        self.calls: list[dict] = []

    async def create(self, provider_name, mode, *, overrides=None, params=None, memory=None):
        self.calls.append(
            {"provider": provider_name, "mode": mode, "params": params, "memory": memory}
        )
        if self.error is not None:
            raise self.error
        self.adapter.memory = memory
        if params is not None:
            self.adapter.params = params
        return self.adapter


class RecordingChannel:
    def __init__(self):
        self.events: list[tuple[str, str]] = []

    async def hide_input(self) -> None:
        self.events.append(("hide_input", ""))

    async def chunk(self, token: str) -> None:
        self.events.append(("chunk", token))

    async def stream_end(self) -> None:
        self.events.append(("stream_end", ""))

    @property
    def tokens(self) -> list[str]:
        return [t for kind, t in self.events if kind == "chunk"]


class FakeHistory:
    def __init__(self, turns=None):
        self.turns = list(turns or [])
        self.limits: list[int] = []

    async def recent(self, limit: int) -> list[str]:
        self.limits.append(limit)
        return self.turns[-limit:]


class FakeScreenshots:
    def __init__(self, image=None, error: Exception | None = None):
        self.image = image
        self.error = error

    async def capture(self):
        if self.error is not None:
            raise self.error
        return self.image


class FakePrompts:
    def __init__(self):
        self.history_texts: list[str] = []

    def build(self, history_text: str) -> str:
        self.history_texts.append(history_text)
        return f"SYSTEM\n{history_text}"


class FakeRepository:
    def __init__(self, fail_on_add: bool = False):
        self.fail_on_add = fail_on_add
        self.sessions: list[tuple[str, str]] = []
        self.messages: list[tuple[str, str, str]] = []

    async def get_or_create_active_session(self, user_id: str, feature: str) -> str:
        self.sessions.append((user_id, feature))
        return f"session-{user_id}"

    async def add_message(self, session_id: str, role: str, content: str) -> None:
        if self.fail_on_add:
            raise RuntimeError("database is locked")
        self.messages.append((session_id, role, content))


class FakeSecretStore:
    def __init__(self, keys=None):
        self.keys = dict(keys or {})

    async def get_api_key(self, provider: str):
        return self.keys.get(provider)


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock():
    return FakeClock()
