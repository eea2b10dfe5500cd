"""
Session Manager — one orchestrator and one MemoryWindow per session.

Each session gets its own conversation memory, so concurrent sessions never
see each other's context. Sessions idle longer than the memory window are
dropped on the next lookup.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

from askrelay.ask.channel import NullChannel
from askrelay.ask.orchestrator import (
    AskChannel,
    AskOrchestrator,
    AskResult,
    HistorySource,
    PromptBuilder,
    ScreenshotSource,
    SessionRepository,
)
from askrelay.core.config import RelayConfig
from askrelay.core.config import config as default_config
from askrelay.memory.window import MemoryWindow
from askrelay.providers.registry import ProviderFactory

logger = logging.getLogger(__name__)


@dataclass
class AskSession:
    session_id: str
    orchestrator: AskOrchestrator
    memory: MemoryWindow
    last_active: float = field(default_factory=time.monotonic)


class SessionManager:
    def __init__(
        self,
        factory: ProviderFactory,
        history: HistorySource,
        screenshots: ScreenshotSource | None,
        prompts: PromptBuilder,
        repository: SessionRepository,
        *,
        user_id: str | None = None,
        config: RelayConfig | None = None,
        idle_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.factory = factory
        self.history = history
        self.screenshots = screenshots
        self.prompts = prompts
        self.repository = repository
        self.user_id = user_id
        self.config = config or default_config
        self.idle_seconds = (
            idle_seconds if idle_seconds is not None else self.config.memory.window_seconds
        )
        self._clock = clock
        self._sessions: dict[str, AskSession] = {}

    def get(self, session_id: str | None = None) -> AskSession:
        """Look up a session, creating it when unknown."""
        self._evict_idle()
        session_id = session_id or str(uuid.uuid4())
        session = self._sessions.get(session_id)
        if session is None:
            memory = MemoryWindow(
                capacity=self.config.memory.window_size,
                window_seconds=self.config.memory.window_seconds,
            )
            orchestrator = AskOrchestrator(
                self.factory,
                NullChannel(),
                self.history,
                self.screenshots,
                self.prompts,
                self.repository,
                user_id=self.user_id,
                memory=memory,
                config=self.config,
            )
            session = AskSession(session_id, orchestrator, memory, self._clock())
            self._sessions[session_id] = session
            logger.info("Session created", extra={"session_id": session_id})
        session.last_active = self._clock()
        return session

    async def ask(
        self,
        session_id: str | None,
        text: str,
        *,
        channel: AskChannel | None = None,
        timeout: float | None = None,
    ) -> AskResult:
        session = self.get(session_id)
        result = await session.orchestrator.send_message(text, timeout=timeout, channel=channel)
        session.last_active = self._clock()
        return result

    def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.memory.clear()
        logger.info("Session closed", extra={"session_id": session_id})
        return True

    def active_sessions(self) -> list[str]:
        return list(self._sessions)

    def _evict_idle(self) -> None:
        now = self._clock()
        stale = [
            sid
            for sid, s in self._sessions.items()
            if now - s.last_active > self.idle_seconds and not s.orchestrator.busy
        ]
        for sid in stale:
            self.close(sid)
