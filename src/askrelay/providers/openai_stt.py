"""OpenAI STT Provider — batch transcription via the audio transcriptions API."""

from __future__ import annotations

import logging
import time

import openai
from openai import AsyncOpenAI

from askrelay.core.metrics import metrics
from askrelay.providers.base import Capability, STTProvider

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
}


class OpenAISTTProvider(STTProvider):
    name = "openai"
    capabilities = frozenset({Capability.STT})

    def __init__(self, credentials, mode=Capability.STT, client: AsyncOpenAI | None = None):
        super().__init__(credentials, mode)
        self.client = client or AsyncOpenAI(api_key=credentials.api_key)
        self.model = credentials.stt_model_id or "whisper-1"
        logger.info("OpenAI STT ready (model=%s)", self.model)

    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str | None:
        """Transcribe one audio clip. Returns None for empty audio or an empty transcript."""
        if not audio:
            return None

        filename = f"audio.{_EXTENSIONS.get(mime_type, 'wav')}"
        started = time.monotonic()
        try:
            result = await self.client.audio.transcriptions.create(
                model=self.model,
                file=(filename, audio, mime_type),
            )
        except openai.APIError as e:
            metrics.inc("provider.stt.errors", labels={"provider": self.name})
            logger.error("Transcription failed: %s", e, extra={"provider": self.name})
            raise

        metrics.observe(
            "provider.stt.latency_ms",
            (time.monotonic() - started) * 1000,
            labels={"provider": self.name},
        )
        text = (result.text or "").strip()
        return text or None

    async def aclose(self) -> None:
        await self.client.close()
