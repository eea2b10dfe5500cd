"""
askrelay configuration — single source of truth for non-secret settings.

Reads from environment variables (and a local .env) with sensible defaults.
Secrets are NOT held here: provider keys go through the CredentialResolver,
which re-reads the environment on every request.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class AskConfig:
    """Ask pipeline settings."""

    provider: str = "openai"
    history_turns: int = 30
    temperature: float = 0.7
    max_tokens: int = 2048
    channel_buffer: int = 256  # bounded UI queue, in events
    feature: str = "ask"  # session feature tag for persistence

    @classmethod
    def from_env(cls) -> AskConfig:
        return cls(
            provider=os.getenv("ASKRELAY_PROVIDER", "openai").strip().lower(),
            history_turns=int(os.getenv("ASKRELAY_HISTORY_TURNS", "30")),
            temperature=float(os.getenv("ASKRELAY_TEMPERATURE", "0.7")),
            max_tokens=int(os.getenv("ASKRELAY_MAX_TOKENS", "2048")),
            channel_buffer=int(os.getenv("ASKRELAY_CHANNEL_BUFFER", "256")),
            feature=os.getenv("ASKRELAY_FEATURE", "ask"),
        )


@dataclass(frozen=True)
class MemoryConfig:
    """Short-term conversation memory settings."""

    window_size: int = 10
    window_seconds: float = 300.0

    @classmethod
    def from_env(cls) -> MemoryConfig:
        return cls(
            window_size=int(os.getenv("ASKRELAY_MEMORY_WINDOW_SIZE", "10")),
            window_seconds=float(os.getenv("ASKRELAY_MEMORY_WINDOW_SECONDS", "300")),
        )


@dataclass(frozen=True)
class RelayConfig:
    """Root configuration."""

    ask: AskConfig = field(default_factory=AskConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)

    @classmethod
    def from_env(cls) -> RelayConfig:
        return cls(
            ask=AskConfig.from_env(),
            memory=MemoryConfig.from_env(),
        )


# Singleton: import the module (not the name) to see reloads
config = RelayConfig.from_env()


def reload_config() -> RelayConfig:
    """Re-read the environment and replace the module-level singleton."""
    global config
    config = RelayConfig.from_env()
    return config
