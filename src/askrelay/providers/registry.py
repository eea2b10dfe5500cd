"""
Provider Registry — builds the right adapter for a provider name and mode.

The registry is a static table, ProviderName -> {Capability -> adapter class},
built once at import. Add a new provider? Add a row. No plugin systems, no
metaclasses.

One exception to "unsupported mode is an error": speech-to-text requested from
an llm-only provider falls back to OpenAI, with credentials re-resolved from
the environment only.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Mapping

from askrelay.core.logging import mask_secret
from askrelay.credentials import CredentialResolver, ResolvedCredentials
from askrelay.errors import (
    MissingCredentialError,
    UnsupportedCapabilityError,
    UnsupportedProviderError,
)
from askrelay.llm.contracts import RequestParams
from askrelay.memory.window import MemoryWindow
from askrelay.providers.base import Capability, LLMProvider, STTProvider
from askrelay.providers.bedrock_claude import BedrockClaudeProvider
from askrelay.providers.gemini_llm import GeminiLLMProvider
from askrelay.providers.openai_llm import OpenAILLMProvider
from askrelay.providers.openai_stt import OpenAISTTProvider
from askrelay.retrieval.client import KnowledgeBaseClient

logger = logging.getLogger(__name__)


class ProviderName(str, Enum):
    OPENAI = "openai"
    BEDROCK = "bedrock"
    GEMINI = "gemini"


DEFAULT_STT_PROVIDER = ProviderName.OPENAI

REGISTRY: dict[ProviderName, dict[Capability, type]] = {
    ProviderName.OPENAI: {
        Capability.STT: OpenAISTTProvider,
        Capability.LLM: OpenAILLMProvider,
        Capability.STREAMING_LLM: OpenAILLMProvider,
    },
    ProviderName.BEDROCK: {
        Capability.LLM: BedrockClaudeProvider,
        Capability.STREAMING_LLM: BedrockClaudeProvider,
    },
    ProviderName.GEMINI: {
        Capability.LLM: GeminiLLMProvider,
        Capability.STREAMING_LLM: GeminiLLMProvider,
    },
}


def parse_provider(name: str) -> ProviderName:
    try:
        return ProviderName((name or "").strip().lower())
    except ValueError:
        raise UnsupportedProviderError(name) from None


def parse_capability(provider: ProviderName, mode: str) -> Capability:
    try:
        return Capability(mode)
    except ValueError:
        raise UnsupportedCapabilityError(provider.value, str(mode)) from None


def available_providers() -> dict[str, list[str]]:
    """Provider names grouped by what they can do."""
    return {
        "stt": [p.value for p, modes in REGISTRY.items() if Capability.STT in modes],
        "llm": [p.value for p, modes in REGISTRY.items() if Capability.LLM in modes],
    }


class ProviderFactory:
    def __init__(
        self,
        resolver: CredentialResolver,
        retrieval: KnowledgeBaseClient | None = None,
    ):
        self.resolver = resolver
        self._retrieval = retrieval
        self._kb_client: KnowledgeBaseClient | None = None
        self._kb_key: tuple | None = None
        self._kb_lock = asyncio.Lock()

    async def create(
        self,
        provider_name: str,
        mode: str,
        *,
        overrides: Mapping[str, str | None] | None = None,
        params: RequestParams | None = None,
        memory: MemoryWindow | None = None,
    ) -> LLMProvider | STTProvider:
        """Resolve credentials and build one adapter.

        Raises UnsupportedProviderError, UnsupportedCapabilityError or
        MissingCredentialError.
        """
        provider = parse_provider(provider_name)
        capability = parse_capability(provider, mode)
        env_only = False

        if capability not in REGISTRY[provider]:
            if capability != Capability.STT:
                raise UnsupportedCapabilityError(provider.value, capability.value)
            logger.warning(
                "%s has no speech-to-text; falling back to %s",
                provider.value,
                DEFAULT_STT_PROVIDER.value,
                extra={"provider": provider.value},
            )
            provider = DEFAULT_STT_PROVIDER
            env_only = True

        adapter_cls = REGISTRY[provider][capability]
        credentials = await self.resolver.resolve(
            provider.value, overrides, env_only=env_only
        )
        if env_only:
            logger.info(
                "Using %s key from environment for STT (%s)",
                provider.value,
                mask_secret(credentials.key_material),
            )

        if capability == Capability.STT:
            return adapter_cls(credentials, mode=capability)

        retrieval = await self._knowledge_base(provider, credentials)
        return adapter_cls(
            credentials, params=params, memory=memory, retrieval=retrieval, mode=capability
        )

    async def _knowledge_base(
        self, provider: ProviderName, credentials: ResolvedCredentials
    ) -> KnowledgeBaseClient | None:
        """The shared knowledge-base client for the current AWS credentials.

        Credentials are re-resolved on every call; the client is rebuilt only
        when the knowledge-base id, region or access key changes. Retrieval is
        optional: without a knowledge-base id or AWS credentials adapters run
        without it.
        """
        if self._retrieval is not None:
            return self._retrieval

        async with self._kb_lock:
            if provider == ProviderName.BEDROCK:
                aws = credentials
            else:
                try:
                    aws = await self.resolver.resolve(ProviderName.BEDROCK.value)
                except MissingCredentialError:
                    logger.debug("No AWS credentials; knowledge base disabled")
                    return None

            if not aws.knowledge_base_id:
                logger.debug("No knowledge base id configured; retrieval disabled")
                return None

            key = (aws.knowledge_base_id, aws.region, aws.access_key_id)
            if self._kb_client is None or self._kb_key != key:
                self._kb_client = KnowledgeBaseClient(aws.knowledge_base_id, aws)
                self._kb_key = key
                logger.info("Knowledge base client ready (kb=%s)", aws.knowledge_base_id)
            return self._kb_client
