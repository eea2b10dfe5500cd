"""Tests for the provider factory and capability registry."""

import asyncio
from unittest.mock import MagicMock

import pytest

import askrelay.providers.registry as registry_module
from askrelay.credentials import CredentialResolver
from askrelay.errors import (
    MissingCredentialError,
    UnsupportedCapabilityError,
    UnsupportedProviderError,
)
from askrelay.llm.contracts import RequestParams
from askrelay.memory.window import MemoryWindow
from askrelay.providers.base import Capability
from askrelay.providers.bedrock_claude import BedrockClaudeProvider
from askrelay.providers.gemini_llm import GeminiLLMProvider
from askrelay.providers.openai_llm import OpenAILLMProvider
from askrelay.providers.openai_stt import OpenAISTTProvider
from askrelay.providers.registry import ProviderFactory, available_providers

from conftest import FakeSecretStore

ENV = {
    "OPENAI_API_KEY": " sk-env-openai ",
    "GEMINI_API_KEY": "gm-env",
    "AWS_ACCESS_KEY_ID": "AKIAENV",
    "AWS_SECRET_ACCESS_KEY": "env-secret",
}


@pytest.fixture
def boto_client(monkeypatch):
    fake = MagicMock()
    monkeypatch.setattr("askrelay.providers.bedrock_claude.boto3.client", fake)
    return fake


@pytest.fixture
def kb_class(monkeypatch):
    fake = MagicMock()
    monkeypatch.setattr(registry_module, "KnowledgeBaseClient", fake)
    return fake


def test_available_providers():
    assert available_providers() == {"stt": ["openai"], "llm": ["openai", "bedrock", "gemini"]}


@pytest.mark.asyncio
async def test_unknown_provider():
    factory = ProviderFactory(CredentialResolver(environ=ENV))
    with pytest.raises(UnsupportedProviderError):
        await factory.create("mistral", Capability.LLM)


@pytest.mark.asyncio
async def test_unknown_mode():
    factory = ProviderFactory(CredentialResolver(environ=ENV))
    with pytest.raises(UnsupportedCapabilityError):
        await factory.create("openai", "embeddings")


@pytest.mark.asyncio
async def test_creates_streaming_llm_with_params_and_memory(kb_class):
    factory = ProviderFactory(CredentialResolver(environ=ENV))
    memory = MemoryWindow()
    params = RequestParams(temperature=0.2, max_tokens=100)

    provider = await factory.create(" OpenAI ", "streamingLlm", params=params, memory=memory)

    assert isinstance(provider, OpenAILLMProvider)
    assert provider.credentials.api_key == "sk-env-openai"
    assert provider.params is params
    assert provider.memory is memory
    assert provider.mode == Capability.STREAMING_LLM
    assert provider.retrieval is None
    kb_class.assert_not_called()


@pytest.mark.asyncio
async def test_gemini_llm(kb_class):
    factory = ProviderFactory(CredentialResolver(environ=ENV))
    provider = await factory.create("gemini", Capability.LLM)
    assert isinstance(provider, GeminiLLMProvider)
    assert provider.model == "gemini-2.5-flash"
    await provider.aclose()


@pytest.mark.asyncio
async def test_bedrock_stt_falls_back_to_openai_with_env_key(boto_client):
    resolver = CredentialResolver(FakeSecretStore({"bedrock": "AKIASTORED", "openai": "sk-stored"}), environ=ENV)
    factory = ProviderFactory(resolver)

    stt = await factory.create("bedrock", Capability.STT, overrides={"api_key": "sk-override"})

    assert isinstance(stt, OpenAISTTProvider)
    assert stt.credentials.provider == "openai"
    assert stt.credentials.api_key == "sk-env-openai"


@pytest.mark.asyncio
async def test_stt_fallback_without_openai_key_is_missing_credential():
    factory = ProviderFactory(CredentialResolver(environ={"GEMINI_API_KEY": "gm-env"}))
    with pytest.raises(MissingCredentialError):
        await factory.create("gemini", Capability.STT)


@pytest.mark.asyncio
async def test_missing_credentials_surface(kb_class):
    factory = ProviderFactory(CredentialResolver(environ={}))
    with pytest.raises(MissingCredentialError):
        await factory.create("openai", Capability.STREAMING_LLM)


@pytest.mark.asyncio
async def test_knowledge_base_client_built_once_and_shared(boto_client, kb_class):
    env = {**ENV, "AWS_KNOWLEDGE_BASE_ID": "KB123", "AWS_REGION": "eu-west-1"}
    factory = ProviderFactory(CredentialResolver(environ=env))

    first = await factory.create("bedrock", Capability.STREAMING_LLM)
    second = await factory.create("openai", Capability.STREAMING_LLM)

    assert isinstance(first, BedrockClaudeProvider)
    assert first.retrieval is second.retrieval is kb_class.return_value
    kb_class.assert_called_once()
    kb_id, creds = kb_class.call_args.args
    assert kb_id == "KB123"
    assert creds.region == "eu-west-1"
    boto_client.assert_called_once()
    assert boto_client.call_args.args == ("bedrock-runtime",)
    assert boto_client.call_args.kwargs["region_name"] == "eu-west-1"


@pytest.mark.asyncio
async def test_injected_retrieval_is_used(kb_class):
    retrieval = MagicMock()
    factory = ProviderFactory(CredentialResolver(environ=ENV), retrieval=retrieval)
    provider = await factory.create("openai", Capability.LLM)
    assert provider.retrieval is retrieval
    kb_class.assert_not_called()


class YieldingResolver(CredentialResolver):
    async def resolve(self, provider_name, overrides=None, *, env_only=False):
        await asyncio.sleep(0)
        return await super().resolve(provider_name, overrides, env_only=env_only)


@pytest.mark.asyncio
async def test_concurrent_creates_share_knowledge_base(kb_class):
    env = {**ENV, "AWS_KNOWLEDGE_BASE_ID": "KB123"}
    factory = ProviderFactory(YieldingResolver(environ=env))

    a, b = await asyncio.gather(
        factory.create("openai", Capability.STREAMING_LLM),
        factory.create("openai", Capability.STREAMING_LLM),
    )

    assert a.retrieval is kb_class.return_value
    assert b.retrieval is kb_class.return_value
    kb_class.assert_called_once()


@pytest.mark.asyncio
async def test_knowledge_base_id_set_later_takes_effect(kb_class):
    resolver = CredentialResolver(environ=ENV)
    factory = ProviderFactory(resolver)

    first = await factory.create("openai", Capability.STREAMING_LLM)
    resolver.set_knowledge_base_id("KB-user")
    second = await factory.create("openai", Capability.STREAMING_LLM)

    assert first.retrieval is None
    assert second.retrieval is kb_class.return_value
    assert kb_class.call_args.args[0] == "KB-user"


@pytest.mark.asyncio
async def test_knowledge_base_rebuilt_when_id_changes(kb_class):
    kb_class.side_effect = lambda kb_id, creds: MagicMock(kb_id=kb_id)
    resolver = CredentialResolver(environ={**ENV, "AWS_KNOWLEDGE_BASE_ID": "KB-env"})
    factory = ProviderFactory(resolver)

    first = await factory.create("openai", Capability.STREAMING_LLM)
    again = await factory.create("openai", Capability.STREAMING_LLM)
    resolver.set_knowledge_base_id("KB-user")
    changed = await factory.create("openai", Capability.STREAMING_LLM)

    assert first.retrieval is again.retrieval
    assert first.retrieval.kb_id == "KB-env"
    assert changed.retrieval.kb_id == "KB-user"
    assert kb_class.call_count == 2
