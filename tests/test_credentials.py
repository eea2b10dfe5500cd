"""Tests for credential resolution precedence."""

import pytest

from askrelay.credentials import CredentialResolver, DEFAULT_MODELS
from askrelay.errors import MissingCredentialError, UnsupportedProviderError

from conftest import FakeSecretStore


AWS_ENV = {
    "AWS_ACCESS_KEY_ID": "AKIAENV",
    "AWS_SECRET_ACCESS_KEY": "env-secret",
}


@pytest.mark.asyncio
async def test_override_beats_stored_and_env():
    resolver = CredentialResolver(
        FakeSecretStore({"openai": "sk-stored"}), environ={"OPENAI_API_KEY": "sk-env"}
    )
    creds = await resolver.resolve("openai", {"api_key": "sk-override"})
    assert creds.api_key == "sk-override"


@pytest.mark.asyncio
async def test_stored_beats_env():
    resolver = CredentialResolver(
        FakeSecretStore({"openai": "sk-stored"}), environ={"OPENAI_API_KEY": "sk-env"}
    )
    creds = await resolver.resolve("openai")
    assert creds.api_key == "sk-stored"


@pytest.mark.asyncio
async def test_env_only_source():
    resolver = CredentialResolver(environ={"GEMINI_API_KEY": "  gm-env \n"})
    creds = await resolver.resolve("gemini")
    assert creds.api_key == "gm-env"
    assert creds.model_id == DEFAULT_MODELS["gemini"]


@pytest.mark.asyncio
async def test_model_from_env_and_stt_default():
    resolver = CredentialResolver(
        environ={"OPENAI_API_KEY": "sk-env", "ASKRELAY_OPENAI_MODEL": "gpt-4o-mini"}
    )
    creds = await resolver.resolve("OpenAI")
    assert creds.provider == "openai"
    assert creds.model_id == "gpt-4o-mini"
    assert creds.stt_model_id == "whisper-1"


@pytest.mark.asyncio
async def test_session_token_uses_env_triple_even_with_stored_key():
    env = {**AWS_ENV, "AWS_SESSION_TOKEN": "env-token"}
    resolver = CredentialResolver(FakeSecretStore({"bedrock": "AKIASTORED"}), environ=env)
    creds = await resolver.resolve("bedrock")
    assert creds.access_key_id == "AKIAENV"
    assert creds.secret_access_key == "env-secret"
    assert creds.session_token == "env-token"


@pytest.mark.asyncio
async def test_stored_aws_key_without_session_token():
    resolver = CredentialResolver(FakeSecretStore({"bedrock": "AKIASTORED"}), environ=AWS_ENV)
    creds = await resolver.resolve("bedrock")
    assert creds.access_key_id == "AKIASTORED"
    assert creds.secret_access_key == "env-secret"
    assert creds.session_token is None


@pytest.mark.asyncio
async def test_override_key_pair_never_borrows_env_token():
    env = {**AWS_ENV, "AWS_SESSION_TOKEN": "env-token"}
    resolver = CredentialResolver(environ=env)
    creds = await resolver.resolve(
        "bedrock", {"access_key_id": "AKIAOVR", "secret_access_key": "ovr-secret"}
    )
    assert creds.access_key_id == "AKIAOVR"
    assert creds.secret_access_key == "ovr-secret"
    assert creds.session_token is None


@pytest.mark.asyncio
async def test_override_key_without_secret_never_borrows_env_secret():
    resolver = CredentialResolver(environ=AWS_ENV)
    with pytest.raises(MissingCredentialError) as exc:
        await resolver.resolve("bedrock", {"access_key_id": "AKIAOVR"})
    assert exc.value.field == "AWS secret access key"
    assert "env-secret" not in exc.value.message


@pytest.mark.asyncio
async def test_bedrock_defaults():
    resolver = CredentialResolver(environ=AWS_ENV)
    creds = await resolver.resolve("bedrock")
    assert creds.region == "us-east-1"
    assert creds.model_id == "anthropic.claude-3-haiku-20240307-v1:0"
    assert creds.knowledge_base_id is None


@pytest.mark.asyncio
async def test_knowledge_base_id_precedence():
    resolver = CredentialResolver(environ={**AWS_ENV, "AWS_KNOWLEDGE_BASE_ID": "KBENV"})
    assert (await resolver.resolve("bedrock")).knowledge_base_id == "KBENV"

    resolver.set_knowledge_base_id("KBUSER")
    assert (await resolver.resolve("bedrock")).knowledge_base_id == "KBUSER"

    creds = await resolver.resolve("bedrock", {"knowledge_base_id": "KBOVR"})
    assert creds.knowledge_base_id == "KBOVR"


@pytest.mark.asyncio
async def test_env_only_ignores_overrides_and_store():
    resolver = CredentialResolver(
        FakeSecretStore({"openai": "sk-stored"}), environ={"OPENAI_API_KEY": "sk-env"}
    )
    creds = await resolver.resolve("openai", {"api_key": "sk-override"}, env_only=True)
    assert creds.api_key == "sk-env"


@pytest.mark.asyncio
async def test_missing_key_names_env_var():
    resolver = CredentialResolver(environ={})
    with pytest.raises(MissingCredentialError) as exc:
        await resolver.resolve("openai")
    assert "OPENAI_API_KEY" in exc.value.message
    assert exc.value.provider == "openai"


@pytest.mark.asyncio
async def test_missing_aws_secret():
    resolver = CredentialResolver(environ={"AWS_ACCESS_KEY_ID": "AKIAENV"})
    with pytest.raises(MissingCredentialError) as exc:
        await resolver.resolve("bedrock")
    assert "AWS_SECRET_ACCESS_KEY" in exc.value.message


@pytest.mark.asyncio
async def test_unknown_provider():
    with pytest.raises(UnsupportedProviderError):
        await CredentialResolver(environ={}).resolve("mistral")


@pytest.mark.asyncio
async def test_repr_masks_secrets():
    resolver = CredentialResolver(environ={"OPENAI_API_KEY": "sk-verysecretvalue"})
    creds = await resolver.resolve("openai")
    assert "verysecretvalue" not in repr(creds)
    assert "sk-ve..." in repr(creds)
