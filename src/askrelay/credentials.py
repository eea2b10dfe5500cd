"""
Credential Resolver — per-provider auth material, model and region.

Precedence, highest first:
  1. caller-supplied overrides
  2. the user-entered secret from the SecretStore
  3. the environment session set (AWS_SESSION_TOKEN present): access key,
     secret and token are taken from the environment together, since a
     temporary token is only valid with the key pair it was issued for
  4. individual environment variables
  5. hard-coded defaults (model id and region only, never secrets)

resolve() is a pure function of the current environment and secret store
snapshot. Nothing is cached or written to disk.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from typing import Mapping, Protocol

from askrelay.core.logging import mask_secret
from askrelay.errors import MissingCredentialError, UnsupportedProviderError

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"

DEFAULT_MODELS = {
    "bedrock": "anthropic.claude-3-haiku-20240307-v1:0",
    "openai": "gpt-4.1",
    "gemini": "gemini-2.5-flash",
}
DEFAULT_STT_MODEL = "whisper-1"

# provider -> (api key env var, model env var)
_API_KEY_ENV = {
    "openai": ("OPENAI_API_KEY", "ASKRELAY_OPENAI_MODEL"),
    "gemini": ("GEMINI_API_KEY", "ASKRELAY_GEMINI_MODEL"),
}


class SecretStore(Protocol):
    """User-entered secrets (settings UI, keychain, ...)."""

    async def get_api_key(self, provider: str) -> str | None: ...


@dataclass(frozen=True)
class ResolvedCredentials:
    provider: str
    model_id: str
    api_key: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    region: str | None = None
    knowledge_base_id: str | None = None
    stt_model_id: str | None = None

    @property
    def key_material(self) -> str | None:
        return self.api_key or self.access_key_id

    def __repr__(self) -> str:
        shown = []
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in ("api_key", "access_key_id", "secret_access_key", "session_token"):
                value = mask_secret(value)
            shown.append(f"{f.name}={value!r}")
        return f"ResolvedCredentials({', '.join(shown)})"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CredentialResolver:
    def __init__(
        self,
        secret_store: SecretStore | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self._secret_store = secret_store
        self._environ = environ
        self._knowledge_base_id: str | None = None

    def set_knowledge_base_id(self, kb_id: str | None) -> None:
        """User-entered knowledge base id; ranks above AWS_KNOWLEDGE_BASE_ID."""
        self._knowledge_base_id = _clean(kb_id)

    async def resolve(
        self,
        provider_name: str,
        overrides: Mapping[str, str | None] | None = None,
        *,
        env_only: bool = False,
    ) -> ResolvedCredentials:
        """Resolve credentials for a provider.

        env_only skips overrides and the stored secret; used when a request
        is re-routed to a different provider than the user configured.
        """
        provider = provider_name.strip().lower()
        overrides = {} if env_only else {k: _clean(v) for k, v in (overrides or {}).items()}
        stored = None if env_only else await self._stored_key(provider)

        if provider == "bedrock":
            creds = self._resolve_aws(overrides, stored)
        elif provider in _API_KEY_ENV:
            creds = self._resolve_api_key(provider, overrides, stored)
        else:
            raise UnsupportedProviderError(provider)

        logger.debug(
            "Resolved %s credentials: key=%s model=%s",
            provider,
            mask_secret(creds.key_material),
            creds.model_id,
            extra={"provider": provider},
        )
        return creds

    # ─── Per-provider rules ─────────────────────────────────────

    def _resolve_api_key(
        self, provider: str, overrides: Mapping[str, str | None], stored: str | None
    ) -> ResolvedCredentials:
        key_env, model_env = _API_KEY_ENV[provider]
        api_key = overrides.get("api_key") or stored or self._env(key_env)
        if not api_key:
            raise MissingCredentialError(provider, "API key", hint=key_env)
        return ResolvedCredentials(
            provider=provider,
            api_key=api_key,
            model_id=overrides.get("model_id") or self._env(model_env) or DEFAULT_MODELS[provider],
            stt_model_id=self._env("ASKRELAY_STT_MODEL") or DEFAULT_STT_MODEL,
        )

    def _resolve_aws(
        self, overrides: Mapping[str, str | None], stored: str | None
    ) -> ResolvedCredentials:
        session_token = self._env("AWS_SESSION_TOKEN")

        if overrides.get("access_key_id"):
            # An explicit key pair is used as a unit: no env secret, no env token.
            access_key_id = overrides["access_key_id"]
            secret = overrides.get("secret_access_key")
            if not secret:
                raise MissingCredentialError(
                    "bedrock", "AWS secret access key", hint="secret_access_key with the override key"
                )
            token = overrides.get("session_token")
        elif session_token:
            access_key_id = self._env("AWS_ACCESS_KEY_ID")
            secret = self._env("AWS_SECRET_ACCESS_KEY")
            token = session_token
            if stored:
                logger.info("Session token present; using environment AWS credentials as a set")
        else:
            access_key_id = stored or self._env("AWS_ACCESS_KEY_ID")
            secret = self._env("AWS_SECRET_ACCESS_KEY")
            token = None

        if not access_key_id:
            raise MissingCredentialError("bedrock", "AWS access key id", hint="AWS_ACCESS_KEY_ID")
        if not secret:
            raise MissingCredentialError(
                "bedrock", "AWS secret access key", hint="AWS_SECRET_ACCESS_KEY"
            )

        return ResolvedCredentials(
            provider="bedrock",
            access_key_id=access_key_id,
            secret_access_key=secret,
            session_token=token,
            region=overrides.get("region") or self._env("AWS_REGION") or DEFAULT_REGION,
            model_id=(
                overrides.get("model_id")
                or self._env("AWS_BEDROCK_MODEL")
                or DEFAULT_MODELS["bedrock"]
            ),
            knowledge_base_id=(
                overrides.get("knowledge_base_id")
                or self._knowledge_base_id
                or self._env("AWS_KNOWLEDGE_BASE_ID")
            ),
        )

    # ─── Sources ────────────────────────────────────────────────

    async def _stored_key(self, provider: str) -> str | None:
        if self._secret_store is None:
            return None
        return _clean(await self._secret_store.get_api_key(provider))

    def _env(self, name: str) -> str | None:
        environ = self._environ if self._environ is not None else os.environ
        return _clean(environ.get(name))
