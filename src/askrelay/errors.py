"""
askrelay errors — one taxonomy for every failure the gateway can hit.

Each error carries a machine-readable ``code`` and a human-readable
``message``. Only the fatal kinds ever reach the caller, and then only as a
structured ``AskResult(success=False, error=...)``:

    EmptyInputError            user-correctable, never retried
    MissingCredentialError     fatal for the request, surfaced verbatim
    UnsupportedProviderError   configuration error
    UnsupportedCapabilityError configuration error (except the STT fallback)
    StreamTransportError       fatal for the current stream

The rest are absorbed where they happen:

    RetrievalTransportError    degrades to the fallback context
    MalformedChunkError        salvaged or skipped
    PersistenceError           annotated on a successful result
"""

from __future__ import annotations


class AskRelayError(Exception):
    """Base class for all gateway errors."""

    code = "askrelay_error"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class EmptyInputError(AskRelayError):
    code = "empty_input"


class MissingCredentialError(AskRelayError):
    code = "missing_credential"

    def __init__(self, provider: str, field: str, hint: str = ""):
        message = f"No {field} configured for provider '{provider}'"
        if hint:
            message = f"{message} (set {hint})"
        super().__init__(message)
        self.provider = provider
        self.field = field


class UnsupportedProviderError(AskRelayError):
    code = "unsupported_provider"

    def __init__(self, provider: str):
        super().__init__(f"Unknown provider: {provider}")
        self.provider = provider


class UnsupportedCapabilityError(AskRelayError):
    code = "unsupported_capability"

    def __init__(self, provider: str, capability: str):
        super().__init__(f"Provider '{provider}' does not support {capability}")
        self.provider = provider
        self.capability = capability


class RetrievalTransportError(AskRelayError):
    code = "retrieval_transport"


class StreamTransportError(AskRelayError):
    code = "stream_transport"


class MalformedChunkError(AskRelayError):
    code = "malformed_chunk"

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class PersistenceError(AskRelayError):
    code = "persistence"
