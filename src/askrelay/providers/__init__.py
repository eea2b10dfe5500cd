"""
askrelay Providers — one interface, several LLM backends.

Each provider interface defines the contract. Concrete implementations
(OpenAI, Bedrock Claude, Gemini) live alongside. ProviderFactory picks one
by name and capability.
"""

from askrelay.providers.base import Capability, LLMProvider, STTProvider
from askrelay.providers.registry import ProviderFactory, ProviderName, available_providers

__all__ = [
    "Capability",
    "LLMProvider",
    "STTProvider",
    "ProviderFactory",
    "ProviderName",
    "available_providers",
]
