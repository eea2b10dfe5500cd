"""askrelay — multi-provider streaming LLM gateway with knowledge-base context."""

from askrelay.ask import AskOrchestrator, AskResult, AskState, QueueChannel, SessionManager
from askrelay.credentials import CredentialResolver, ResolvedCredentials
from askrelay.errors import AskRelayError
from askrelay.memory.window import MemoryWindow
from askrelay.providers import ProviderFactory, available_providers
from askrelay.retrieval.client import KnowledgeBaseClient

__version__ = "0.1.0"

__all__ = [
    "AskOrchestrator",
    "AskRelayError",
    "AskResult",
    "AskState",
    "CredentialResolver",
    "KnowledgeBaseClient",
    "MemoryWindow",
    "ProviderFactory",
    "QueueChannel",
    "ResolvedCredentials",
    "SessionManager",
    "available_providers",
]
