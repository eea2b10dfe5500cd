"""Ask feature: one question in, a streamed answer out, the exchange saved."""

from askrelay.ask.channel import ChannelEvent, NullChannel, QueueChannel
from askrelay.ask.orchestrator import AskOrchestrator, AskResult, AskState
from askrelay.ask.sessions import SessionManager

__all__ = [
    "AskOrchestrator",
    "AskResult",
    "AskState",
    "ChannelEvent",
    "NullChannel",
    "QueueChannel",
    "SessionManager",
]
