"""
LLM Package — provider-neutral message and stream contracts.

- contracts: NormalizedMessage, StreamEvent, RequestParams, AskRequest
- sse: the normalized `data: ...` wire format every stream ends up in
"""

from askrelay.llm.contracts import (
    AskRequest,
    ImageAttachment,
    ImagePart,
    NormalizedMessage,
    PreparedPrompt,
    RequestParams,
    Role,
    StreamEvent,
    StreamEventType,
    TextPart,
)

__all__ = [
    "AskRequest",
    "ImageAttachment",
    "ImagePart",
    "NormalizedMessage",
    "PreparedPrompt",
    "RequestParams",
    "Role",
    "StreamEvent",
    "StreamEventType",
    "TextPart",
]
