"""
LLM Contracts — the normalized shapes every provider adapter speaks.

- AskRequest: one inbound ask, immutable
- NormalizedMessage / TextPart / ImagePart: provider-neutral prompt
- StreamEvent: token | end | error, the uniform streaming output
- RequestParams: per-provider generation settings

Adapters translate these into their native request shape and translate the
native response back into StreamEvents. Nothing above the adapters ever sees
a provider-specific payload.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    data: bytes
    mime_type: str = "image/jpeg"

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


ContentPart = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class NormalizedMessage:
    role: Role
    content: tuple[ContentPart, ...] = ()

    @classmethod
    def system(cls, text: str) -> NormalizedMessage:
        return cls(role=Role.SYSTEM, content=(TextPart(text),))

    @classmethod
    def user(cls, text: str, image: ImageAttachment | None = None) -> NormalizedMessage:
        parts: list[ContentPart] = [TextPart(text)]
        if image is not None:
            parts.append(ImagePart(data=image.data, mime_type=image.mime_type))
        return cls(role=Role.USER, content=tuple(parts))

    @classmethod
    def assistant(cls, text: str) -> NormalizedMessage:
        return cls(role=Role.ASSISTANT, content=(TextPart(text),))

    @property
    def text(self) -> str:
        """All text parts joined with a space."""
        return " ".join(p.text for p in self.content if isinstance(p, TextPart))

    @property
    def images(self) -> list[ImagePart]:
        return [p for p in self.content if isinstance(p, ImagePart)]


def validate_messages(messages: list[NormalizedMessage]) -> None:
    """At most one system message, and only in first position."""
    for index, message in enumerate(messages):
        if message.role == Role.SYSTEM and index != 0:
            raise ValueError("system message must be first and appear at most once")


@dataclass(frozen=True)
class ImageAttachment:
    """A captured image (e.g. a screenshot) attached to a request."""

    data: bytes
    mime_type: str = "image/jpeg"


@dataclass(frozen=True)
class AskRequest:
    text: str
    provider_name: str
    image: ImageAttachment | None = None
    history: tuple[str, ...] = ()


@dataclass(frozen=True)
class RequestParams:
    """Generation settings; model None means "whatever the credentials resolved"."""

    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2048


class StreamEventType(str, Enum):
    TOKEN = "token"
    END = "end"
    ERROR = "error"


@dataclass(frozen=True)
class StreamEvent:
    """
    One item of a normalized stream.

    A stream is a finite, ordered sequence of TOKEN events terminated by
    exactly one END or ERROR.
    """

    type: StreamEventType
    text: str = ""
    error_kind: str = ""
    message: str = ""

    @classmethod
    def token(cls, text: str) -> StreamEvent:
        return cls(type=StreamEventType.TOKEN, text=text)

    @classmethod
    def end(cls) -> StreamEvent:
        return cls(type=StreamEventType.END)

    @classmethod
    def error(cls, kind: str, message: str = "") -> StreamEvent:
        return cls(type=StreamEventType.ERROR, error_kind=kind, message=message)

    @property
    def is_terminal(self) -> bool:
        return self.type != StreamEventType.TOKEN


@dataclass
class PreparedPrompt:
    """What an adapter actually sends: one system string plus the turns."""

    system: str
    turns: list[NormalizedMessage] = field(default_factory=list)
    query_text: str = ""
