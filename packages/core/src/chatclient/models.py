"""Data models for chat messages, formatted segments and conversations."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

SegmentKind = Literal["text", "bold", "italic", "code", "codeblock"]
Role = Literal["user", "bot"]

SEGMENT_KINDS: tuple[str, ...] = ("text", "bold", "italic", "code", "codeblock")
ROLES: tuple[str, ...] = ("user", "bot")


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Segment:
    """One typed, contiguous unit of formatted text.

    Attributes:
        kind: One of "text", "bold", "italic", "code" or "codeblock".
        content: The text inside the delimiters (delimiters stripped).
    """

    kind: SegmentKind
    content: str

    def to_dict(self) -> dict:
        """Serialize into the ``{"type", "content"}`` shape used on disk and on the wire."""
        return {"type": self.kind, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict) -> "Segment":
        """Rebuild a segment from its serialized form.

        Raises:
            ValueError: If the kind is unknown or the content is not a string.
        """
        kind = data.get("type")
        content = data.get("content")
        if kind not in SEGMENT_KINDS:
            raise ValueError(f"Unknown segment kind: {kind!r}")
        if not isinstance(content, str):
            raise ValueError("Segment content must be a string.")
        return cls(kind=kind, content=content)


@dataclass(frozen=True)
class ChatUser:
    """Identity carried in every outgoing webhook call."""

    id: str
    email: str


@dataclass(frozen=True)
class OutgoingChatRequest:
    """The JSON body posted to the assistant webhook."""

    msg: str
    user: ChatUser
    source: str
    app: str

    def to_dict(self) -> dict:
        return {
            "msg": self.msg,
            "user": {"email": self.user.email, "id": self.user.id},
            "context": {"source": self.source, "app": self.app},
        }


@dataclass
class Message:
    """A single chat message as shown to the user.

    Attributes:
        content: The raw, unsanitized message text.
        role: Either "user" or "bot".
        id: A unique hex string identifying this message.
        timestamp: When the message was created (UTC).
        formatted: Segments derived from ``content``; only set on bot replies.
    """

    content: str
    role: Role
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=utcnow)
    formatted: list[Segment] | None = None


@dataclass
class Conversation:
    """A persisted conversation owned by exactly one user."""

    id: str
    user_id: str
    title: str
    preview: str | None
    created_at: datetime
    updated_at: datetime


@dataclass
class ConversationMessage:
    """The persisted form of a Message, owned by a Conversation."""

    id: str
    conversation_id: str
    user_id: str
    role: Role
    content: str
    formatted_content: list[Segment] | None
    created_at: datetime

    def to_message(self) -> Message:
        """Convert back into a display Message."""
        return Message(
            content=self.content,
            role=self.role,
            id=self.id,
            timestamp=self.created_at,
            formatted=self.formatted_content,
        )


@dataclass
class ConversationWithMessages:
    """A conversation together with its messages in chronological order."""

    conversation: Conversation | None
    messages: list[ConversationMessage] = field(default_factory=list)
