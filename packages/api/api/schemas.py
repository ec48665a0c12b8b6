"""Pydantic request/response models for the API."""

from pydantic import BaseModel, Field

from chatclient.models import Conversation, ConversationMessage, Message, Segment
from chatclient.rendering import render_html


class ChatRequest(BaseModel):
    """Body for the chat endpoints."""

    message: str


class FormatRequest(BaseModel):
    """Body for the format preview endpoint."""

    content: str


class CreateConversationRequest(BaseModel):
    title: str = Field(min_length=1)
    preview: str | None = None


class UpdateConversationRequest(BaseModel):
    """Either or both fields may be set."""

    title: str | None = Field(default=None, min_length=1)
    preview: str | None = None


class SegmentSchema(BaseModel):
    """One formatted segment of a message."""

    type: str
    content: str

    @classmethod
    def from_segment(cls, segment: Segment) -> "SegmentSchema":
        return cls(type=segment.kind, content=segment.content)


class MessageSchema(BaseModel):
    """A single message within a conversation.

    ``html`` is the sanitized rendering of the segments and is safe to
    insert into a page.
    """

    id: str
    role: str
    content: str
    segments: list[SegmentSchema] | None = None
    html: str | None = None
    timestamp: str

    @classmethod
    def from_message(cls, message: Message) -> "MessageSchema":
        segments = message.formatted
        return cls(
            id=message.id,
            role=message.role,
            content=message.content,
            segments=[SegmentSchema.from_segment(s) for s in segments] if segments is not None else None,
            html=render_html(segments) if segments is not None else None,
            timestamp=message.timestamp.isoformat(),
        )

    @classmethod
    def from_record(cls, record: ConversationMessage) -> "MessageSchema":
        return cls.from_message(record.to_message())


class ConversationSummary(BaseModel):
    """Lightweight representation of a conversation."""

    id: str
    title: str
    preview: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationSummary":
        return cls(
            id=conversation.id,
            title=conversation.title,
            preview=conversation.preview,
            created_at=conversation.created_at.isoformat(),
            updated_at=conversation.updated_at.isoformat(),
        )


class ConversationDetail(ConversationSummary):
    """Full conversation including its messages."""

    messages: list[MessageSchema]


class ChatError(BaseModel):
    """Why a chat turn fell back to the apology reply."""

    kind: str
    detail: str


class ChatResponse(BaseModel):
    """Response from the chat endpoints."""

    conversation_id: str | None
    replies: list[MessageSchema]
    error: ChatError | None = None
    remaining_requests: int


class FormatResponse(BaseModel):
    segments: list[SegmentSchema]
    html: str


class RateLimitStatus(BaseModel):
    """Current rate-limit status for the calling user."""

    limit: int
    remaining: int
    reset: str
