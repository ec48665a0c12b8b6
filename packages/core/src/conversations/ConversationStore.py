"""Persistence for conversations and their messages.

Every operation is a self-contained request against the database. Storage
failures never propagate: they are logged, counted in ``failure_count``
and reported to the caller as ``None``, ``False`` or ``[]``. Callers treat
those values as "nothing happened, try again later".
"""

import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from chatclient.models import (
    ROLES,
    Conversation,
    ConversationMessage,
    ConversationWithMessages,
    Message,
    Segment,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_FIELD_MAX_LENGTH = 500
PREVIEW_FROM_TITLE_LENGTH = 100
TITLE_MAX_LENGTH = 50
TITLE_ELLIPSIS = "..."


def generate_conversation_title(message: str) -> str:
    """Derive a conversation title from its first message.

    Keeps the first 50 characters and appends an ellipsis when anything
    was cut off.
    """
    title = message[:TITLE_MAX_LENGTH].strip()
    return f"{title}{TITLE_ELLIPSIS}" if len(message) > TITLE_MAX_LENGTH else title


class ConversationStore:
    """CRUD operations for conversations and messages over SQLite."""

    def __init__(
        self,
        connection: sqlite3.Connection,
        *,
        max_field_length: int = DEFAULT_FIELD_MAX_LENGTH,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            connection: Connection from ``DatabaseProvider`` (foreign keys on).
            max_field_length: Cap applied to titles and previews.
            clock: Returns the current UTC time; injectable for tests.
        """
        self._connection = connection
        self._max_field_length = max_field_length
        self._clock = clock or utcnow
        self._lock = threading.Lock()
        self.failure_count = 0

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create_conversation(
        self,
        user_id: str,
        title: str,
        preview: str | None = None,
    ) -> Conversation | None:
        """Create a conversation; ``preview`` defaults to the start of the title."""
        sanitized_title = self._clean(title)
        if not sanitized_title:
            logger.error("Error creating conversation: title cannot be empty")
            self.failure_count += 1
            return None
        sanitized_preview = self._clean(preview or (title or "")[:PREVIEW_FROM_TITLE_LENGTH])

        now = _format_ts(self._clock())
        conversation_id = uuid.uuid4().hex
        try:
            with self._lock, self._connection:
                self._connection.execute(
                    "INSERT INTO conversations "
                    "(id, user_id, title, preview, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (conversation_id, user_id, sanitized_title, sanitized_preview, now, now),
                )
            return self.get_conversation(conversation_id)
        except sqlite3.Error:
            return self._fail("Error creating conversation", None)

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Return a single conversation, or ``None`` if it does not exist."""
        try:
            with self._lock:
                row = self._connection.execute(
                    "SELECT * FROM conversations WHERE id = ?",
                    (conversation_id,),
                ).fetchone()
        except sqlite3.Error:
            return self._fail("Error fetching conversation", None)
        return _row_to_conversation(row) if row is not None else None

    def get_user_conversations(self, user_id: str) -> list[Conversation]:
        """Return the user's conversations, most recently active first."""
        try:
            with self._lock:
                rows = self._connection.execute(
                    "SELECT * FROM conversations WHERE user_id = ? "
                    "ORDER BY updated_at DESC, rowid ASC",
                    (user_id,),
                ).fetchall()
        except sqlite3.Error:
            return self._fail("Error fetching conversations", [])
        return [_row_to_conversation(row) for row in rows]

    def get_conversation_with_messages(self, conversation_id: str) -> ConversationWithMessages:
        """Return a conversation and its messages in chronological order.

        Missing conversations and storage errors both yield
        ``ConversationWithMessages(conversation=None, messages=[])``.
        """
        try:
            with self._lock:
                row = self._connection.execute(
                    "SELECT * FROM conversations WHERE id = ?",
                    (conversation_id,),
                ).fetchone()
                if row is None:
                    logger.info("Conversation %s not found", conversation_id)
                    return ConversationWithMessages(conversation=None)
                message_rows = self._connection.execute(
                    "SELECT * FROM messages WHERE conversation_id = ? "
                    "ORDER BY created_at ASC, rowid ASC",
                    (conversation_id,),
                ).fetchall()
        except sqlite3.Error:
            return self._fail(
                "Error fetching conversation with messages",
                ConversationWithMessages(conversation=None),
            )
        return ConversationWithMessages(
            conversation=_row_to_conversation(row),
            messages=[_row_to_message(r) for r in message_rows],
        )

    def update_conversation_title(self, conversation_id: str, title: str) -> Conversation | None:
        sanitized_title = self._clean(title)
        if not sanitized_title:
            logger.error("Error updating conversation title: title cannot be empty")
            self.failure_count += 1
            return None
        return self._update_conversation(
            conversation_id, "title", sanitized_title, "Error updating conversation title"
        )

    def update_conversation_preview(self, conversation_id: str, preview: str) -> Conversation | None:
        return self._update_conversation(
            conversation_id, "preview", self._clean(preview), "Error updating conversation preview"
        )

    def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation; its messages go with it via the cascade."""
        try:
            with self._lock, self._connection:
                self._connection.execute(
                    "DELETE FROM conversations WHERE id = ?",
                    (conversation_id,),
                )
        except sqlite3.Error:
            return self._fail("Error deleting conversation", False)
        return True

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message_to_conversation(
        self,
        conversation_id: str,
        user_id: str,
        role: str,
        content: str,
        formatted_content: list[Segment] | None = None,
    ) -> ConversationMessage | None:
        """Append a message and bump the conversation's ``updated_at``.

        The bump is attempted whenever the insert succeeds; a failed bump is
        logged but does not undo the insert.
        """
        if role not in ROLES:
            logger.error("Error adding message: unknown role %r", role)
            self.failure_count += 1
            return None

        message = ConversationMessage(
            id=uuid.uuid4().hex,
            conversation_id=conversation_id,
            user_id=user_id,
            role=role,
            content=content,
            formatted_content=formatted_content,
            created_at=self._clock(),
        )
        try:
            with self._lock, self._connection:
                self._insert_message(message)
        except sqlite3.Error:
            return self._fail("Error adding message", None)

        self._touch(conversation_id)
        return message

    def save_messages_to_conversation(
        self,
        conversation_id: str,
        user_id: str,
        messages: list[Message],
    ) -> list[ConversationMessage]:
        """Insert a batch of messages keeping their roles and timestamps.

        The batch is written in one transaction and ``updated_at`` is
        bumped once afterwards.
        """
        if not messages:
            return []

        records = [
            ConversationMessage(
                id=uuid.uuid4().hex,
                conversation_id=conversation_id,
                user_id=user_id,
                role=msg.role,
                content=msg.content,
                formatted_content=msg.formatted,
                created_at=_as_utc(msg.timestamp),
            )
            for msg in messages
        ]
        try:
            with self._lock, self._connection:
                for record in records:
                    self._insert_message(record)
        except sqlite3.Error:
            return self._fail("Error saving messages", [])

        self._touch(conversation_id)
        return records

    def get_message(self, message_id: str) -> ConversationMessage | None:
        """Return a single message, or ``None`` if it does not exist."""
        try:
            with self._lock:
                row = self._connection.execute(
                    "SELECT * FROM messages WHERE id = ?",
                    (message_id,),
                ).fetchone()
        except sqlite3.Error:
            return self._fail("Error fetching message", None)
        return _row_to_message(row) if row is not None else None

    def delete_message(self, message_id: str) -> bool:
        try:
            with self._lock, self._connection:
                self._connection.execute("DELETE FROM messages WHERE id = ?", (message_id,))
        except sqlite3.Error:
            return self._fail("Error deleting message", False)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _clean(self, value: str | None) -> str:
        """Trim and truncate a free-text field."""
        if not value or not isinstance(value, str):
            return ""
        return value.strip()[: self._max_field_length]

    def _insert_message(self, message: ConversationMessage) -> None:
        formatted = (
            json.dumps([segment.to_dict() for segment in message.formatted_content])
            if message.formatted_content is not None
            else None
        )
        self._connection.execute(
            "INSERT INTO messages "
            "(id, conversation_id, user_id, role, content, formatted_content, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                message.id,
                message.conversation_id,
                message.user_id,
                message.role,
                message.content,
                formatted,
                _format_ts(message.created_at),
            ),
        )

    def _update_conversation(
        self,
        conversation_id: str,
        column: str,
        value: str,
        error_message: str,
    ) -> Conversation | None:
        try:
            with self._lock, self._connection:
                cursor = self._connection.execute(
                    f"UPDATE conversations SET {column} = ?, updated_at = ? WHERE id = ?",
                    (value, _format_ts(self._clock()), conversation_id),
                )
            if cursor.rowcount == 0:
                logger.error("%s: conversation %s not found", error_message, conversation_id)
                self.failure_count += 1
                return None
            return self.get_conversation(conversation_id)
        except sqlite3.Error:
            return self._fail(error_message, None)

    def _touch(self, conversation_id: str) -> None:
        """Bump ``updated_at`` so the conversation sorts first in listings."""
        try:
            with self._lock, self._connection:
                self._connection.execute(
                    "UPDATE conversations SET updated_at = ? WHERE id = ?",
                    (_format_ts(self._clock()), conversation_id),
                )
        except sqlite3.Error:
            logger.exception("Error updating conversation timestamp")
            self.failure_count += 1

    def _fail(self, message: str, neutral):
        logger.exception(message)
        self.failure_count += 1
        return neutral


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _format_ts(value: datetime) -> str:
    return _as_utc(value).isoformat(timespec="microseconds")


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _decode_segments(raw: str | None) -> list[Segment] | None:
    if raw is None:
        return None
    try:
        return [Segment.from_dict(item) for item in json.loads(raw)]
    except (ValueError, TypeError, AttributeError):
        logger.warning("Ignoring unreadable formatted_content")
        return None


def _row_to_conversation(row: sqlite3.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        preview=row["preview"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _row_to_message(row: sqlite3.Row) -> ConversationMessage:
    return ConversationMessage(
        id=row["id"],
        conversation_id=row["conversation_id"],
        user_id=row["user_id"],
        role=row["role"],
        content=row["content"],
        formatted_content=_decode_segments(row["formatted_content"]),
        created_at=_parse_ts(row["created_at"]),
    )
