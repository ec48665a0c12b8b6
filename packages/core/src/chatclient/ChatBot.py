"""Chat orchestrator: sends user text, formats replies and saves history."""

import asyncio
import logging
from dataclasses import dataclass, field

from chatclient.errors import ChatClientError
from chatclient.MessageFormatter import format_message
from chatclient.models import ChatUser, Message
from chatclient.TransportClient import TransportClient
from conversations.ConversationStore import ConversationStore, generate_conversation_title

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, I couldn't reach the server. Please try again."


@dataclass
class ChatTurn:
    """Everything one user message produced.

    Attributes:
        conversation_id: The conversation the turn belongs to, or None when a
            new conversation could not be saved.
        user_message: The message the user sent.
        replies: Bot messages to display, in order. On failure this holds a
            single synthetic apology.
        error: The failure behind the apology, for a separate notification.
    """

    conversation_id: str | None
    user_message: Message
    replies: list[Message] = field(default_factory=list)
    error: ChatClientError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatBot:
    """Wires user input through the transport, formatter and store."""

    def __init__(self, transport: TransportClient, store: ConversationStore) -> None:
        self._transport = transport
        self._store = store

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def transport(self) -> TransportClient:
        return self._transport

    async def process_message(
        self,
        user_message: str,
        user: ChatUser,
        conversation_id: str | None = None,
    ) -> ChatTurn:
        """Send a message and return the replies to display.

        Transport failures do not raise: the turn carries a synthetic bot
        apology plus the original error, and nothing is saved. On success
        the user message and replies are saved to ``conversation_id``, or
        to a new conversation titled after the message when it is None.
        Persistence runs in a worker thread and its problems never fail the
        turn.

        Args:
            user_message: Raw text typed by the user.
            user: Identity sent to the webhook and owner of new conversations.
            conversation_id: Optional existing conversation identifier.

        Returns:
            The ChatTurn describing what to display.
        """
        request = Message(content=user_message.strip(), role="user")

        try:
            replies = await self._transport.send(user_message, user)
        except ChatClientError as e:
            logger.warning("Message not delivered: %s", type(e).__name__)
            fallback = Message(
                content=FALLBACK_REPLY,
                role="bot",
                formatted=format_message(FALLBACK_REPLY),
            )
            return ChatTurn(
                conversation_id=conversation_id,
                user_message=request,
                replies=[fallback],
                error=e,
            )

        bot_messages = [
            Message(content=reply, role="bot", formatted=format_message(reply))
            for reply in replies
        ]
        saved_to = await asyncio.to_thread(
            self._persist, request, bot_messages, user, conversation_id
        )
        return ChatTurn(
            conversation_id=saved_to,
            user_message=request,
            replies=bot_messages,
        )

    def _persist(
        self,
        request: Message,
        replies: list[Message],
        user: ChatUser,
        conversation_id: str | None,
    ) -> str | None:
        if conversation_id is None:
            conversation = self._store.create_conversation(
                user.id,
                generate_conversation_title(request.content),
                preview=request.content,
            )
            if conversation is None:
                logger.warning("Could not create a conversation; turn not saved")
                return None
            conversation_id = conversation.id

        saved = self._store.save_messages_to_conversation(
            conversation_id, user.id, [request, *replies]
        )
        if not saved:
            logger.warning("Could not save turn to conversation %s", conversation_id)
            return None
        return conversation_id
