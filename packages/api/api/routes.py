"""API route definitions."""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool

from api.auth import require_user
from api.rate_limit import get_rate_limiter, rate_limit_exceeded, rate_limit_headers
from api.schemas import (
    ChatError,
    ChatRequest,
    ChatResponse,
    ConversationDetail,
    ConversationSummary,
    CreateConversationRequest,
    FormatRequest,
    FormatResponse,
    MessageSchema,
    RateLimitStatus,
    SegmentSchema,
    UpdateConversationRequest,
)
from chatclient.ChatBot import ChatBot
from chatclient.errors import RateLimitExceeded, ValidationError
from chatclient.MessageFormatter import format_message
from chatclient.models import ChatUser, Conversation
from chatclient.RateLimiter import RateLimiter
from chatclient.rendering import render_html
from conversations.ConversationStore import ConversationStore

router = APIRouter()


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------


@router.get("/health")
async def health_check():
    """Basic liveness probe -- no identity required."""
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _bot_dependency(request: Request) -> ChatBot:
    """Retrieve the shared ChatBot instance from app state."""
    return request.app.state.bot


def _store_dependency(request: Request) -> ConversationStore:
    return request.app.state.bot.store


def _owned_conversation(
    store: ConversationStore, conversation_id: str, user: ChatUser
) -> Conversation:
    """Return the conversation if it exists and belongs to ``user``.

    Raises:
        HTTPException 404 otherwise; other users' conversations are not
        distinguishable from missing ones.
    """
    conversation = store.get_conversation(conversation_id)
    if conversation is None or conversation.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )
    return conversation


def _store_unavailable(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


# ---------------------------------------------------------------------------
# Conversation CRUD
# ---------------------------------------------------------------------------


@router.post(
    "/conversations",
    response_model=ConversationSummary,
    status_code=status.HTTP_201_CREATED,
)
def create_conversation(
    body: CreateConversationRequest,
    user: ChatUser = Depends(require_user),
    store: ConversationStore = Depends(_store_dependency),
):
    """Create a new, empty conversation."""
    conversation = store.create_conversation(user.id, body.title, body.preview)
    if conversation is None:
        raise _store_unavailable("Could not create conversation")
    return ConversationSummary.from_conversation(conversation)


@router.get("/conversations", response_model=list[ConversationSummary])
def list_conversations(
    user: ChatUser = Depends(require_user),
    store: ConversationStore = Depends(_store_dependency),
):
    """List the caller's conversations, most recently active first."""
    return [
        ConversationSummary.from_conversation(c)
        for c in store.get_user_conversations(user.id)
    ]


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail)
def get_conversation(
    conversation_id: str,
    user: ChatUser = Depends(require_user),
    store: ConversationStore = Depends(_store_dependency),
):
    """Get a conversation with its full message history."""
    loaded = store.get_conversation_with_messages(conversation_id)
    conversation = loaded.conversation
    if conversation is None or conversation.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )

    summary = ConversationSummary.from_conversation(conversation)
    return ConversationDetail(
        **summary.model_dump(),
        messages=[MessageSchema.from_record(m) for m in loaded.messages],
    )


@router.patch("/conversations/{conversation_id}", response_model=ConversationSummary)
def update_conversation(
    conversation_id: str,
    body: UpdateConversationRequest,
    user: ChatUser = Depends(require_user),
    store: ConversationStore = Depends(_store_dependency),
):
    """Rename a conversation and/or replace its preview."""
    conversation = _owned_conversation(store, conversation_id, user)

    if body.title is not None:
        conversation = store.update_conversation_title(conversation_id, body.title)
        if conversation is None:
            raise _store_unavailable("Could not update conversation title")
    if body.preview is not None:
        conversation = store.update_conversation_preview(conversation_id, body.preview)
        if conversation is None:
            raise _store_unavailable("Could not update conversation preview")

    return ConversationSummary.from_conversation(conversation)


@router.delete(
    "/conversations/{conversation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_conversation(
    conversation_id: str,
    user: ChatUser = Depends(require_user),
    store: ConversationStore = Depends(_store_dependency),
):
    """Delete a conversation and all of its messages."""
    _owned_conversation(store, conversation_id, user)
    if not store.delete_conversation(conversation_id):
        raise _store_unavailable("Could not delete conversation")


@router.delete(
    "/conversations/{conversation_id}/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_message(
    conversation_id: str,
    message_id: str,
    user: ChatUser = Depends(require_user),
    store: ConversationStore = Depends(_store_dependency),
):
    """Delete a single message from a conversation."""
    _owned_conversation(store, conversation_id, user)
    message = store.get_message(message_id)
    if message is None or message.conversation_id != conversation_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found",
        )
    if not store.delete_message(message_id):
        raise _store_unavailable("Could not delete message")


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


async def _run_chat(
    bot: ChatBot,
    limiter: RateLimiter,
    user: ChatUser,
    message: str,
    conversation_id: str | None,
    response: Response,
) -> ChatResponse:
    turn = await bot.process_message(message, user, conversation_id=conversation_id)

    if isinstance(turn.error, RateLimitExceeded):
        raise rate_limit_exceeded(turn.error, limiter, user.id)
    if isinstance(turn.error, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(turn.error),
        )

    response.headers.update(rate_limit_headers(limiter, user.id))

    error = None
    if turn.error is not None:
        error = ChatError(kind=type(turn.error).__name__, detail=str(turn.error))

    return ChatResponse(
        conversation_id=turn.conversation_id,
        replies=[MessageSchema.from_message(m) for m in turn.replies],
        error=error,
        remaining_requests=limiter.get_remaining(user.id),
    )


@router.post("/chat", response_model=ChatResponse)
async def chat_new_conversation(
    body: ChatRequest,
    response: Response,
    user: ChatUser = Depends(require_user),
    bot: ChatBot = Depends(_bot_dependency),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Send the first message of a new conversation.

    This endpoint is rate-limited.
    """
    return await _run_chat(bot, limiter, user, body.message, None, response)


@router.post(
    "/conversations/{conversation_id}/chat",
    response_model=ChatResponse,
)
async def chat(
    conversation_id: str,
    body: ChatRequest,
    response: Response,
    user: ChatUser = Depends(require_user),
    bot: ChatBot = Depends(_bot_dependency),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Send a message and receive the assistant's replies.

    Transport failures still answer 200: the replies hold an apology and
    ``error`` says what went wrong. This endpoint is rate-limited.
    """
    await run_in_threadpool(_owned_conversation, bot.store, conversation_id, user)
    return await _run_chat(bot, limiter, user, body.message, conversation_id, response)


@router.post("/format", response_model=FormatResponse)
async def format_preview(body: FormatRequest):
    """Return the segments and sanitized HTML for a piece of text."""
    segments = format_message(body.content)
    return FormatResponse(
        segments=[SegmentSchema.from_segment(s) for s in segments],
        html=render_html(segments),
    )


# ---------------------------------------------------------------------------
# Rate-limit status
# ---------------------------------------------------------------------------


@router.get("/rate-limit", response_model=RateLimitStatus)
async def get_rate_limit_status(
    user: ChatUser = Depends(require_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Return the current rate-limit status for the calling user."""
    return RateLimitStatus(
        limit=limiter.max_requests,
        remaining=limiter.get_remaining(user.id),
        reset=limiter.get_reset_time(user.id).isoformat(),
    )
