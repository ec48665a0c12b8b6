"""Client for the assistant webhook.

Sends one user message per call and normalizes whatever the webhook
answers into an ordered list of reply strings.
"""

import json
import logging

import httpx

from chatclient.config import DEFAULT_APP_NAME, Settings
from chatclient.errors import (
    MalformedResponse,
    TransportHttpError,
    TransportNetworkError,
)
from chatclient.MessageValidator import MessageValidator, validate_webhook_url
from chatclient.models import ChatUser, OutgoingChatRequest
from chatclient.RateLimiter import RateLimiter

logger = logging.getLogger(__name__)

REQUEST_SOURCE = "web"

_REQUEST_HEADERS = {
    "Content-Type": "application/json",
    "X-Requested-With": "XMLHttpRequest",
}


class TransportClient:
    """Validates, rate-limits and posts chat messages to a single webhook.

    The webhook URL is validated when the client is built, so a
    misconfigured endpoint stops the process at startup instead of failing
    on the first message. No retries are performed.
    """

    def __init__(
        self,
        webhook_url: str | None,
        *,
        rate_limiter: RateLimiter | None = None,
        validator: MessageValidator | None = None,
        app_name: str = DEFAULT_APP_NAME,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            webhook_url: HTTPS URL of the assistant webhook.
            rate_limiter: Shared per-process limiter; a default one is
                created when omitted.
            validator: Message validator; defaults to the standard limits.
            app_name: Value sent as ``context.app``.
            timeout: Seconds to wait for the webhook before giving up.
            http_client: Optional pre-built client (used by tests to mount
                a mock transport). The caller keeps ownership of it.

        Raises:
            EndpointConfigError: If ``webhook_url`` fails validation.
        """
        self._webhook_url = validate_webhook_url(webhook_url)
        self.rate_limiter = rate_limiter or RateLimiter()
        self._validator = validator or MessageValidator()
        self._app_name = app_name
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        rate_limiter: RateLimiter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "TransportClient":
        """Build a client from process settings."""
        limiter = rate_limiter or RateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_ms=settings.rate_limit_window_ms,
        )
        return cls(
            settings.webhook_url,
            rate_limiter=limiter,
            validator=MessageValidator(max_length=settings.max_message_length),
            app_name=settings.app_name,
            timeout=settings.webhook_timeout_seconds,
            http_client=http_client,
        )

    async def send(self, message: str, user: ChatUser) -> list[str]:
        """Send a message on behalf of ``user`` and return the replies.

        Checks run in order and the first failure wins: rate limit, then
        message validation, then the HTTP call itself.

        Raises:
            RateLimitExceeded: If the user has no calls left in the window.
            ValidationError: If the message is empty, too long or unsafe.
            TransportNetworkError: If no response was received.
            TransportHttpError: If the webhook answered with a non-2xx status.
            MalformedResponse: If a JSON reply could not be parsed.
        """
        self.rate_limiter.check(user.id)
        trimmed = self._validator.validate(message)

        payload = OutgoingChatRequest(
            msg=trimmed,
            user=user,
            source=REQUEST_SOURCE,
            app=self._app_name,
        ).to_dict()

        try:
            response = await self._client.post(
                self._webhook_url,
                json=payload,
                headers=_REQUEST_HEADERS,
            )
        except httpx.RequestError as e:
            logger.warning("Webhook request failed: %s", type(e).__name__)
            raise TransportNetworkError(f"Could not reach the assistant: {e}") from e

        if not response.is_success:
            logger.warning("Webhook answered with status %d", response.status_code)
            raise TransportHttpError(response.status_code)

        replies = normalize_response(
            response.headers.get("content-type", ""),
            response.text,
        )
        logger.debug("Received %d replies from webhook", len(replies))
        return replies

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "TransportClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


# ---------------------------------------------------------------------------
# Response normalization
# ---------------------------------------------------------------------------


def normalize_response(content_type: str, body: str) -> list[str]:
    """Turn a webhook response body into an ordered list of replies.

    A ``text/plain`` body is a single reply. Anything else is parsed as
    JSON and handed to ``normalize_payload``.

    Raises:
        MalformedResponse: If a non-plain-text body is not valid JSON.
    """
    if "text/plain" in content_type.lower():
        return [body]

    try:
        data = json.loads(body)
    except ValueError as e:
        logger.warning("Webhook returned a body that is not JSON")
        raise MalformedResponse("Assistant returned an unreadable response") from e

    return normalize_payload(data)


def normalize_payload(data: object) -> list[str]:
    """Pick the replies out of a decoded JSON payload.

    Fields are tried in order: ``reply``, ``message``, ``messages``. When
    none of them is usable the whole payload is returned as one compact
    JSON string, because the assistant's response shape is not fixed.
    """
    if isinstance(data, dict):
        reply = data.get("reply")
        if isinstance(reply, str) and reply:
            return [reply]

        message = data.get("message")
        if isinstance(message, str) and message:
            return [message]

        messages = data.get("messages")
        if isinstance(messages, list):
            return [m if isinstance(m, str) else _compact_json(m) for m in messages]

    return [_compact_json(data)]


def _compact_json(data: object) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)
