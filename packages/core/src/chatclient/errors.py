"""Exception hierarchy for the chat transport layer.

Every failure the transport can report has its own class so callers can
tell a rejected message apart from a rate-limit hit or an unreachable
webhook. Persistence failures are not represented here: the conversation
store reports them as ``None``, ``False`` or ``[]``.
"""

from datetime import datetime


class ChatClientError(Exception):
    """Base class for every error raised by the chat client."""


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class ValidationError(ChatClientError, ValueError):
    """The outgoing message was rejected before any network call."""


class EmptyMessage(ValidationError):
    pass


class MessageTooLong(ValidationError):
    def __init__(self, max_length: int) -> None:
        super().__init__(f"Message too long (max {max_length} characters)")
        self.max_length = max_length


class UnsafeContent(ValidationError):
    pass


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class RateLimitExceeded(ChatClientError):
    """The caller has used up the allowance for the current window."""

    def __init__(self, limit: int, reset_at: datetime, window_seconds: float = 60) -> None:
        if window_seconds == 60:
            message = f"Rate limit exceeded. Maximum {limit} messages per minute."
        else:
            message = (
                f"Rate limit exceeded. Maximum {limit} messages "
                f"per {window_seconds:g} seconds."
            )
        super().__init__(message)
        self.limit = limit
        self.reset_at = reset_at


# ---------------------------------------------------------------------------
# Endpoint configuration (checked once, when the transport is built)
# ---------------------------------------------------------------------------


class EndpointConfigError(ChatClientError, ValueError):
    """The configured webhook URL is not fit for production use."""


class MissingEndpoint(EndpointConfigError):
    pass


class InsecureEndpoint(EndpointConfigError):
    pass


class DevEndpointRejected(EndpointConfigError):
    pass


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class TransportError(ChatClientError, RuntimeError):
    """The webhook call did not produce usable replies."""


class TransportNetworkError(TransportError):
    """No response was received (connection failure, timeout, ...)."""


class TransportHttpError(TransportError):
    def __init__(self, status: int) -> None:
        super().__init__(f"HTTP error! status: {status}")
        self.status = status


class MalformedResponse(TransportError):
    """The webhook answered with a body that is neither plain text nor JSON."""
