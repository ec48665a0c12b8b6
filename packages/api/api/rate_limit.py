"""Rate-limit headers and errors for the HTTP surface.

Counting happens in the transport's ``RateLimiter``; this module only
reports its state to HTTP clients.
"""

from fastapi import HTTPException, Request, status

from chatclient.errors import RateLimitExceeded
from chatclient.RateLimiter import RateLimiter


def get_rate_limiter(request: Request) -> RateLimiter:
    """Retrieve the process-wide limiter from app state."""
    return request.app.state.bot.transport.rate_limiter


def rate_limit_headers(limiter: RateLimiter, user_id: str) -> dict[str, str]:
    """Build the ``X-RateLimit-*`` headers for ``user_id``."""
    return {
        "X-RateLimit-Limit": str(limiter.max_requests),
        "X-RateLimit-Remaining": str(limiter.get_remaining(user_id)),
        "X-RateLimit-Reset": limiter.get_reset_time(user_id).isoformat(),
    }


def rate_limit_exceeded(exc: RateLimitExceeded, limiter: RateLimiter, user_id: str) -> HTTPException:
    """Translate a limiter rejection into a 429 response."""
    headers = rate_limit_headers(limiter, user_id)
    headers["X-RateLimit-Remaining"] = "0"
    headers["X-RateLimit-Reset"] = exc.reset_at.isoformat()
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=str(exc),
        headers=headers,
    )
