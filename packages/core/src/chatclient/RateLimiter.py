"""Per-user sliding-window rate limiter.

State lives in memory for the lifetime of the process: it is not persisted
and not shared between processes. Construct one instance per process and
hand it to every component that sends messages.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from chatclient.errors import RateLimitExceeded

DEFAULT_MAX_REQUESTS = 20
DEFAULT_WINDOW_MS = 60_000


def _wall_clock_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single ``allow()`` call."""

    allowed: bool
    error: str | None = None


class RateLimiter:
    """Track recent call instants per user id and cap them per window.

    Args:
        max_requests: Calls accepted per user within one window.
        window_ms: Length of the trailing window in milliseconds.
        clock: Returns the current time in epoch milliseconds. Tests pass a
            fake clock to move through windows without sleeping.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock or _wall_clock_ms
        self._request_log: dict[str, list[float]] = {}

    def _prune(self, user_id: str, now: float) -> list[float]:
        """Remove timestamps older than the sliding window.

        Users with no call left in the window are dropped from the log.
        """
        cutoff = now - self.window_ms
        recent = [ts for ts in self._request_log.get(user_id, []) if ts > cutoff]
        if recent:
            self._request_log[user_id] = recent
        else:
            self._request_log.pop(user_id, None)
        return recent

    def allow(self, user_id: str) -> RateLimitDecision:
        """Record a call for ``user_id`` if the window has room for it.

        A rejected call is not recorded.
        """
        now = self._clock()
        recent = self._prune(user_id, now)

        if len(recent) >= self.max_requests:
            return RateLimitDecision(
                allowed=False,
                error=str(self._exceeded(user_id)),
            )

        recent.append(now)
        self._request_log[user_id] = recent
        return RateLimitDecision(allowed=True)

    def check(self, user_id: str) -> None:
        """Like ``allow()`` but raise instead of returning a rejection.

        Raises:
            RateLimitExceeded: If the caller has exhausted the window.
        """
        if not self.allow(user_id).allowed:
            raise self._exceeded(user_id)

    # ------------------------------------------------------------------
    # Status helpers (query without recording a call)
    # ------------------------------------------------------------------

    def get_remaining(self, user_id: str) -> int:
        """Return how many calls remain in the current window."""
        recent = self._prune(user_id, self._clock())
        return max(0, self.max_requests - len(recent))

    def get_reset_time(self, user_id: str) -> datetime:
        """Return when the oldest recorded call leaves the window."""
        timestamps = self._request_log.get(user_id, [])
        reset_ms = min(timestamps) + self.window_ms if timestamps else self._clock()
        return datetime.fromtimestamp(reset_ms / 1000, tz=timezone.utc)

    def reset(self, user_id: str | None = None) -> None:
        """Forget recorded calls for one user, or for everyone."""
        if user_id is None:
            self._request_log.clear()
        else:
            self._request_log.pop(user_id, None)

    def _exceeded(self, user_id: str) -> RateLimitExceeded:
        return RateLimitExceeded(
            limit=self.max_requests,
            reset_at=self.get_reset_time(user_id),
            window_seconds=self.window_ms / 1000,
        )
