"""Runtime configuration read from the environment.

Entry points call ``load_dotenv()`` first so values from a local ``.env``
file are visible here.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from chatclient.MessageValidator import DEFAULT_MAX_MESSAGE_LENGTH
from chatclient.RateLimiter import DEFAULT_MAX_REQUESTS, DEFAULT_WINDOW_MS

DEFAULT_APP_NAME = "dreamstate-chat"


@dataclass(frozen=True)
class Settings:
    """Policy constants and endpoints for one running process."""

    webhook_url: str | None = None
    app_name: str = DEFAULT_APP_NAME
    rate_limit_max_requests: int = DEFAULT_MAX_REQUESTS
    rate_limit_window_ms: int = DEFAULT_WINDOW_MS
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH
    webhook_timeout_seconds: float = 30.0
    db_path: str = "conversations.db"
    title_max_length: int = 500
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables, falling back to defaults.

        Raises:
            ValueError: If a numeric variable cannot be parsed.
        """
        env = os.environ if environ is None else environ
        return cls(
            webhook_url=env.get("WEBHOOK_URL") or None,
            app_name=env.get("CHAT_APP_NAME", DEFAULT_APP_NAME),
            rate_limit_max_requests=_get_int(env, "RATE_LIMIT_MAX_REQUESTS", DEFAULT_MAX_REQUESTS),
            rate_limit_window_ms=_get_int(env, "RATE_LIMIT_WINDOW_MS", DEFAULT_WINDOW_MS),
            max_message_length=_get_int(env, "MAX_MESSAGE_LENGTH", DEFAULT_MAX_MESSAGE_LENGTH),
            webhook_timeout_seconds=_get_float(env, "WEBHOOK_TIMEOUT_SECONDS", 30.0),
            db_path=env.get("DB_PATH", "conversations.db"),
            title_max_length=_get_int(env, "TITLE_MAX_LENGTH", 500),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
