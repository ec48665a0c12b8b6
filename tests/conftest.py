"""Shared fixtures: fake clocks, an in-memory store and mock webhooks."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from chatclient.RateLimiter import RateLimiter
from chatclient.TransportClient import TransportClient
from conversations.ConversationStore import ConversationStore
from conversations.DatabaseProvider import DatabaseProvider

WEBHOOK_URL = "https://hooks.example.com/chat"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class SteppingClock:
    """UTC clock that moves forward one second every time it is read."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_provider():
    provider = DatabaseProvider(":memory:")
    yield provider
    provider.close()


@pytest.fixture
def store(db_provider) -> ConversationStore:
    return ConversationStore(db_provider.get_connection(), clock=SteppingClock())


@pytest.fixture
def make_transport() -> Callable[..., TransportClient]:
    """Build a TransportClient whose webhook is answered by ``handler``."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        rate_limiter: RateLimiter | None = None,
    ) -> TransportClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return TransportClient(WEBHOOK_URL, rate_limiter=rate_limiter, http_client=client)

    return _make
