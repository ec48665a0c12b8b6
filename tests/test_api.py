import httpx
import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from chatclient.ChatBot import FALLBACK_REPLY, ChatBot
from chatclient.RateLimiter import RateLimiter

ALICE = {"X-User-ID": "alice", "X-User-Email": "alice@example.com"}
BOB = {"X-User-ID": "bob", "X-User-Email": "bob@example.com"}


@pytest.fixture
def webhook():
    """Mutable webhook behaviour shared with the mock transport.

    Tests replace ``respond`` to change what the next requests get back.
    """
    state = {
        "respond": lambda request: httpx.Response(200, json={"reply": "Your rent is **paid**."}),
    }
    state["handler"] = lambda request: state["respond"](request)
    return state


@pytest.fixture
def client(make_transport, store, webhook, fake_clock):
    limiter = RateLimiter(max_requests=3, clock=fake_clock)
    bot = ChatBot(make_transport(webhook["handler"], rate_limiter=limiter), store)
    with TestClient(create_app(bot)) as test_client:
        yield test_client


def test_health_needs_no_identity(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_identity_is_required(client):
    assert client.get("/conversations").status_code == 401


def test_chat_creates_conversation_and_returns_formatted_replies(client):
    response = client.post("/chat", json={"message": "Did my rent go through?"}, headers=ALICE)

    assert response.status_code == 200
    body = response.json()
    assert body["error"] is None
    assert body["remaining_requests"] == 2
    assert response.headers["X-RateLimit-Limit"] == "3"
    assert response.headers["X-RateLimit-Remaining"] == "2"

    [reply] = body["replies"]
    assert reply["role"] == "bot"
    assert reply["content"] == "Your rent is **paid**."
    assert reply["segments"] == [
        {"type": "text", "content": "Your rent is "},
        {"type": "bold", "content": "paid"},
        {"type": "text", "content": "."},
    ]
    assert reply["html"] == "Your rent is <strong>paid</strong>."

    detail = client.get(f"/conversations/{body['conversation_id']}", headers=ALICE).json()
    assert detail["title"] == "Did my rent go through?"
    assert [m["role"] for m in detail["messages"]] == ["user", "bot"]


def test_reply_html_is_sanitized(client, webhook):
    webhook["respond"] = lambda request: httpx.Response(
        200, json={"reply": "**<img src=x onerror=alert(1)>hi**"}
    )

    body = client.post("/chat", json={"message": "hello"}, headers=ALICE).json()

    assert body["replies"][0]["html"] == "<strong>hi</strong>"


def test_conversations_are_private(client):
    conversation_id = client.post("/chat", json={"message": "hello"}, headers=ALICE).json()[
        "conversation_id"
    ]

    assert client.get("/conversations", headers=BOB).json() == []
    assert client.get(f"/conversations/{conversation_id}", headers=BOB).status_code == 404
    assert client.delete(f"/conversations/{conversation_id}", headers=BOB).status_code == 404
    assert (
        client.post(
            f"/conversations/{conversation_id}/chat", json={"message": "hi"}, headers=BOB
        ).status_code
        == 404
    )


def test_follow_up_moves_conversation_to_top(client):
    first = client.post("/conversations", json={"title": "First"}, headers=ALICE).json()
    second = client.post("/conversations", json={"title": "Second"}, headers=ALICE).json()

    listed = [c["id"] for c in client.get("/conversations", headers=ALICE).json()]
    assert listed == [second["id"], first["id"]]

    client.post(f"/conversations/{first['id']}/chat", json={"message": "hi"}, headers=ALICE)

    listed = [c["id"] for c in client.get("/conversations", headers=ALICE).json()]
    assert listed == [first["id"], second["id"]]


def test_rate_limit_returns_429_with_headers(client):
    for _ in range(3):
        assert client.post("/chat", json={"message": "hi"}, headers=ALICE).status_code == 200

    response = client.post("/chat", json={"message": "hi"}, headers=ALICE)

    assert response.status_code == 429
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert response.headers["X-RateLimit-Limit"] == "3"
    assert "Rate limit exceeded" in response.json()["detail"]

    status = client.get("/rate-limit", headers=ALICE).json()
    assert status["limit"] == 3
    assert status["remaining"] == 0
    assert client.get("/rate-limit", headers=BOB).json()["remaining"] == 3


def test_invalid_message_returns_400(client):
    response = client.post("/chat", json={"message": "a" * 5001}, headers=ALICE)

    assert response.status_code == 400
    assert "max 5000" in response.json()["detail"]


def test_transport_failure_returns_apology_and_error(client, webhook):
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    webhook["respond"] = refuse

    response = client.post("/chat", json={"message": "hello"}, headers=ALICE)

    assert response.status_code == 200
    body = response.json()
    assert [r["content"] for r in body["replies"]] == [FALLBACK_REPLY]
    assert body["error"]["kind"] == "TransportNetworkError"
    assert body["conversation_id"] is None


def test_create_rename_and_delete_conversation(client):
    created = client.post(
        "/conversations", json={"title": "Maintenance", "preview": "Leaky tap"}, headers=ALICE
    )
    assert created.status_code == 201
    conversation_id = created.json()["id"]
    assert created.json()["preview"] == "Leaky tap"

    renamed = client.patch(
        f"/conversations/{conversation_id}", json={"title": "Plumbing"}, headers=ALICE
    )
    assert renamed.json()["title"] == "Plumbing"
    assert renamed.json()["preview"] == "Leaky tap"

    assert client.delete(f"/conversations/{conversation_id}", headers=ALICE).status_code == 204
    assert client.get(f"/conversations/{conversation_id}", headers=ALICE).status_code == 404


def test_empty_title_is_rejected(client):
    assert client.post("/conversations", json={"title": ""}, headers=ALICE).status_code == 422


def test_delete_single_message(client):
    conversation_id = client.post("/chat", json={"message": "hello"}, headers=ALICE).json()[
        "conversation_id"
    ]
    messages = client.get(f"/conversations/{conversation_id}", headers=ALICE).json()["messages"]
    bot_message = messages[1]

    url = f"/conversations/{conversation_id}/messages/{bot_message['id']}"
    assert client.delete(url, headers=ALICE).status_code == 204
    assert client.delete(url, headers=ALICE).status_code == 404

    remaining = client.get(f"/conversations/{conversation_id}", headers=ALICE).json()["messages"]
    assert [m["role"] for m in remaining] == ["user"]


def test_format_preview(client):
    body = client.post("/format", json={"content": "use `ls` *now*"}).json()

    assert body["segments"] == [
        {"type": "text", "content": "use "},
        {"type": "code", "content": "ls"},
        {"type": "text", "content": " "},
        {"type": "italic", "content": "now"},
    ]
    assert body["html"] == "use <code>ls</code> <em>now</em>"
