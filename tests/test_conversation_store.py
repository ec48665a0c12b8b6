from datetime import datetime, timedelta, timezone

from chatclient.models import Message, Segment
from conversations.ConversationStore import ConversationStore, generate_conversation_title


def test_create_conversation_defaults_preview_to_title(store):
    title = "Question about the lease renewal terms for apartment 12 " * 3

    conversation = store.create_conversation("user-1", title)

    assert conversation is not None
    assert conversation.user_id == "user-1"
    assert conversation.title == title.strip()
    assert conversation.preview == title[:100].strip()
    assert conversation.created_at == conversation.updated_at


def test_create_conversation_truncates_title_and_preview(store):
    conversation = store.create_conversation("user-1", "t" * 600, "p" * 600)

    assert len(conversation.title) == 500
    assert len(conversation.preview) == 500


def test_empty_title_is_reported_as_none(store):
    assert store.create_conversation("user-1", "") is None
    assert store.create_conversation("user-1", "   ") is None
    assert store.failure_count == 2


def test_conversations_are_listed_most_recently_active_first(store):
    first = store.create_conversation("user-1", "First")
    second = store.create_conversation("user-1", "Second")
    store.create_conversation("someone-else", "Not mine")

    assert [c.id for c in store.get_user_conversations("user-1")] == [second.id, first.id]

    store.add_message_to_conversation(first.id, "user-1", "user", "bump")

    listed = store.get_user_conversations("user-1")
    assert [c.id for c in listed] == [first.id, second.id]
    assert listed[0].updated_at > listed[1].updated_at


def test_ties_on_updated_at_keep_insertion_order(db_provider):
    fixed = datetime(2024, 5, 1, tzinfo=timezone.utc)
    store = ConversationStore(db_provider.get_connection(), clock=lambda: fixed)
    a = store.create_conversation("u", "A")
    b = store.create_conversation("u", "B")

    assert [c.id for c in store.get_user_conversations("u")] == [a.id, b.id]


def test_unknown_user_has_no_conversations(store):
    assert store.get_user_conversations("nobody") == []


def test_messages_are_returned_oldest_first(store):
    conversation = store.create_conversation("user-1", "Chat")
    first = store.add_message_to_conversation(conversation.id, "user-1", "user", "Hi")
    second = store.add_message_to_conversation(
        conversation.id,
        "user-1",
        "bot",
        "**Hello**",
        [Segment(kind="bold", content="Hello")],
    )

    loaded = store.get_conversation_with_messages(conversation.id)

    assert loaded.conversation.id == conversation.id
    assert [m.id for m in loaded.messages] == [first.id, second.id]
    assert loaded.messages[0].formatted_content is None
    assert loaded.messages[1].formatted_content == [Segment(kind="bold", content="Hello")]


def test_add_message_bumps_updated_at(store):
    conversation = store.create_conversation("user-1", "Chat")

    message = store.add_message_to_conversation(conversation.id, "user-1", "user", "Hi")

    refreshed = store.get_conversation(conversation.id)
    assert refreshed.updated_at > conversation.updated_at
    assert refreshed.updated_at > message.created_at


def test_message_for_missing_conversation_is_rejected(store):
    assert store.add_message_to_conversation("missing", "user-1", "user", "Hi") is None
    assert store.failure_count == 1


def test_unknown_role_is_rejected(store):
    conversation = store.create_conversation("user-1", "Chat")

    assert store.add_message_to_conversation(conversation.id, "user-1", "assistant", "Hi") is None


def test_missing_conversation_loads_as_empty(store):
    loaded = store.get_conversation_with_messages("missing")

    assert loaded.conversation is None
    assert loaded.messages == []


def test_delete_conversation_cascades_to_messages(store):
    conversation = store.create_conversation("user-1", "Chat")
    message_ids = [
        store.add_message_to_conversation(conversation.id, "user-1", "user", text).id
        for text in ("one", "two", "three")
    ]

    assert store.delete_conversation(conversation.id) is True

    assert store.get_conversation(conversation.id) is None
    assert all(store.get_message(message_id) is None for message_id in message_ids)


def test_delete_message(store):
    conversation = store.create_conversation("user-1", "Chat")
    keep = store.add_message_to_conversation(conversation.id, "user-1", "user", "keep")
    drop = store.add_message_to_conversation(conversation.id, "user-1", "user", "drop")

    assert store.delete_message(drop.id) is True

    loaded = store.get_conversation_with_messages(conversation.id)
    assert [m.id for m in loaded.messages] == [keep.id]


def test_update_title_and_preview_bump_updated_at(store):
    conversation = store.create_conversation("user-1", "Old title")

    renamed = store.update_conversation_title(conversation.id, "  New title  ")
    assert renamed.title == "New title"
    assert renamed.updated_at > conversation.updated_at

    previewed = store.update_conversation_preview(conversation.id, "latest reply")
    assert previewed.preview == "latest reply"
    assert previewed.updated_at > renamed.updated_at


def test_updates_on_missing_conversation_return_none(store):
    assert store.update_conversation_title("missing", "x") is None
    assert store.update_conversation_preview("missing", "x") is None


def test_update_title_rejects_empty_title(store):
    conversation = store.create_conversation("user-1", "Title")

    assert store.update_conversation_title(conversation.id, " ") is None
    assert store.get_conversation(conversation.id).title == "Title"


def test_bulk_save_preserves_roles_and_timestamps(store):
    conversation = store.create_conversation("user-1", "Chat")
    base = datetime(2023, 3, 1, 9, 30, tzinfo=timezone.utc)
    messages = [
        Message(content="Is parking included?", role="user", timestamp=base),
        Message(
            content="Yes, *one* spot.",
            role="bot",
            timestamp=base + timedelta(seconds=2),
            formatted=[
                Segment(kind="text", content="Yes, "),
                Segment(kind="italic", content="one"),
                Segment(kind="text", content=" spot."),
            ],
        ),
    ]

    saved = store.save_messages_to_conversation(conversation.id, "user-1", messages)

    assert [m.role for m in saved] == ["user", "bot"]
    loaded = store.get_conversation_with_messages(conversation.id)
    assert [m.created_at for m in loaded.messages] == [base, base + timedelta(seconds=2)]
    assert loaded.messages[1].formatted_content == messages[1].formatted
    assert loaded.conversation.updated_at > conversation.updated_at


def test_bulk_save_is_all_or_nothing(store):
    conversation = store.create_conversation("user-1", "Chat")
    messages = [
        Message(content="fine", role="user"),
        Message(content="bad role", role="system"),
    ]

    assert store.save_messages_to_conversation(conversation.id, "user-1", messages) == []
    assert store.get_conversation_with_messages(conversation.id).messages == []


def test_bulk_save_of_nothing_is_a_no_op(store):
    conversation = store.create_conversation("user-1", "Chat")

    assert store.save_messages_to_conversation(conversation.id, "user-1", []) == []
    assert store.get_conversation(conversation.id).updated_at == conversation.updated_at


def test_storage_failures_return_neutral_values(db_provider):
    store = ConversationStore(db_provider.get_connection())
    conversation = store.create_conversation("user-1", "Chat")
    db_provider.close()

    assert store.get_user_conversations("user-1") == []
    assert store.get_conversation_with_messages(conversation.id).conversation is None
    assert store.create_conversation("user-1", "Another") is None
    assert store.add_message_to_conversation(conversation.id, "user-1", "user", "x") is None
    assert store.delete_conversation(conversation.id) is False
    assert store.delete_message("anything") is False
    assert store.failure_count == 6


# ---------------------------------------------------------------------------
# Title generation
# ---------------------------------------------------------------------------


def test_short_message_is_used_as_title():
    assert generate_conversation_title("Broken heater in 3A") == "Broken heater in 3A"


def test_long_message_is_truncated_with_ellipsis():
    message = "My kitchen sink has been leaking since Monday and the water is reaching the floor"

    title = generate_conversation_title(message)

    assert title == message[:50].strip() + "..."


def test_fifty_characters_is_not_truncated():
    message = "x" * 50

    assert generate_conversation_title(message) == message
