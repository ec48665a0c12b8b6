"""
Schema DDL for the conversation history database.

Applied on every start; each statement is idempotent so an existing
database is left untouched.

Tables:
    conversations   : One row per chat thread, owned by a single user.
                      updated_at is bumped on every message append and
                      drives the "most recently active" listing order.
    messages        : Chat messages; deleting a conversation deletes its
                      messages through the foreign key cascade.

Timestamps are UTC ISO-8601 strings of fixed width, so comparing them as
text matches comparing them as instants.
"""

SCHEMA_SQL = """
-- ============================================================================
-- CONVERSATIONS
-- ============================================================================

CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL CHECK(length(title) > 0),
    preview TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Listing a user's conversations by freshness
CREATE INDEX IF NOT EXISTS idx_conversations_user_updated
    ON conversations(user_id, updated_at);

-- ============================================================================
-- MESSAGES
-- ============================================================================

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    role TEXT NOT NULL CHECK(role IN ('user', 'bot')),
    content TEXT NOT NULL,
    formatted_content TEXT,  -- JSON array of {"type", "content"} segments
    created_at TEXT NOT NULL,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);

-- Loading a conversation's messages in order
CREATE INDEX IF NOT EXISTS idx_messages_conversation_created
    ON messages(conversation_id, created_at);
"""
