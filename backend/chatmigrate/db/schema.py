"""Database schema DDL. All tables use CREATE IF NOT EXISTS for idempotency."""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS known_conversations (
    conversation_id TEXT PRIMARY KEY,
    fetched_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS import_sessions (
    session_id TEXT PRIMARY KEY,
    file_name TEXT NOT NULL,
    status TEXT NOT NULL,
    total_chunks INTEGER,
    current_chunk INTEGER,
    poll_attempt INTEGER NOT NULL DEFAULT 0,
    message TEXT,
    warning TEXT,
    error TEXT,
    error_kind TEXT,
    confirmed INTEGER NOT NULL DEFAULT 0,
    imported_count INTEGER,
    failed_items TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_import_sessions_status ON import_sessions(status);
"""
