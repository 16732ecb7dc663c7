"""Idempotent database schema creation."""

from __future__ import annotations

import aiosqlite

DOCUMENT_RECORDS_TABLE = """
CREATE TABLE IF NOT EXISTS document_records (
    document_id TEXT PRIMARY KEY,
    source_name TEXT,
    owner_id TEXT,
    visibility TEXT NOT NULL DEFAULT 'PRIVATE',
    department TEXT,
    doc_type TEXT,
    policy_year TEXT,
    tags TEXT,
    created_at TEXT NOT NULL
)
"""

DOCUMENT_OWNER_INDEX = """
CREATE INDEX IF NOT EXISTS idx_document_records_owner ON document_records(owner_id)
"""

DOCUMENT_VISIBILITY_INDEX = """
CREATE INDEX IF NOT EXISTS idx_document_records_visibility ON document_records(visibility)
"""

MESSAGES_TABLE = """
CREATE TABLE IF NOT EXISTS messages (
    message_id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
)
"""

MESSAGES_SESSION_INDEX = """
CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id, message_id)
"""

MESSAGES_USER_INDEX = """
CREATE INDEX IF NOT EXISTS idx_messages_user ON messages(user_id, message_id)
"""

MESSAGE_SOURCES_TABLE = """
CREATE TABLE IF NOT EXISTS message_sources (
    source_id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id INTEGER NOT NULL,
    document_id TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    relevance_score REAL,
    source_name TEXT,
    FOREIGN KEY (message_id) REFERENCES messages(message_id)
)
"""

MESSAGE_SOURCES_DOC_INDEX = """
CREATE INDEX IF NOT EXISTS idx_message_sources_document ON message_sources(document_id)
"""

MESSAGE_FEEDBACK_TABLE = """
CREATE TABLE IF NOT EXISTS message_feedback (
    feedback_id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    score INTEGER NOT NULL CHECK (score BETWEEN 1 AND 5),
    comment TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (message_id) REFERENCES messages(message_id)
)
"""

MESSAGE_FEEDBACK_INDEX = """
CREATE INDEX IF NOT EXISTS idx_message_feedback_message ON message_feedback(message_id)
"""

EVAL_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS eval_runs (
    run_id INTEGER PRIMARY KEY AUTOINCREMENT,
    total INTEGER NOT NULL,
    hit_rate REAL NOT NULL,
    avg_similarity REAL,
    error_count INTEGER NOT NULL DEFAULT 0,
    with_answer INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
)
"""

EVAL_RESULTS_TABLE = """
CREATE TABLE IF NOT EXISTS eval_results (
    result_id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id INTEGER NOT NULL,
    item_id TEXT NOT NULL,
    question TEXT NOT NULL,
    hit INTEGER NOT NULL,
    similarity REAL,
    answer TEXT NOT NULL DEFAULT '',
    error TEXT,
    FOREIGN KEY (run_id) REFERENCES eval_runs(run_id)
)
"""

SCHEMA = (
    DOCUMENT_RECORDS_TABLE,
    DOCUMENT_OWNER_INDEX,
    DOCUMENT_VISIBILITY_INDEX,
    MESSAGES_TABLE,
    MESSAGES_SESSION_INDEX,
    MESSAGES_USER_INDEX,
    MESSAGE_SOURCES_TABLE,
    MESSAGE_SOURCES_DOC_INDEX,
    MESSAGE_FEEDBACK_TABLE,
    MESSAGE_FEEDBACK_INDEX,
    EVAL_RUNS_TABLE,
    EVAL_RESULTS_TABLE,
)


async def initialize_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        for statement in SCHEMA:
            await db.execute(statement)
        await db.commit()
