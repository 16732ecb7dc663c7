"""SQLite-backed messages, evidence sources and ratings."""

from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from campus_rag.exceptions import PersistenceError
from campus_rag.models.domain import RetrievalMatch, StoredMessage
from campus_rag.storage.migrations import initialize_db


class SQLiteConversationStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_db(self._db_path)

    async def latest_session_id(self, user_id: str) -> str | None:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                async with db.execute(
                    "SELECT session_id FROM messages WHERE user_id = ? "
                    "ORDER BY message_id DESC LIMIT 1",
                    (user_id,),
                ) as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to look up session for {user_id}: {e}") from e
        return row[0] if row else None

    async def recent_messages(self, session_id: str, limit: int = 20) -> list[StoredMessage]:
        """The last ``limit`` messages of a session, oldest first."""
        try:
            async with aiosqlite.connect(self._db_path) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(
                    "SELECT * FROM messages WHERE session_id = ? ORDER BY message_id DESC LIMIT ?",
                    (session_id, limit),
                ) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to load history for {session_id}: {e}") from e
        return [self._row_to_message(row) for row in reversed(rows)]

    async def save_message(self, session_id: str, user_id: str, role: str, content: str) -> int:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                cursor = await db.execute(
                    "INSERT INTO messages (session_id, user_id, role, content, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (session_id, user_id, role, content, _now()),
                )
                await db.commit()
                return cursor.lastrowid
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to save {role} message: {e}") from e

    async def save_sources(self, message_id: int, sources: list[RetrievalMatch]) -> None:
        if not sources:
            return
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.executemany(
                    "INSERT INTO message_sources "
                    "(message_id, document_id, chunk_index, relevance_score, source_name) "
                    "VALUES (?, ?, ?, ?, ?)",
                    [
                        (message_id, s.document_id, s.chunk_index, s.relevance_score, s.source_name)
                        for s in sources
                    ],
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to save sources for message {message_id}: {e}") from e

    async def save_feedback(
        self, message_id: int, user_id: str, score: int, comment: str | None
    ) -> None:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute(
                    "INSERT INTO message_feedback (message_id, user_id, score, comment, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (message_id, user_id, score, comment, _now()),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to save feedback for message {message_id}: {e}") from e

    async def average_scores_by_document(self, document_ids: set[str]) -> dict[str, float]:
        """Average rating of every answer that cited each document."""
        if not document_ids:
            return {}
        ids = list(document_ids)
        placeholders = ",".join("?" for _ in ids)
        try:
            async with aiosqlite.connect(self._db_path) as db:
                async with db.execute(
                    "SELECT s.document_id, AVG(f.score) FROM message_sources s "
                    "JOIN message_feedback f ON f.message_id = s.message_id "
                    f"WHERE s.document_id IN ({placeholders}) GROUP BY s.document_id",
                    ids,
                ) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to aggregate feedback: {e}") from e
        return {row[0]: float(row[1]) for row in rows if row[1] is not None}

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> StoredMessage:
        return StoredMessage(
            message_id=row["message_id"],
            session_id=row["session_id"],
            user_id=row["user_id"],
            role=row["role"],
            content=row["content"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
