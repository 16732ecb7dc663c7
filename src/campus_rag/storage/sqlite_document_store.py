"""SQLite-backed document metadata store (ownership, visibility, routing fields)."""

from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from campus_rag.exceptions import PersistenceError
from campus_rag.models.domain import DocumentRecord
from campus_rag.storage.migrations import initialize_db

_COLUMNS = "document_id, source_name, owner_id, visibility, department, doc_type, policy_year, tags"


class SQLiteDocumentStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_db(self._db_path)

    async def upsert_document(self, record: DocumentRecord) -> None:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute(
                    f"INSERT OR REPLACE INTO document_records ({_COLUMNS}, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.document_id,
                        record.source_name,
                        record.owner_id,
                        record.visibility or "PRIVATE",
                        record.department,
                        record.doc_type,
                        record.policy_year,
                        record.tags,
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to save document {record.document_id}: {e}") from e

    async def get_documents(self, document_ids: set[str]) -> dict[str, DocumentRecord]:
        if not document_ids:
            return {}
        ids = list(document_ids)
        placeholders = ",".join("?" for _ in ids)
        try:
            async with aiosqlite.connect(self._db_path) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(
                    f"SELECT {_COLUMNS} FROM document_records WHERE document_id IN ({placeholders})",
                    ids,
                ) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to load document metadata: {e}") from e
        return {row["document_id"]: self._row_to_record(row) for row in rows}

    async def document_ids_by_owner(self, owner_id: str) -> set[str]:
        return await self._ids_where("owner_id = ?", owner_id)

    async def document_ids_by_visibility(self, visibility: str) -> set[str]:
        return await self._ids_where("visibility = ?", visibility)

    async def count(self) -> int:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                async with db.execute("SELECT COUNT(*) FROM document_records") as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to count documents: {e}") from e
        return row[0] if row else 0

    async def _ids_where(self, clause: str, value: str) -> set[str]:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                async with db.execute(
                    f"SELECT document_id FROM document_records WHERE {clause}", (value,)
                ) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to query document ids: {e}") from e
        return {row[0] for row in rows}

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> DocumentRecord:
        return DocumentRecord(
            document_id=row["document_id"],
            source_name=row["source_name"],
            owner_id=row["owner_id"],
            visibility=row["visibility"],
            department=row["department"],
            doc_type=row["doc_type"],
            policy_year=row["policy_year"],
            tags=row["tags"],
        )
