"""Protocols for the document metadata and conversation stores."""

from __future__ import annotations

from typing import Protocol

from campus_rag.models.domain import DocumentRecord, RetrievalMatch, StoredMessage


class DocumentStore(Protocol):
    """Metadata lookups used for access and metadata filtering."""

    async def get_documents(self, document_ids: set[str]) -> dict[str, DocumentRecord]: ...

    async def document_ids_by_owner(self, owner_id: str) -> set[str]: ...

    async def document_ids_by_visibility(self, visibility: str) -> set[str]: ...

    async def count(self) -> int: ...

class ConversationStore(Protocol):
    """Append-only message, source and rating writes plus history reads."""

    async def latest_session_id(self, user_id: str) -> str | None: ...

    async def recent_messages(self, session_id: str, limit: int = 20) -> list[StoredMessage]: ...

    async def save_message(self, session_id: str, user_id: str, role: str, content: str) -> int: ...

    async def save_sources(self, message_id: int, sources: list[RetrievalMatch]) -> None: ...

    async def save_feedback(
        self, message_id: int, user_id: str, score: int, comment: str | None
    ) -> None: ...

    async def average_scores_by_document(self, document_ids: set[str]) -> dict[str, float]: ...
