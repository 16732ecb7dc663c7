"""Core domain objects used throughout the system."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

_TAG_SEPARATORS = re.compile(r"[,，;；]")


@dataclass
class RetrievalMatch:
    """One retrieved passage. Only ``relevance_score`` changes after creation."""

    document_id: str
    chunk_index: int
    text: str
    relevance_score: float = 0.0
    source_name: str | None = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.document_id, self.chunk_index)


@dataclass(frozen=True)
class QueryPlan:
    original_query: str
    rewritten_queries: tuple[str, ...] = ()
    hyde_answer: str | None = None


@dataclass
class MetadataFilter:
    department: str | None = None
    doc_type: str | None = None
    policy_year: str | None = None
    tags: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return (
            not _present(self.department)
            and not _present(self.doc_type)
            and not _present(self.policy_year)
            and not self.normalized_tags()
        )

    def normalized_tags(self) -> list[str]:
        return [t.strip() for t in self.tags if t and t.strip()]


class CragAction(str, Enum):
    ANSWER = "ANSWER"
    REFINE = "REFINE"
    CLARIFY = "CLARIFY"
    NO_ANSWER = "NO_ANSWER"


@dataclass(frozen=True)
class CragDecision:
    action: CragAction
    message: str | None = None

    @property
    def short_circuits(self) -> bool:
        return self.action in (CragAction.CLARIFY, CragAction.NO_ANSWER)


@dataclass
class HistoryEntry:
    role: str  # "user" | "assistant"
    content: str
    timestamp: str

    def to_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ConversationSession:
    session_id: str
    user_id: str
    history: list[HistoryEntry] = field(default_factory=list)


@dataclass
class DocumentRecord:
    document_id: str
    source_name: str | None = None
    owner_id: str | None = None
    visibility: str | None = None
    department: str | None = None
    doc_type: str | None = None
    policy_year: str | None = None
    tags: str | None = None  # comma/semicolon separated, as stored

    def tag_list(self) -> list[str]:
        if not self.tags or not self.tags.strip():
            return []
        return [p.strip().lower() for p in _TAG_SEPARATORS.split(self.tags) if p.strip()]


@dataclass
class StoredMessage:
    message_id: int
    session_id: str
    user_id: str
    role: str
    content: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ChatResult:
    answer: str
    sources: list[RetrievalMatch]
    message_id: int | None


StreamEventType = Literal["chunk", "sources", "message_id", "error", "done"]


@dataclass(frozen=True)
class StreamEvent:
    type: StreamEventType
    data: Any = None


def _present(value: str | None) -> bool:
    return value is not None and bool(value.strip())
