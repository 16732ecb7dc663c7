"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from pydantic import BaseModel, Field

from campus_rag.models.domain import MetadataFilter, RetrievalMatch


class SourceItem(BaseModel):
    document_id: str
    chunk_index: int
    text: str
    relevance_score: float
    source_name: str | None = None

    @classmethod
    def from_match(cls, match: RetrievalMatch) -> SourceItem:
        return cls(
            document_id=match.document_id,
            chunk_index=match.chunk_index,
            text=match.text,
            relevance_score=match.relevance_score,
            source_name=match.source_name,
        )


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)


class ChatResponse(BaseModel):
    answer: str
    sources: list[SourceItem]
    message_id: int | None = None


class FilterSpec(BaseModel):
    department: str | None = None
    doc_type: str | None = None
    policy_year: str | None = None
    tags: list[str] = Field(default_factory=list)

    def to_filter(self) -> MetadataFilter:
        return MetadataFilter(
            department=self.department,
            doc_type=self.doc_type,
            policy_year=self.policy_year,
            tags=list(self.tags),
        )


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: int = Field(default=5, ge=1, le=50)
    filter: FilterSpec | None = None


class SearchResponse(BaseModel):
    results: list[SourceItem]


class FeedbackRequest(BaseModel):
    message_id: int
    score: int = Field(ge=1, le=5)
    comment: str | None = None


class FeedbackResponse(BaseModel):
    status: str = "recorded"


class EvaluationRequest(BaseModel):
    with_answer: bool = False


class EvaluationItemResult(BaseModel):
    item_id: str
    question: str
    hit: bool
    similarity: float | None = None
    answer: str = ""
    error: str | None = None


class EvaluationResponse(BaseModel):
    run_id: int | None
    total: int
    hit_rate: float
    avg_similarity: float | None
    results: list[EvaluationItemResult]


class HealthResponse(BaseModel):
    status: str
    document_count: int
    index_available: bool
