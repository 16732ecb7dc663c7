"""Recall sizing and metadata predicates shared by the retrieval paths."""

from __future__ import annotations

from campus_rag.config.constants import (
    LONG_QUERY_RECALL_FACTOR,
    MAX_RECALL_SIZE,
    SHORT_QUERY_CHARS,
    SHORT_QUERY_RECALL_FACTOR,
)
from campus_rag.models.domain import DocumentRecord, MetadataFilter
from campus_rag.protocols.search_index import MatchOperator


def is_short_query(query: str) -> bool:
    return len(query.strip()) <= SHORT_QUERY_CHARS


def recall_size(query: str, top_k: int) -> int:
    factor = SHORT_QUERY_RECALL_FACTOR if is_short_query(query) else LONG_QUERY_RECALL_FACTOR
    return min(top_k * factor, MAX_RECALL_SIZE)


def match_operator(query: str) -> MatchOperator:
    return "or" if is_short_query(query) else "and"


def matches_metadata(record: DocumentRecord, metadata_filter: MetadataFilter) -> bool:
    """Case-insensitive containment on each set field; any-tag overlap when tags are requested."""
    if not _contains(record.department, metadata_filter.department):
        return False
    if not _contains(record.doc_type, metadata_filter.doc_type):
        return False
    if not _contains(record.policy_year, metadata_filter.policy_year):
        return False

    wanted = [t.lower() for t in metadata_filter.normalized_tags()]
    if not wanted:
        return True
    have = record.tag_list()
    if not have:
        return False
    return any(w in tag for w in wanted for tag in have)


def _contains(actual: str | None, expected: str | None) -> bool:
    if expected is None or not expected.strip():
        return True
    if actual is None:
        return False
    return expected.strip().lower() in actual.lower()
