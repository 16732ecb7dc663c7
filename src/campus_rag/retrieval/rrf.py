"""Reciprocal Rank Fusion for merging retrieval results."""

from __future__ import annotations

import dataclasses

from campus_rag.models.domain import RetrievalMatch


def fuse_matches(
    result_lists: list[list[RetrievalMatch]],
    top_k: int,
    k: int = 60,
) -> list[RetrievalMatch]:
    """Merge ranked match lists using RRF.

    Args:
        result_lists: Each list sorted by relevance descending.
        top_k: Maximum number of fused matches to return.
        k: RRF constant (higher = more weight to lower-ranked results).

    Returns:
        Copies of the first-seen match per ``(document_id, chunk_index)`` with
        ``relevance_score`` set to the summed ``1 / (k + rank + 1)``, sorted
        descending and truncated to ``top_k``.
    """
    scores: dict[tuple[str, int], float] = {}
    first_seen: dict[tuple[str, int], RetrievalMatch] = {}
    for result_list in result_lists:
        for rank, match in enumerate(result_list):
            key = match.key
            scores[key] = scores.get(key, 0.0) + 1.0 / (k + rank + 1)
            first_seen.setdefault(key, match)

    fused = [dataclasses.replace(first_seen[key], relevance_score=score) for key, score in scores.items()]
    fused.sort(key=lambda m: m.relevance_score, reverse=True)
    return fused[:top_k]
