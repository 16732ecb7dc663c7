"""Evaluation metric computation for retrieval benchmarks."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class EvalCaseResult:
    """Result of running a single benchmark item."""

    item_id: str
    question: str
    hit: bool
    similarity: float | None = None
    answer: str = ""
    retrieved_sources: list[str] = field(default_factory=list)
    error: str | None = None


def compute_metrics(results: list[EvalCaseResult]) -> dict:
    """Hit rate over all items, mean similarity over items that have one."""
    total = len(results)
    if total == 0:
        return {"total": 0, "hit_rate": 0.0, "avg_similarity": None, "error_count": 0}

    hits = sum(1 for r in results if r.hit)
    similarities = [r.similarity for r in results if r.similarity is not None]
    return {
        "total": total,
        "hit_rate": hits / total,
        "avg_similarity": sum(similarities) / len(similarities) if similarities else None,
        "error_count": sum(1 for r in results if r.error is not None),
    }
