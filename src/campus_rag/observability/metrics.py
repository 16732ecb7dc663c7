"""Metric recording helpers for conversation turns."""

from __future__ import annotations

from campus_rag.models.domain import RetrievalMatch
from campus_rag.observability.logger import get_logger
from campus_rag.observability.tracing import TraceContext

logger = get_logger("metrics")


def log_retrieval_metrics(
    trace_id: str,
    stage: str,
    matches: list[RetrievalMatch],
) -> None:
    logger.info(
        "retrieval_metrics",
        trace_id=trace_id,
        stage=stage,
        num_matches=len(matches),
        unique_docs=len({m.document_id for m in matches}),
        top_scores=[round(m.relevance_score, 4) for m in matches[:5]],
    )


def log_turn_metrics(
    trace: TraceContext,
    decision: str,
    num_sources: int,
    answer_len: int,
    streamed: bool,
) -> None:
    logger.info(
        "turn_metrics",
        trace_id=trace.trace_id,
        decision=decision,
        num_sources=num_sources,
        answer_len=answer_len,
        streamed=streamed,
        latency_ms=round(trace.elapsed_ms, 2),
        stages=trace.stage_durations(),
    )
