"""Offline evaluation endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from campus_rag.api.dependencies import get_evaluation_runner
from campus_rag.api.rate_limiter import current_user
from campus_rag.evaluation.runner import EvaluationRunner
from campus_rag.models.schemas import EvaluationItemResult, EvaluationRequest, EvaluationResponse

router = APIRouter()


@router.post("/evaluation/run", response_model=EvaluationResponse)
async def run_evaluation(
    request: EvaluationRequest,
    runner: EvaluationRunner = Depends(get_evaluation_runner),
    _user: str = Depends(current_user),
) -> EvaluationResponse:
    outcome = await runner.run(with_answer=request.with_answer)
    return EvaluationResponse(
        run_id=outcome["run_id"],
        total=outcome["total"],
        hit_rate=outcome["hit_rate"],
        avg_similarity=outcome["avg_similarity"],
        results=[
            EvaluationItemResult(
                item_id=r.item_id,
                question=r.question,
                hit=r.hit,
                similarity=r.similarity,
                answer=r.answer,
                error=r.error,
            )
            for r in outcome["results"]
        ],
    )
