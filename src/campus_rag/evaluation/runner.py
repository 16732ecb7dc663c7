"""Evaluation runner: loads the benchmark dataset and scores retrieval in-process."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import numpy as np
from pydantic import BaseModel, Field, ValidationError

from campus_rag.config.constants import EVAL_REFERENCE_LIMIT, EVAL_SNIPPET_LENGTH, EVAL_USER_ID
from campus_rag.config.settings import Settings
from campus_rag.exceptions import EmbeddingError, RAGEngineError
from campus_rag.evaluation.metrics import EvalCaseResult, compute_metrics
from campus_rag.generation.prompt_templates import (
    ANSWER_RULES,
    build_reference_block,
    build_system_prompt,
    resolve_prompt,
)
from campus_rag.models.domain import RetrievalMatch
from campus_rag.observability.logger import get_logger
from campus_rag.pipeline.conversation import determine_top_k
from campus_rag.protocols.embedder import Embedder
from campus_rag.protocols.llm import LLMProvider
from campus_rag.query.analyzer import QueryAnalyzer
from campus_rag.query.routing import QueryRouter
from campus_rag.retrieval.multi_query import MultiQueryRetriever
from campus_rag.storage.sqlite_eval_store import SQLiteEvaluationStore

logger = get_logger("evaluation")

DEFAULT_CONCURRENCY = 3


class EvaluationItem(BaseModel):
    id: str
    question: str
    expected_answer: str | None = None
    expected_keywords: list[str] = Field(default_factory=list)
    expected_sources: list[str] = Field(default_factory=list)


def load_dataset(path: Path) -> list[EvaluationItem]:
    """Load the benchmark items; a missing or malformed file yields no items."""
    if not path.exists():
        logger.warning("eval_dataset_missing", path=str(path))
        return []
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
        return [EvaluationItem.model_validate(item) for item in raw]
    except (OSError, json.JSONDecodeError, ValidationError, TypeError) as e:
        logger.warning("eval_dataset_invalid", path=str(path), error=str(e))
        return []


def is_hit(matches: list[RetrievalMatch], item: EvaluationItem) -> bool:
    keywords = [k.lower() for k in item.expected_keywords if k and k.strip()]
    sources = [s.lower() for s in item.expected_sources if s and s.strip()]
    for match in matches:
        text = (match.text or "").lower()
        source_name = (match.source_name or "").lower()
        if any(k in text for k in keywords):
            return True
        if any(s in source_name for s in sources):
            return True
    return False


def cosine_similarity(a: list[float], b: list[float]) -> float:
    va = np.asarray(a, dtype=np.float32)
    vb = np.asarray(b, dtype=np.float32)
    if va.size == 0 or vb.size == 0 or va.shape != vb.shape:
        return 0.0
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class EvaluationRunner:
    def __init__(
        self,
        router: QueryRouter,
        analyzer: QueryAnalyzer,
        multi_query: MultiQueryRetriever,
        llm: LLMProvider,
        embedder: Embedder,
        store: SQLiteEvaluationStore,
        settings: Settings,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        self._router = router
        self._analyzer = analyzer
        self._multi_query = multi_query
        self._llm = llm
        self._embedder = embedder
        self._store = store
        self._settings = settings
        self._concurrency = concurrency

    async def run(self, with_answer: bool = False, dataset_path: Path | None = None) -> dict:
        """Run every benchmark item and persist the run.

        Returns a dict with ``run_id``, the metrics from ``compute_metrics`` and
        the per-item ``results``.
        """
        items = load_dataset(dataset_path or Path(self._settings.eval_dataset_path))
        if not items:
            return {"run_id": None, **compute_metrics([]), "results": []}

        semaphore = asyncio.Semaphore(self._concurrency)
        results = await asyncio.gather(
            *(self._run_item(item, with_answer, semaphore) for item in items)
        )
        metrics = compute_metrics(list(results))
        run_id = await self._store.save_run(metrics, list(results), with_answer)
        logger.info(
            "evaluation_finished",
            run_id=run_id,
            total=metrics["total"],
            hit_rate=round(metrics["hit_rate"], 4),
            errors=metrics["error_count"],
        )
        return {"run_id": run_id, **metrics, "results": list(results)}

    async def _run_item(
        self, item: EvaluationItem, with_answer: bool, semaphore: asyncio.Semaphore
    ) -> EvalCaseResult:
        async with semaphore:
            try:
                metadata_filter = await self._router.resolve_filter(item.question)
                plan = await self._analyzer.create_plan(item.question)
                matches = await self._multi_query.retrieve(
                    item.question,
                    plan,
                    determine_top_k(item.question),
                    EVAL_USER_ID,
                    metadata_filter,
                )
                result = EvalCaseResult(
                    item_id=item.id,
                    question=item.question,
                    hit=is_hit(matches, item),
                    retrieved_sources=[m.source_name or m.document_id for m in matches],
                )
                if with_answer:
                    result.answer = await self._generate_answer(item.question, matches)
                    if item.expected_answer and item.expected_answer.strip():
                        result.similarity = await self._similarity(item.expected_answer, result.answer)
                return result
            except RAGEngineError as e:
                logger.warning("eval_item_failed", item_id=item.id, error=str(e))
                return EvalCaseResult(item_id=item.id, question=item.question, hit=False, error=str(e))

    async def _generate_answer(self, question: str, matches: list[RetrievalMatch]) -> str:
        reference = build_reference_block(matches, EVAL_SNIPPET_LENGTH, limit=EVAL_REFERENCE_LIMIT)
        system_prompt = build_system_prompt(
            rules=resolve_prompt(self._settings.answer_rules, ANSWER_RULES),
            reference_text=reference,
            reference_start=self._settings.reference_start,
            reference_end=self._settings.reference_end,
            empty_reference_text=self._settings.no_result_text,
        )
        return await self._llm.generate_completion(system_prompt, question, None)

    async def _similarity(self, expected: str, actual: str) -> float | None:
        if not actual or not actual.strip():
            return None
        try:
            vectors = await self._embedder.encode([expected, actual])
        except EmbeddingError as e:
            logger.warning("eval_similarity_failed", error=str(e))
            return None
        if len(vectors) < 2:
            return None
        return cosine_similarity(vectors[0], vectors[1])
