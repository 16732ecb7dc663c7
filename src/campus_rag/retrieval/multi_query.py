"""Fan-out retrieval over the query plan, RRF fan-in, then LLM rerank."""

from __future__ import annotations

import asyncio

from campus_rag.config.settings import Settings
from campus_rag.models.domain import MetadataFilter, QueryPlan, RetrievalMatch
from campus_rag.observability.logger import get_logger
from campus_rag.retrieval.fallback import FallbackManager
from campus_rag.retrieval.hybrid_retriever import HybridRetriever
from campus_rag.retrieval.reranker_llm import LLMReranker
from campus_rag.retrieval.rrf import fuse_matches

logger = get_logger("multi_query")


class MultiQueryRetriever:
    def __init__(
        self,
        retriever: HybridRetriever,
        fallback: FallbackManager,
        reranker: LLMReranker,
        settings: Settings,
    ) -> None:
        self._retriever = retriever
        self._fallback = fallback
        self._reranker = reranker
        self._settings = settings

    def variant_budget(self) -> int:
        """How many rewrites may be retrieved alongside the original query."""
        remaining = self._settings.fusion_max_queries - 1
        if self._settings.hyde_enabled:
            remaining -= 1
        return max(0, remaining)

    async def retrieve(
        self,
        query: str,
        plan: QueryPlan | None,
        top_k: int,
        user_id: str | None,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[RetrievalMatch]:
        calls = [self._fallback.retrieve_with_refinement(query, top_k, user_id, metadata_filter)]

        if plan is not None and self._settings.fusion_enabled:
            if self._settings.rewrite_enabled:
                for rewrite in plan.rewritten_queries[: self.variant_budget()]:
                    calls.append(
                        self._fallback.retrieve_with_refinement(rewrite, top_k, user_id, metadata_filter)
                    )
            if self._settings.hyde_enabled and plan.hyde_answer:
                calls.append(
                    self._retriever.retrieve_vector_only(plan.hyde_answer, top_k, user_id, metadata_filter)
                )

        outcomes = await asyncio.gather(*calls, return_exceptions=True)
        failures = [o for o in outcomes if isinstance(o, BaseException)]
        if failures:
            logger.error("variant_retrieval_failed", variants=len(outcomes), failed=len(failures))
            raise failures[0]
        result_lists = list(outcomes)
        logger.info("variants_retrieved", variants=len(result_lists), sizes=[len(r) for r in result_lists])

        if not self._settings.fusion_enabled or len(result_lists) == 1:
            fused = result_lists[0]
        else:
            fused = fuse_matches(result_lists, top_k, self._settings.rrf_k)

        return await self._reranker.rerank(query, fused, top_k)
