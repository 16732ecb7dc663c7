"""Fallback retrieval: low-quality requery and the widened lexical path used on REFINE."""

from __future__ import annotations

import re

from campus_rag.config.constants import MAX_RETRIEVAL_K, MIN_ACCEPTABLE_SCORE
from campus_rag.config.settings import Settings
from campus_rag.models.domain import MetadataFilter, RetrievalMatch
from campus_rag.observability.logger import get_logger
from campus_rag.retrieval.hybrid_retriever import HybridRetriever
from campus_rag.retrieval.reranker_llm import LLMReranker

logger = get_logger("fallback")

_PUNCTUATION = re.compile(r"[\t\r\n，。！？；：、,.!?;:\"'“”‘’（）()【】\[\]《》<>]")
_WHITESPACE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    return _WHITESPACE.sub(" ", _PUNCTUATION.sub(" ", query)).strip()


def is_low_quality(matches: list[RetrievalMatch]) -> bool:
    return not matches or matches[0].relevance_score < MIN_ACCEPTABLE_SCORE


class FallbackManager:
    def __init__(
        self,
        retriever: HybridRetriever,
        reranker: LLMReranker,
        settings: Settings,
    ) -> None:
        self._retriever = retriever
        self._reranker = reranker
        self._settings = settings

    async def retrieve_with_refinement(
        self,
        query: str,
        top_k: int,
        user_id: str | None,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[RetrievalMatch]:
        """Hybrid retrieval, retried once on a normalised query when the result is weak."""
        matches = await self._retriever.retrieve(query, top_k, user_id, metadata_filter)
        if not is_low_quality(matches):
            return matches

        normalized = normalize_query(query)
        if not normalized or normalized == query.strip():
            return matches

        retry_k = min(top_k * 2, MAX_RETRIEVAL_K)
        retried = await self._retriever.retrieve(normalized, retry_k, user_id, metadata_filter)
        if is_low_quality(retried):
            logger.info("refinement_discarded", retry_k=retry_k)
            return matches
        logger.info("refinement_used", retry_k=retry_k, hits=len(retried))
        return retried

    async def refine_retrieval(
        self,
        query: str,
        top_k: int,
        user_id: str | None,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[RetrievalMatch]:
        """Widened lexical-only pass, reranked down to ``top_k``."""
        multiplier = max(1, self._settings.crag_fallback_multiplier)
        widened_k = min(top_k * multiplier, MAX_RETRIEVAL_K)
        matches = await self._retriever.retrieve_text_only(query, widened_k, user_id, metadata_filter)
        logger.info("refine_retrieval", widened_k=widened_k, hits=len(matches))
        return await self._reranker.rerank(query, matches, top_k)
