"""LLM-as-judge reranker over a bounded head of the candidate list."""

from __future__ import annotations

import dataclasses
import re

from campus_rag.config.constants import RERANK_MAX_TOKENS, UNKNOWN_SOURCE_LABEL
from campus_rag.config.settings import Settings
from campus_rag.exceptions import GenerationError
from campus_rag.generation.prompt_templates import RERANK_PROMPT, format_candidate_block, resolve_prompt
from campus_rag.models.domain import RetrievalMatch
from campus_rag.observability.logger import get_logger
from campus_rag.protocols.llm import LLMProvider

logger = get_logger("reranker")

_SCORE_LINE = re.compile(r"^\s*(\d+)\s*[:：]\s*([0-9]*\.?[0-9]+)")
_WHITESPACE = re.compile(r"\s+")


class LLMReranker:
    def __init__(self, llm: LLMProvider, settings: Settings) -> None:
        self._llm = llm
        self._settings = settings

    async def rerank(
        self, query: str, matches: list[RetrievalMatch], top_k: int
    ) -> list[RetrievalMatch]:
        if not self._settings.rerank_enabled or len(matches) <= 1:
            return matches

        limit = min(self._settings.rerank_max_candidates, len(matches))
        if limit <= 0:
            return matches
        candidates = matches[:limit]

        prompt = resolve_prompt(self._settings.rerank_prompt, RERANK_PROMPT)
        lines = [
            f"{i}|{m.source_name or UNKNOWN_SOURCE_LABEL}|"
            f"{snippet(m.text, self._settings.rerank_snippet_length)}"
            for i, m in enumerate(candidates, start=1)
        ]
        try:
            output = await self._llm.generate_completion(
                prompt, format_candidate_block(query, lines), RERANK_MAX_TOKENS
            )
        except GenerationError as e:
            logger.warning("rerank_failed", error=str(e))
            return matches

        scores = parse_scores(output, limit)
        if not scores:
            logger.info("rerank_no_scores", candidates=limit)
            return matches

        # Unscored head candidates keep their retrieval score and compete in the sort.
        head = [
            dataclasses.replace(c, relevance_score=scores[i]) if i in scores else c
            for i, c in enumerate(candidates)
        ]
        head.sort(key=lambda m: m.relevance_score, reverse=True)
        remainder = matches[limit:]
        logger.info("reranked", scored=len(scores), head=len(head), remainder=len(remainder))
        return (head + remainder)[:top_k]


def parse_scores(output: str | None, limit: int) -> dict[int, float]:
    """``index:score`` lines into 0-based index -> clamped score."""
    scores: dict[int, float] = {}
    if not output:
        return scores
    for line in output.splitlines():
        found = _SCORE_LINE.match(line)
        if not found:
            continue
        index = int(found.group(1)) - 1
        if index < 0 or index >= limit:
            continue
        scores[index] = max(0.0, min(1.0, float(found.group(2))))
    return scores


def snippet(text: str | None, max_length: int) -> str:
    if not text:
        return ""
    collapsed = _WHITESPACE.sub(" ", text).strip()
    if len(collapsed) <= max_length:
        return collapsed
    return collapsed[:max_length] + "..."
