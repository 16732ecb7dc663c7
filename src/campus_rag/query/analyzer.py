"""Query expansion: LLM rewrites and a HyDE probe passage."""

from __future__ import annotations

import asyncio
import re

from campus_rag.config.constants import REWRITE_MAX_TOKENS
from campus_rag.config.settings import Settings
from campus_rag.exceptions import GenerationError
from campus_rag.generation.prompt_templates import HYDE_PROMPT, QUERY_REWRITE_PROMPT, resolve_prompt
from campus_rag.models.domain import QueryPlan
from campus_rag.observability.logger import get_logger
from campus_rag.protocols.llm import LLMProvider

logger = get_logger("query_analyzer")

_LEADING_BULLET = re.compile(r"^[-*\d.、)\s]+")


class QueryAnalyzer:
    def __init__(self, llm: LLMProvider, settings: Settings) -> None:
        self._llm = llm
        self._settings = settings

    async def create_plan(self, query: str) -> QueryPlan:
        rewrites, hyde = await asyncio.gather(self._rewrite(query), self._hyde(query))
        logger.info("query_plan_created", rewrites=len(rewrites), hyde=hyde is not None)
        return QueryPlan(original_query=query, rewritten_queries=tuple(rewrites), hyde_answer=hyde)

    async def _rewrite(self, query: str) -> list[str]:
        if not self._settings.rewrite_enabled or self._settings.rewrite_variants <= 0:
            return []
        prompt = resolve_prompt(self._settings.rewrite_prompt, QUERY_REWRITE_PROMPT)
        try:
            output = await self._llm.generate_completion(prompt, query, REWRITE_MAX_TOKENS)
        except GenerationError as e:
            logger.warning("query_rewrite_failed", error=str(e))
            return []
        return parse_rewrites(output, self._settings.rewrite_variants)

    async def _hyde(self, query: str) -> str | None:
        if not self._settings.hyde_enabled:
            return None
        prompt = resolve_prompt(self._settings.hyde_prompt, HYDE_PROMPT)
        try:
            output = await self._llm.generate_completion(prompt, query, self._settings.hyde_max_tokens)
        except GenerationError as e:
            logger.warning("hyde_failed", error=str(e))
            return None
        output = (output or "").strip()
        return output or None


def parse_rewrites(output: str | None, limit: int) -> list[str]:
    """One rewrite per line; bullets and numbering stripped, duplicates dropped."""
    if not output or not output.strip():
        return []
    rewrites: list[str] = []
    for line in output.splitlines():
        cleaned = _LEADING_BULLET.sub("", line).strip()
        if cleaned and cleaned not in rewrites:
            rewrites.append(cleaned)
        if len(rewrites) >= limit:
            break
    return rewrites
