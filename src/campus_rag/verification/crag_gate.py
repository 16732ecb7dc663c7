"""Corrective-RAG quality gate: decide whether the retrieved evidence suffices."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field

from campus_rag.config.constants import (
    CLARIFY_MAX_TOKENS,
    CRAG_LLM_REVIEW_FACTOR,
    CRAG_MAX_TOKENS,
    CRAG_REVIEW_SNIPPET_LENGTH,
    DEFAULT_CLARIFY_QUESTION,
    SHORT_QUERY_CHARS,
)
from campus_rag.config.settings import Settings
from campus_rag.exceptions import GenerationError
from campus_rag.generation.prompt_templates import (
    CLARIFY_PROMPT,
    CRAG_REVIEW_PROMPT,
    format_candidate_block,
    resolve_prompt,
)
from campus_rag.generation.structured import parse_json_model
from campus_rag.models.domain import CragAction, CragDecision, RetrievalMatch
from campus_rag.observability.logger import get_logger
from campus_rag.protocols.llm import LLMProvider

logger = get_logger("crag_gate")

VAGUE_MARKERS = ("这个", "那个", "之前", "上面", "怎么弄", "怎么办")
VAGUE_MARKERS_EN = ("this", "that", "before", "above", "how do i")
_VAGUE_EN_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(m) for m in VAGUE_MARKERS_EN) + r")\b", re.IGNORECASE
)


class CragReview(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str = ""
    clarify_question: str | None = Field(default=None, alias="clarifyQuestion")

    def parsed_action(self) -> CragAction | None:
        try:
            return CragAction(self.action.strip().upper())
        except ValueError:
            return None


def is_ambiguous(query: str | None) -> bool:
    if query is None:
        return True
    text = query.strip()
    if len(text) < SHORT_QUERY_CHARS:
        return True
    if any(marker in text for marker in VAGUE_MARKERS):
        return True
    return _VAGUE_EN_PATTERN.search(text) is not None


def truncate(text: str | None, max_length: int) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


class CragGate:
    def __init__(self, llm: LLMProvider, settings: Settings) -> None:
        self._llm = llm
        self._settings = settings

    def no_result_message(self) -> str:
        text = self._settings.no_result_text
        return text if text and text.strip() else "暂无相关信息"

    def is_low_quality(self, matches: list[RetrievalMatch]) -> bool:
        return not matches or matches[0].relevance_score < self._settings.crag_min_score

    async def evaluate(self, query: str, matches: list[RetrievalMatch]) -> CragDecision:
        if not self._settings.crag_enabled:
            return CragDecision(CragAction.ANSWER)

        if not matches:
            if is_ambiguous(query):
                return CragDecision(CragAction.CLARIFY, await self.clarify_question(query))
            return CragDecision(CragAction.NO_ANSWER, self.no_result_message())

        review_below = self._settings.crag_min_score * CRAG_LLM_REVIEW_FACTOR
        if self._settings.crag_use_llm and matches[0].relevance_score < review_below:
            decision = await self._review_with_llm(query, matches)
            if decision is not None:
                logger.info("crag_llm_decision", action=decision.action.value)
                return decision

        if self.is_low_quality(matches):
            return CragDecision(CragAction.REFINE)
        return CragDecision(CragAction.ANSWER)

    async def clarify_question(self, query: str) -> str:
        if not self._settings.crag_use_llm:
            return DEFAULT_CLARIFY_QUESTION
        prompt = resolve_prompt(self._settings.crag_clarify_prompt, CLARIFY_PROMPT)
        try:
            output = await self._llm.generate_completion(prompt, query, CLARIFY_MAX_TOKENS)
        except GenerationError as e:
            logger.warning("clarify_generation_failed", error=str(e))
            return DEFAULT_CLARIFY_QUESTION
        output = (output or "").strip()
        return output or DEFAULT_CLARIFY_QUESTION

    async def _review_with_llm(
        self, query: str, matches: list[RetrievalMatch]
    ) -> CragDecision | None:
        prompt = resolve_prompt(self._settings.crag_prompt, CRAG_REVIEW_PROMPT)
        reviewed = matches[: min(self._settings.crag_review_top_k, len(matches))]
        lines = [
            f"{i}|{truncate(m.text, CRAG_REVIEW_SNIPPET_LENGTH)}"
            for i, m in enumerate(reviewed, start=1)
        ]
        try:
            output = await self._llm.generate_completion(
                prompt, format_candidate_block(query, lines), CRAG_MAX_TOKENS
            )
        except GenerationError as e:
            logger.warning("crag_review_failed", error=str(e))
            return None

        review = parse_json_model(output, CragReview)
        action = review.parsed_action() if review else None
        if action is None:
            logger.debug("crag_review_unparsed")
            return None

        if action is CragAction.CLARIFY:
            question = (review.clarify_question or "").strip()
            return CragDecision(action, question or await self.clarify_question(query))
        if action is CragAction.NO_ANSWER:
            return CragDecision(action, self.no_result_message())
        return CragDecision(action)
