"""Metadata routing: keyword heuristics merged with optional LLM extraction."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from campus_rag.config.constants import ROUTING_MAX_TOKENS
from campus_rag.config.settings import Settings
from campus_rag.exceptions import GenerationError
from campus_rag.generation.prompt_templates import ROUTING_PROMPT, resolve_prompt
from campus_rag.generation.structured import parse_json_model
from campus_rag.models.domain import MetadataFilter
from campus_rag.observability.logger import get_logger
from campus_rag.protocols.llm import LLMProvider

logger = get_logger("query_routing")

YEAR_PATTERN = re.compile(r"(20\d{2})")

# Ordered: the first keyword found in the query wins. Competition keywords
# precede the generic award ones.
DOC_TYPE_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("挑战杯", "竞赛奖励"),
    ("竞赛", "竞赛奖励"),
    ("综测", "综合测评"),
    ("综合测评", "综合测评"),
    ("评奖", "评奖评优"),
    ("奖学金", "评奖评优"),
    ("助学金", "评奖评优"),
    ("请假", "请假审批"),
    ("转专业", "转专业"),
    ("学籍", "学籍管理"),
    ("毕业", "毕业条件"),
    ("课程", "课程修读"),
)

DEPARTMENT_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("计算机学院", "计算机学院"),
    ("自动化学院", "自动化学院"),
    ("航空学院", "航空学院"),
    ("电子信息工程学院", "电子信息工程学院"),
    ("软件学院", "软件学院"),
    ("材料学院", "材料学院"),
    ("机械学院", "机械学院"),
    ("经管学院", "经济管理学院"),
    ("人文学院", "人文社会科学学院"),
    ("数学学院", "数学科学学院"),
    ("物理学院", "物理学院"),
)

TAG_KEYWORDS = ("挑战杯", "竞赛")


class RoutingResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    department: str | None = None
    doc_type: str | None = Field(default=None, alias="docType")
    policy_year: str | None = Field(default=None, alias="policyYear")
    tags: list[str] = Field(default_factory=list)

    @field_validator("department", "doc_type", "policy_year", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, v):
        if not isinstance(v, list):
            return []
        return [str(t).strip() for t in v if t is not None and str(t).strip()]

    def to_filter(self) -> MetadataFilter:
        return MetadataFilter(
            department=self.department,
            doc_type=self.doc_type,
            policy_year=self.policy_year,
            tags=list(self.tags),
        )


class QueryRouter:
    def __init__(self, llm: LLMProvider, settings: Settings) -> None:
        self._llm = llm
        self._settings = settings

    async def resolve_filter(self, query: str) -> MetadataFilter:
        heuristic = heuristic_filter(query)
        if not self._settings.routing_enabled or not self._settings.routing_use_llm:
            return heuristic

        llm_filter = await self._llm_filter(query)
        merged = merge_filters(heuristic, llm_filter, self._settings.routing_max_tags)
        logger.info(
            "filter_resolved",
            department=merged.department,
            doc_type=merged.doc_type,
            policy_year=merged.policy_year,
            tags=merged.tags,
        )
        return merged

    async def _llm_filter(self, query: str) -> MetadataFilter:
        prompt = resolve_prompt(self._settings.routing_prompt, ROUTING_PROMPT)
        try:
            output = await self._llm.generate_completion(prompt, query, ROUTING_MAX_TOKENS)
        except GenerationError as e:
            logger.warning("routing_llm_failed", error=str(e))
            return MetadataFilter()
        parsed = parse_json_model(output, RoutingResponse)
        if parsed is None:
            logger.warning("routing_parse_failed")
            return MetadataFilter()
        return parsed.to_filter()


def heuristic_filter(query: str) -> MetadataFilter:
    if not query or not query.strip():
        return MetadataFilter()
    text = query.strip()
    result = MetadataFilter()

    year = YEAR_PATTERN.search(text)
    if year:
        result.policy_year = year.group(1)
    result.doc_type = _first_hit(text, DOC_TYPE_KEYWORDS)
    result.department = _first_hit(text, DEPARTMENT_KEYWORDS)
    result.tags = [tag for tag in TAG_KEYWORDS if tag in text]
    return result


def merge_filters(base: MetadataFilter, extra: MetadataFilter, max_tags: int) -> MetadataFilter:
    """Field-wise merge where ``base`` wins; tags are unioned, ``base`` first."""
    tags = list(base.normalized_tags())
    for tag in extra.normalized_tags():
        if tag not in tags:
            tags.append(tag)
    if max_tags > 0:
        tags = tags[:max_tags]
    return MetadataFilter(
        department=_select_first(base.department, extra.department),
        doc_type=_select_first(base.doc_type, extra.doc_type),
        policy_year=_select_first(base.policy_year, extra.policy_year),
        tags=tags,
    )


def _first_hit(text: str, table: tuple[tuple[str, str], ...]) -> str | None:
    for keyword, canonical in table:
        if keyword in text:
            return canonical
    return None


def _select_first(primary: str | None, fallback: str | None) -> str | None:
    if primary and primary.strip():
        return primary.strip()
    if fallback and fallback.strip():
        return fallback.strip()
    return None
