"""All prompt templates for the campus RAG core."""

from __future__ import annotations

from campus_rag.config.constants import EMPTY_REFERENCE_TEXT, MAX_REFERENCE_LENGTH, UNKNOWN_SOURCE_LABEL
from campus_rag.models.domain import RetrievalMatch

ANSWER_RULES = """你是校园知识库问答助手，只能依据参考资料回答用户问题。
规则：
1. 引用资料时使用 [1]、[2] 等编号，与参考资料编号对应。
2. 参考资料不足以回答时，明确说明缺少哪些信息，不要编造。
3. 回答简洁、直接，使用简体中文。"""

QUERY_REWRITE_PROMPT = """你是检索查询改写助手，请根据用户问题生成多条可用于检索的改写：
1. 每行只输出一条改写
2. 不要编号或引号
3. 保持简洁，避免增加新事实"""

HYDE_PROMPT = """请根据用户问题生成一个可能的理想答案，用于检索。
要求：
1. 使用简体中文
2. 80-150字
3. 不要编造具体数值或机构名称"""

ROUTING_PROMPT = """你是检索路由助手，请从用户问题中抽取可能的元数据过滤条件。
只输出 JSON，字段如下：
{
  "department": "学院或部门",
  "docType": "文档类型",
  "policyYear": "年份",
  "tags": ["标签1","标签2"]
}
若无法确定请输出空字符串或空数组，不要输出解释。"""

CRAG_REVIEW_PROMPT = """你是检索质量评估器，请根据问题和候选片段判断是否足以回答。
只输出 JSON，字段如下：
{
  "action": "ANSWER|REFINE|CLARIFY|NO_ANSWER",
  "clarifyQuestion": "当需要澄清时给出一句问题"
}
如果问题本身模糊返回 CLARIFY；资料不足返回 REFINE 或 NO_ANSWER。"""

CLARIFY_PROMPT = """你是问答助手，请基于用户问题生成一个澄清问题，帮助补充场景信息。
要求：
1. 一句话
2. 不要给出答案
3. 使用简体中文"""

RERANK_PROMPT = """你是检索重排助手，请根据用户问题为候选片段打相关度分数。
要求：
1. 评分范围 0.0-1.0，越高越相关
2. 只输出 “id:score” 每行一条
3. 不要输出多余解释或符号"""


def resolve_prompt(configured: str, default: str) -> str:
    """Configured prompt when set, else the built-in default."""
    return configured if configured and configured.strip() else default


def format_candidate_block(query: str, lines: list[str], footer: str | None = None) -> str:
    block = f"问题：{query}\n候选片段：\n" + "".join(f"{line}\n" for line in lines)
    if footer:
        block += footer
    return block


def build_system_prompt(
    rules: str,
    reference_text: str,
    reference_start: str,
    reference_end: str,
    empty_reference_text: str = EMPTY_REFERENCE_TEXT,
) -> str:
    """Grounded system message: rules, then the bounded reference block between markers."""
    parts: list[str] = []
    if rules:
        parts.append(rules + "\n\n")
    parts.append(reference_start + "\n")
    if reference_text:
        parts.append(reference_text)
    else:
        parts.append(empty_reference_text + "\n")
    parts.append(reference_end)
    return "".join(parts)


def build_reference_block(
    matches: list[RetrievalMatch],
    snippet_length: int = MAX_REFERENCE_LENGTH,
    limit: int | None = None,
) -> str:
    """Numbered ``[i] (source) snippet`` lines, each snippet bounded."""
    lines = []
    for i, match in enumerate(matches[:limit], start=1):
        text = match.text or ""
        if len(text) > snippet_length:
            text = text[:snippet_length] + "…"
        source = match.source_name or UNKNOWN_SOURCE_LABEL
        lines.append(f"[{i}] ({source}) {text}\n")
    return "".join(lines)
