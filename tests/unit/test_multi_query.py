"""Tests for fan-out retrieval, refinement retries and RRF fan-in."""

import pytest

from campus_rag.exceptions import RetrievalError
from campus_rag.feedback.service import FeedbackService
from campus_rag.models.domain import QueryPlan
from campus_rag.retrieval.fallback import FallbackManager, is_low_quality, normalize_query
from campus_rag.retrieval.hybrid_retriever import HybridRetriever
from campus_rag.retrieval.multi_query import MultiQueryRetriever
from campus_rag.retrieval.reranker_llm import LLMReranker
from conftest import make_match

QUERY = "国家奖学金申请条件是什么"


@pytest.fixture
def retriever(settings, index, embedder, document_store, conversation_store):
    return HybridRetriever(index, embedder, document_store, FeedbackService(conversation_store, settings))


@pytest.fixture
def fallback(retriever, llm, settings):
    return FallbackManager(retriever, LLMReranker(llm, settings), settings)


@pytest.fixture
def multi_query(retriever, fallback, llm, settings):
    return MultiQueryRetriever(retriever, fallback, LLMReranker(llm, settings), settings)


def test_normalize_query():
    assert normalize_query("奖学金，怎么申请？") == "奖学金 怎么申请"
    assert normalize_query("  (请假)  流程 ") == "请假 流程"


def test_is_low_quality():
    assert is_low_quality([])
    assert is_low_quality([make_match("doc-a", 0.2)])
    assert not is_low_quality([make_match("doc-a", 0.25)])


@pytest.mark.asyncio
async def test_refinement_retry_used_when_better(fallback, index):
    index.by_query = {
        "奖学金，怎么申请？": [make_match("doc-a", 0.1)],
        "奖学金 怎么申请": [make_match("doc-a", 0.8, chunk_index=1)],
    }
    matches = await fallback.retrieve_with_refinement("奖学金，怎么申请？", 3, "u1")
    assert matches[0].chunk_index == 1
    assert index.hybrid_calls[1]["size"] == 6


@pytest.mark.asyncio
async def test_refinement_retry_discarded_when_still_weak(fallback, index):
    index.by_query = {
        "奖学金，怎么申请？": [make_match("doc-a", 0.1)],
        "奖学金 怎么申请": [make_match("doc-a", 0.05, chunk_index=1)],
    }
    matches = await fallback.retrieve_with_refinement("奖学金，怎么申请？", 3, "u1")
    assert matches[0].chunk_index == 0


@pytest.mark.asyncio
async def test_no_retry_when_normalisation_changes_nothing(fallback, index):
    index.results = [make_match("doc-a", 0.1)]
    await fallback.retrieve_with_refinement(QUERY, 3, "u1")
    assert len(index.hybrid_calls) == 1


@pytest.mark.asyncio
async def test_refine_retrieval_widens_lexical_search(fallback, index, settings):
    settings.crag_fallback_multiplier = 3
    index.text_results = [make_match("doc-a", 0.7)]
    matches = await fallback.refine_retrieval(QUERY, 5, "u1")
    assert index.text_calls[0]["size"] == 10
    assert [m.document_id for m in matches] == ["doc-a"]


def test_variant_budget(multi_query, settings):
    settings.fusion_max_queries = 4
    assert multi_query.variant_budget() == 3
    settings.hyde_enabled = True
    assert multi_query.variant_budget() == 2
    settings.fusion_max_queries = 1
    assert multi_query.variant_budget() == 0


@pytest.mark.asyncio
async def test_rewrites_are_fused(multi_query, index, settings):
    settings.rewrite_enabled = True
    index.by_query = {
        QUERY: [make_match("doc-a", 0.9), make_match("doc-b", 0.8)],
        "国奖评选要求": [make_match("doc-b", 0.9)],
    }
    plan = QueryPlan(QUERY, rewritten_queries=("国奖评选要求",))
    matches = await multi_query.retrieve(QUERY, plan, 5, "u1")
    assert [m.document_id for m in matches] == ["doc-b", "doc-a"]
    assert matches[0].relevance_score == pytest.approx(1 / 61 + 1 / 62)


@pytest.mark.asyncio
async def test_rewrites_capped_by_variant_budget(multi_query, index, settings):
    settings.rewrite_enabled = True
    settings.fusion_max_queries = 2
    index.results = [make_match("doc-a", 0.9)]
    plan = QueryPlan(QUERY, rewritten_queries=("改写一个问题", "改写两个问题", "改写三个问题"))
    await multi_query.retrieve(QUERY, plan, 5, "u1")
    assert [c["query"] for c in index.hybrid_calls] == [QUERY, "改写一个问题"]


@pytest.mark.asyncio
async def test_hyde_passage_uses_vector_search(multi_query, index, settings):
    settings.hyde_enabled = True
    index.results = [make_match("doc-a", 0.9)]
    plan = QueryPlan(QUERY, hyde_answer="国家奖学金要求综测排名前10%。")
    await multi_query.retrieve(QUERY, plan, 5, "u1")
    assert len(index.knn_calls) == 1


@pytest.mark.asyncio
async def test_fusion_disabled_uses_original_query_only(multi_query, index, settings):
    settings.fusion_enabled = False
    settings.rewrite_enabled = True
    index.results = [make_match("doc-a", 0.9)]
    plan = QueryPlan(QUERY, rewritten_queries=("国奖评选要求",))
    matches = await multi_query.retrieve(QUERY, plan, 5, "u1")
    assert len(index.hybrid_calls) == 1
    assert matches[0].relevance_score == 0.9


@pytest.mark.asyncio
async def test_failed_variant_raises_after_siblings_finish(multi_query, index, settings):
    settings.rewrite_enabled = True
    index.results = [make_match("doc-a", 0.9)]
    index.failing_queries = {QUERY}
    plan = QueryPlan(QUERY, rewritten_queries=("国奖评选要求",))
    with pytest.raises(RetrievalError):
        await multi_query.retrieve(QUERY, plan, 5, "u1")
    assert index.completed == ["国奖评选要求"]
