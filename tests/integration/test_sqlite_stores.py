"""Integration tests for the SQLite document, conversation and evaluation stores."""

import pytest

from campus_rag.evaluation.metrics import EvalCaseResult, compute_metrics
from campus_rag.exceptions import PersistenceError
from campus_rag.feedback.service import FeedbackService
from campus_rag.models.domain import DocumentRecord, RetrievalMatch
from campus_rag.storage.sqlite_conversation_store import SQLiteConversationStore
from campus_rag.storage.sqlite_document_store import SQLiteDocumentStore
from campus_rag.storage.sqlite_eval_store import SQLiteEvaluationStore


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "test.db")


@pytest.fixture
async def doc_store(db_path):
    store = SQLiteDocumentStore(db_path)
    await store.initialize()
    return store


@pytest.fixture
async def conversation_store(db_path):
    store = SQLiteConversationStore(db_path)
    await store.initialize()
    return store


@pytest.fixture
async def eval_store(db_path):
    store = SQLiteEvaluationStore(db_path)
    await store.initialize()
    return store


@pytest.mark.asyncio
async def test_initialize_is_idempotent(doc_store, db_path):
    await SQLiteDocumentStore(db_path).initialize()
    assert await doc_store.count() == 0


@pytest.mark.asyncio
async def test_upsert_and_get_documents(doc_store):
    await doc_store.upsert_document(
        DocumentRecord(
            document_id="doc-a",
            source_name="奖学金评定办法",
            visibility="PUBLIC",
            doc_type="评奖评优",
            policy_year="2024",
            tags="奖学金;评奖",
        )
    )
    await doc_store.upsert_document(DocumentRecord(document_id="doc-b", owner_id="u1"))

    records = await doc_store.get_documents({"doc-a", "doc-b", "doc-missing"})
    assert set(records) == {"doc-a", "doc-b"}
    assert records["doc-a"].tag_list() == ["奖学金", "评奖"]
    assert records["doc-b"].visibility == "PRIVATE"
    assert await doc_store.count() == 2


@pytest.mark.asyncio
async def test_upsert_replaces_existing_record(doc_store):
    await doc_store.upsert_document(DocumentRecord(document_id="doc-a", visibility="PRIVATE"))
    await doc_store.upsert_document(DocumentRecord(document_id="doc-a", visibility="PUBLIC"))
    assert await doc_store.document_ids_by_visibility("PUBLIC") == {"doc-a"}
    assert await doc_store.count() == 1


@pytest.mark.asyncio
async def test_ids_by_owner_and_visibility(doc_store):
    await doc_store.upsert_document(DocumentRecord(document_id="doc-a", visibility="PUBLIC"))
    await doc_store.upsert_document(DocumentRecord(document_id="doc-b", owner_id="u1"))
    await doc_store.upsert_document(DocumentRecord(document_id="doc-c", owner_id="u2"))
    assert await doc_store.document_ids_by_owner("u1") == {"doc-b"}
    assert await doc_store.document_ids_by_visibility("PUBLIC") == {"doc-a"}
    assert await doc_store.get_documents(set()) == {}


@pytest.mark.asyncio
async def test_messages_and_latest_session(conversation_store):
    assert await conversation_store.latest_session_id("u1") is None
    await conversation_store.save_message("s1", "u1", "user", "第一问")
    await conversation_store.save_message("s2", "u1", "user", "第二问")
    assert await conversation_store.latest_session_id("u1") == "s2"


@pytest.mark.asyncio
async def test_recent_messages_returns_last_n_oldest_first(conversation_store):
    for i in range(25):
        await conversation_store.save_message("s1", "u1", "user", f"message {i}")
    recent = await conversation_store.recent_messages("s1", 20)
    assert len(recent) == 20
    assert recent[0].content == "message 5"
    assert recent[-1].content == "message 24"


@pytest.mark.asyncio
async def test_average_scores_join_sources_and_feedback(conversation_store):
    first = await conversation_store.save_message("s1", "u1", "assistant", "答案一")
    second = await conversation_store.save_message("s1", "u1", "assistant", "答案二")
    await conversation_store.save_sources(
        first, [RetrievalMatch("doc-a", 0, "片段", 0.9, "奖学金评定办法")]
    )
    await conversation_store.save_sources(
        second,
        [RetrievalMatch("doc-a", 1, "片段", 0.8), RetrievalMatch("doc-b", 0, "片段", 0.7)],
    )
    await conversation_store.save_feedback(first, "u1", 5, None)
    await conversation_store.save_feedback(second, "u2", 2, "不准确")

    averages = await conversation_store.average_scores_by_document({"doc-a", "doc-b", "doc-c"})
    assert averages == {"doc-a": pytest.approx(3.5), "doc-b": pytest.approx(2.0)}
    assert await conversation_store.average_scores_by_document(set()) == {}


@pytest.mark.asyncio
async def test_feedback_score_constraint_enforced(conversation_store):
    message_id = await conversation_store.save_message("s1", "u1", "assistant", "答案")
    with pytest.raises(PersistenceError):
        await conversation_store.save_feedback(message_id, "u1", 9, None)


@pytest.mark.asyncio
async def test_feedback_boost_from_stored_ratings(conversation_store, settings):
    message_id = await conversation_store.save_message("s1", "u1", "assistant", "答案")
    await conversation_store.save_sources(message_id, [RetrievalMatch("doc-a", 0, "片段", 0.9)])
    await conversation_store.save_feedback(message_id, "u1", 5, None)
    boosts = await FeedbackService(conversation_store, settings).load_boost_map({"doc-a"})
    assert boosts == {"doc-a": pytest.approx(settings.feedback_max_boost)}


@pytest.mark.asyncio
async def test_eval_run_round_trip(eval_store):
    results = [
        EvalCaseResult("1", "q1", hit=True, similarity=0.9, answer="a1"),
        EvalCaseResult("2", "q2", hit=False, error="timeout"),
    ]
    run_id = await eval_store.save_run(compute_metrics(results), results, with_answer=True)
    stored = await eval_store.get_run(run_id)
    assert stored["hit_rate"] == 0.5
    assert stored["results"][0].similarity == pytest.approx(0.9)
    assert stored["results"][1].error == "timeout"
    assert await eval_store.get_run(run_id + 100) is None


@pytest.mark.asyncio
async def test_unreachable_database_raises_persistence_error(tmp_path):
    store = SQLiteDocumentStore(str(tmp_path / "missing-dir" / "test.db"))
    with pytest.raises(PersistenceError):
        await store.count()
