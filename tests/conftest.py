"""Shared test fixtures and in-memory fakes for the external adapters."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable
from pathlib import Path

import pytest

from campus_rag.bootstrap import Services, assemble
from campus_rag.config.settings import Settings
from campus_rag.exceptions import (
    EmbeddingError,
    GenerationError,
    IndexMissingError,
    PersistenceError,
    RetrievalError,
)
from campus_rag.models.domain import DocumentRecord, RetrievalMatch, StoredMessage
from campus_rag.storage.sqlite_eval_store import SQLiteEvaluationStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class FakeEmbedder:
    def __init__(self, dimensions: int = 3) -> None:
        self._dimensions = dimensions
        self.fail = False
        self.calls: list[list[str]] = []

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def encode(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingError("embedding backend down")
        return [[1.0] + [0.0] * (self._dimensions - 1) for _ in texts]

    async def close(self) -> None:
        pass


class FakeLLM:
    """Scripted completions plus a chunked answer stream."""

    def __init__(self) -> None:
        self.completion_text = ""
        self.responder: Callable[[str, str], str] | None = None
        self.fail_completion = False
        self.chunks: list[str] = ["根据资料，", "可以申请。"]
        self.stream_error: Exception | None = None
        self.hang = False
        self.stream_closed = False
        self.completion_calls: list[dict] = []
        self.stream_calls: list[dict] = []

    async def generate_completion(
        self, system_prompt: str, user_prompt: str, max_tokens: int | None = 256
    ) -> str:
        self.completion_calls.append(
            {"system": system_prompt, "user": user_prompt, "max_tokens": max_tokens}
        )
        if self.fail_completion:
            raise GenerationError("completion backend down")
        if self.responder is not None:
            return self.responder(system_prompt, user_prompt)
        return self.completion_text

    async def stream_response(self, query, reference_text, history):
        self.stream_calls.append({"query": query, "reference": reference_text, "history": history})
        try:
            if self.hang:
                await asyncio.sleep(3600)
            for chunk in self.chunks:
                await asyncio.sleep(0)
                yield chunk
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.stream_closed = True


class FakeSearchIndex:
    """Returns configured matches; ``by_query`` overrides per query text."""

    def __init__(self) -> None:
        self.results: list[RetrievalMatch] = []
        self.text_results: list[RetrievalMatch] | None = None
        self.by_query: dict[str, list[RetrievalMatch]] = {}
        self.missing = False
        self.fail = False
        self.failing_queries: set[str] = set()
        self.available = True
        self.completed: list[str] = []
        self.hybrid_calls: list[dict] = []
        self.knn_calls: list[dict] = []
        self.text_calls: list[dict] = []

    async def hybrid_search(self, query, vector, recall_size, operator, size):
        self.hybrid_calls.append(
            {"query": query, "recall_size": recall_size, "operator": operator, "size": size}
        )
        self._check()
        if query in self.failing_queries:
            raise RetrievalError(f"search failed for {query}")
        await asyncio.sleep(0)
        self.completed.append(query)
        return self._copies(self.by_query.get(query, self.results), size)

    async def knn_search(self, vector, recall_size, size):
        self.knn_calls.append({"recall_size": recall_size, "size": size})
        self._check()
        return self._copies(self.results, size)

    async def text_search(self, query, size, operator="or"):
        self.text_calls.append({"query": query, "size": size, "operator": operator})
        self._check()
        source = self.text_results if self.text_results is not None else self.results
        return self._copies(source, size)

    async def ping(self) -> bool:
        return self.available

    async def close(self) -> None:
        pass

    def _check(self) -> None:
        if self.missing:
            raise IndexMissingError("index_not_found_exception")
        if self.fail:
            raise RetrievalError("search backend down")

    @staticmethod
    def _copies(matches: list[RetrievalMatch], size: int) -> list[RetrievalMatch]:
        return [dataclasses.replace(m) for m in matches[:size]]


class FakeDocumentStore:
    def __init__(self, records: list[DocumentRecord] | None = None) -> None:
        self.records = {r.document_id: r for r in records or []}
        self.fail = False

    async def get_documents(self, document_ids):
        self._check()
        return {d: self.records[d] for d in document_ids if d in self.records}

    async def document_ids_by_owner(self, owner_id):
        self._check()
        return {d for d, r in self.records.items() if r.owner_id == owner_id}

    async def document_ids_by_visibility(self, visibility):
        self._check()
        return {d for d, r in self.records.items() if r.visibility == visibility}

    async def count(self) -> int:
        self._check()
        return len(self.records)

    def _check(self) -> None:
        if self.fail:
            raise PersistenceError("metadata store down")


class FakeConversationStore:
    def __init__(self) -> None:
        self.messages: list[StoredMessage] = []
        self.sources: dict[int, list[RetrievalMatch]] = {}
        self.feedback: list[dict] = []
        self.averages: dict[str, float] | None = None
        self.fail = False

    async def latest_session_id(self, user_id):
        self._check()
        for message in reversed(self.messages):
            if message.user_id == user_id:
                return message.session_id
        return None

    async def recent_messages(self, session_id, limit=20):
        self._check()
        return [m for m in self.messages if m.session_id == session_id][-limit:]

    async def save_message(self, session_id, user_id, role, content):
        self._check()
        message_id = len(self.messages) + 1
        self.messages.append(StoredMessage(message_id, session_id, user_id, role, content))
        return message_id

    async def save_sources(self, message_id, sources):
        self._check()
        self.sources[message_id] = list(sources)

    async def save_feedback(self, message_id, user_id, score, comment):
        self._check()
        self.feedback.append(
            {"message_id": message_id, "user_id": user_id, "score": score, "comment": comment}
        )

    async def average_scores_by_document(self, document_ids):
        self._check()
        if self.averages is None:
            return {}
        return {d: avg for d, avg in self.averages.items() if d in document_ids}

    def _check(self) -> None:
        if self.fail:
            raise PersistenceError("conversation store down")


def make_match(document_id: str, score: float, chunk_index: int = 0, text: str | None = None) -> RetrievalMatch:
    return RetrievalMatch(
        document_id=document_id,
        chunk_index=chunk_index,
        text=text or f"{document_id} 第{chunk_index}段：奖学金申请需要综合测评排名前10%。",
        relevance_score=score,
    )


@pytest.fixture
def settings(tmp_path):
    """Deterministic settings: every LLM sub-call off unless a test enables it."""
    return Settings(
        openai_api_key="test-key",
        google_api_key="test-key",
        sqlite_db_path=str(tmp_path / "campus_rag.db"),
        eval_dataset_path=str(FIXTURES_DIR / "eval_dataset.json"),
        rewrite_enabled=False,
        hyde_enabled=False,
        rerank_enabled=False,
        routing_use_llm=False,
        crag_use_llm=False,
        feedback_enabled=True,
        api_keys="test-api-key",
        jwt_secret="test-secret",
        generation_timeout_s=5.0,
    )


@pytest.fixture
def records():
    return [
        DocumentRecord(
            document_id="doc-a",
            source_name="奖学金评定办法",
            visibility="PUBLIC",
            department="学生工作处",
            doc_type="评奖评优",
            policy_year="2024",
            tags="奖学金;评奖",
        ),
        DocumentRecord(
            document_id="doc-b",
            source_name="u1 的笔记",
            owner_id="u1",
            visibility="PRIVATE",
            doc_type="竞赛奖励",
            tags="挑战杯,竞赛",
        ),
        DocumentRecord(
            document_id="doc-c",
            source_name="u2 的笔记",
            owner_id="u2",
            visibility="PRIVATE",
        ),
    ]


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def index():
    return FakeSearchIndex()


@pytest.fixture
def document_store(records):
    return FakeDocumentStore(records)


@pytest.fixture
def conversation_store():
    return FakeConversationStore()


def build_services(settings, index, embedder, llm, document_store, conversation_store) -> Services:
    return assemble(
        settings,
        index=index,
        embedder=embedder,
        llm=llm,
        document_store=document_store,
        conversation_store=conversation_store,
        eval_store=SQLiteEvaluationStore(settings.sqlite_db_path),
    )


@pytest.fixture
async def services(settings, index, embedder, llm, document_store, conversation_store):
    built = build_services(settings, index, embedder, llm, document_store, conversation_store)
    await SQLiteEvaluationStore(settings.sqlite_db_path).initialize()
    return built
