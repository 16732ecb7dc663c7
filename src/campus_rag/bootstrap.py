"""Composition root: builds the service graph from settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from campus_rag.config.settings import Settings
from campus_rag.conversation.session_cache import InMemorySessionCache
from campus_rag.embeddings.openai_embedder import OpenAIEmbedder
from campus_rag.evaluation.runner import EvaluationRunner
from campus_rag.exceptions import ConfigurationError
from campus_rag.feedback.service import FeedbackService
from campus_rag.generation.gemini_provider import GeminiProvider
from campus_rag.observability.logger import get_logger
from campus_rag.pipeline.conversation import ConversationOrchestrator
from campus_rag.protocols.embedder import Embedder
from campus_rag.protocols.llm import LLMProvider
from campus_rag.protocols.search_index import SearchIndex
from campus_rag.protocols.stores import ConversationStore, DocumentStore
from campus_rag.query.analyzer import QueryAnalyzer
from campus_rag.query.routing import QueryRouter
from campus_rag.retrieval.fallback import FallbackManager
from campus_rag.retrieval.hybrid_retriever import HybridRetriever
from campus_rag.retrieval.multi_query import MultiQueryRetriever
from campus_rag.retrieval.reranker_llm import LLMReranker
from campus_rag.search.elastic_index import ElasticsearchIndex
from campus_rag.storage.sqlite_conversation_store import SQLiteConversationStore
from campus_rag.storage.sqlite_document_store import SQLiteDocumentStore
from campus_rag.storage.sqlite_eval_store import SQLiteEvaluationStore
from campus_rag.verification.crag_gate import CragGate

logger = get_logger("bootstrap")


@dataclass
class Services:
    settings: Settings
    orchestrator: ConversationOrchestrator
    evaluation: EvaluationRunner
    document_store: DocumentStore
    index: SearchIndex
    embedder: Embedder

    async def close(self) -> None:
        for resource in (self.index, self.embedder):
            closer = getattr(resource, "close", None)
            if closer is not None:
                await closer()


def assemble(
    settings: Settings,
    *,
    index: SearchIndex,
    embedder: Embedder,
    llm: LLMProvider,
    document_store: DocumentStore,
    conversation_store: ConversationStore,
    eval_store: SQLiteEvaluationStore,
) -> Services:
    """Wire the core around already-constructed adapters."""
    feedback = FeedbackService(conversation_store, settings)
    retriever = HybridRetriever(index, embedder, document_store, feedback)
    reranker = LLMReranker(llm, settings)
    fallback = FallbackManager(retriever, reranker, settings)
    multi_query = MultiQueryRetriever(retriever, fallback, reranker, settings)
    router = QueryRouter(llm, settings)
    analyzer = QueryAnalyzer(llm, settings)

    orchestrator = ConversationOrchestrator(
        router=router,
        analyzer=analyzer,
        multi_query=multi_query,
        retriever=retriever,
        reranker=reranker,
        fallback=fallback,
        gate=CragGate(llm, settings),
        feedback=feedback,
        llm=llm,
        conversation_store=conversation_store,
        sessions=InMemorySessionCache(),
        settings=settings,
    )
    evaluation = EvaluationRunner(
        router=router,
        analyzer=analyzer,
        multi_query=multi_query,
        llm=llm,
        embedder=embedder,
        store=eval_store,
        settings=settings,
    )
    return Services(
        settings=settings,
        orchestrator=orchestrator,
        evaluation=evaluation,
        document_store=document_store,
        index=index,
        embedder=embedder,
    )


async def build_services(settings: Settings) -> Services:
    missing = [
        f"RAG_{name.upper()}"
        for name in ("openai_api_key", "google_api_key")
        if not getattr(settings, name).strip()
    ]
    if missing:
        raise ConfigurationError(f"Missing provider credentials: {', '.join(missing)}")

    Path(settings.sqlite_db_path).parent.mkdir(parents=True, exist_ok=True)

    document_store = SQLiteDocumentStore(settings.sqlite_db_path)
    await document_store.initialize()
    conversation_store = SQLiteConversationStore(settings.sqlite_db_path)
    eval_store = SQLiteEvaluationStore(settings.sqlite_db_path)

    embedder = OpenAIEmbedder(
        api_key=settings.openai_api_key,
        model=settings.embedding_model,
        batch_size=settings.embedding_batch_size,
        dimensions=settings.embedding_dimensions,
    )
    services = assemble(
        settings,
        index=ElasticsearchIndex(settings),
        embedder=embedder,
        llm=GeminiProvider(settings),
        document_store=document_store,
        conversation_store=conversation_store,
        eval_store=eval_store,
    )
    logger.info(
        "services_built",
        index=settings.elasticsearch_index,
        db=settings.sqlite_db_path,
        rewrite=settings.rewrite_enabled,
        hyde=settings.hyde_enabled,
        crag=settings.crag_enabled,
    )
    return services
