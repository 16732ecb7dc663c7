"""Conversation orchestrator: one user turn from session lookup to persisted answer."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime, timezone

from campus_rag.config.constants import (
    ANONYMOUS_USER,
    DEFAULT_RETRIEVAL_K,
    LONG_QUERY_CHARS,
    MAX_HISTORY_SIZE,
    MAX_RETRIEVAL_K,
    MEDIUM_QUERY_CHARS,
    MULTI_INTENT_HINTS,
)
from campus_rag.config.settings import Settings
from campus_rag.exceptions import (
    GenerationError,
    GenerationTimeoutError,
    InvalidInputError,
    PersistenceError,
    RetrievalError,
    ServiceUnavailableError,
)
from campus_rag.feedback.service import FeedbackService
from campus_rag.generation.prompt_templates import build_reference_block
from campus_rag.models.domain import (
    ChatResult,
    CragAction,
    CragDecision,
    HistoryEntry,
    MetadataFilter,
    RetrievalMatch,
    StreamEvent,
)
from campus_rag.observability.logger import get_logger
from campus_rag.observability.metrics import log_retrieval_metrics, log_turn_metrics
from campus_rag.observability.tracing import TraceContext
from campus_rag.protocols.llm import LLMProvider
from campus_rag.protocols.session_store import SessionStore
from campus_rag.protocols.stores import ConversationStore
from campus_rag.query.analyzer import QueryAnalyzer
from campus_rag.query.routing import QueryRouter
from campus_rag.retrieval.fallback import FallbackManager
from campus_rag.retrieval.hybrid_retriever import HybridRetriever
from campus_rag.retrieval.multi_query import MultiQueryRetriever
from campus_rag.retrieval.reranker_llm import LLMReranker
from campus_rag.verification.crag_gate import CragGate

logger = get_logger("conversation")


def determine_top_k(text: str) -> int:
    """Base 5, widened for long or multi-intent questions, capped at 10."""
    if not text or not text.strip():
        return DEFAULT_RETRIEVAL_K
    length = len(text.strip())
    k = DEFAULT_RETRIEVAL_K
    if length > LONG_QUERY_CHARS:
        k += 3
    elif length > MEDIUM_QUERY_CHARS:
        k += 1
    if any(hint in text for hint in MULTI_INTENT_HINTS):
        k += 2
    return min(k, MAX_RETRIEVAL_K)


@dataclass
class _Turn:
    """Everything resolved before generation starts."""

    user_id: str
    session_id: str
    history: list[HistoryEntry]
    matches: list[RetrievalMatch]
    decision: CragDecision
    short_answer: str | None = None


class ConversationOrchestrator:
    def __init__(
        self,
        router: QueryRouter,
        analyzer: QueryAnalyzer,
        multi_query: MultiQueryRetriever,
        retriever: HybridRetriever,
        reranker: LLMReranker,
        fallback: FallbackManager,
        gate: CragGate,
        feedback: FeedbackService,
        llm: LLMProvider,
        conversation_store: ConversationStore,
        sessions: SessionStore,
        settings: Settings,
    ) -> None:
        self._router = router
        self._analyzer = analyzer
        self._multi_query = multi_query
        self._retriever = retriever
        self._reranker = reranker
        self._fallback = fallback
        self._gate = gate
        self._feedback = feedback
        self._llm = llm
        self._store = conversation_store
        self._sessions = sessions
        self._settings = settings

    async def chat(self, user_id: str | None, text: str) -> ChatResult:
        _require_text(text, "message")
        trace = TraceContext()
        try:
            turn = await self._prepare_turn(user_id, text, trace)
        except (RetrievalError, PersistenceError) as e:
            logger.error("turn_retrieval_failed", error=str(e), trace_id=trace.trace_id)
            raise ServiceUnavailableError() from e

        if turn.short_answer is not None:
            answer = turn.short_answer
        else:
            with trace.span("generation"):
                answer = await self._generate(text, turn)

        with trace.span("persistence"):
            message_id = await self._record_turn(turn, text, answer)

        log_turn_metrics(trace, turn.decision.action.value, len(turn.matches), len(answer), streamed=False)
        return ChatResult(answer=answer, sources=turn.matches, message_id=message_id)

    def chat_stream(self, user_id: str | None, text: str) -> AsyncIterator[StreamEvent]:
        """Validate eagerly, then return the lazily-evaluated event stream.

        Events: ``chunk`` * n, then ``sources``, ``message_id``, ``done``; or a
        single ``error`` event on failure. Closing the iterator early cancels
        the provider stream and nothing is persisted.
        """
        _require_text(text, "message")
        return self._stream_turn(user_id, text)

    async def search(
        self,
        query: str,
        top_k: int,
        user_id: str | None,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[RetrievalMatch]:
        _require_text(query, "query")
        if top_k < 1:
            raise InvalidInputError("top_k must be at least 1")
        matches = await self._retriever.retrieve(query, top_k, _resolve_user(user_id), metadata_filter)
        return await self._reranker.rerank(query, matches, top_k)

    async def record_feedback(
        self,
        message_id: int,
        user_id: str | None,
        score: int,
        comment: str | None = None,
    ) -> None:
        if score < 1 or score > 5:
            raise InvalidInputError("score must be between 1 and 5")
        try:
            await self._feedback.record_feedback(message_id, _resolve_user(user_id), score, comment)
        except PersistenceError as e:
            logger.error("feedback_persist_failed", message_id=message_id, error=str(e))
            raise ServiceUnavailableError() from e

    async def _prepare_turn(self, user_id: str | None, text: str, trace: TraceContext) -> _Turn:
        user = _resolve_user(user_id)
        session_id = await self._sessions.get_or_create_session(user, self._latest_session)
        history = await self._load_history(session_id)
        top_k = determine_top_k(text)

        with trace.span("routing"):
            metadata_filter = await self._router.resolve_filter(text)
        with trace.span("planning"):
            plan = await self._analyzer.create_plan(text)
        with trace.span("retrieval"):
            matches = await self._multi_query.retrieve(text, plan, top_k, user, metadata_filter)
        log_retrieval_metrics(trace.trace_id, "fused", matches)

        with trace.span("gate"):
            decision = await self._gate.evaluate(text, matches)
        logger.info(
            "gate_decision",
            trace_id=trace.trace_id,
            action=decision.action.value,
            matches=len(matches),
            top_k=top_k,
        )

        turn = _Turn(user, session_id, history, matches, decision)
        if decision.short_circuits:
            turn.short_answer = decision.message or self._gate.no_result_message()
        elif decision.action is CragAction.REFINE:
            with trace.span("fallback"):
                refined = await self._fallback.refine_retrieval(text, top_k, user, metadata_filter)
            log_retrieval_metrics(trace.trace_id, "refined", refined)
            if refined:
                turn.matches = refined
            else:
                turn.short_answer = self._gate.no_result_message()
        return turn

    async def _generate(self, text: str, turn: _Turn) -> str:
        timeout = self._settings.generation_timeout_s
        try:
            return await asyncio.wait_for(self._collect_answer(text, turn), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("generation_timeout", timeout_s=timeout, session_id=turn.session_id)
            raise ServiceUnavailableError() from GenerationTimeoutError(f"no answer after {timeout}s")
        except GenerationError as e:
            logger.error("generation_failed", error=str(e), session_id=turn.session_id)
            raise ServiceUnavailableError() from e

    async def _collect_answer(self, text: str, turn: _Turn) -> str:
        parts: list[str] = []
        async with aclosing(self._open_stream(text, turn)) as stream:
            async for chunk in stream:
                parts.append(chunk)
        return "".join(parts)

    def _open_stream(self, text: str, turn: _Turn) -> AsyncIterator[str]:
        return self._llm.stream_response(
            text,
            build_reference_block(turn.matches),
            [entry.to_message() for entry in turn.history],
        )

    async def _stream_turn(self, user_id: str | None, text: str) -> AsyncIterator[StreamEvent]:
        trace = TraceContext()
        try:
            turn = await self._prepare_turn(user_id, text, trace)
            if turn.short_answer is not None:
                answer = turn.short_answer
                yield StreamEvent("chunk", answer)
            else:
                parts: list[str] = []
                with trace.span("generation"):
                    async with aclosing(self._open_stream(text, turn)) as stream:
                        async for chunk in stream:
                            parts.append(chunk)
                            yield StreamEvent("chunk", chunk)
                answer = "".join(parts)

            with trace.span("persistence"):
                message_id = await self._record_turn(turn, text, answer)
        except Exception as e:
            logger.error("stream_turn_failed", error=str(e), trace_id=trace.trace_id)
            yield StreamEvent("error", str(ServiceUnavailableError()))
            return

        log_turn_metrics(trace, turn.decision.action.value, len(turn.matches), len(answer), streamed=True)
        yield StreamEvent("sources", turn.matches)
        yield StreamEvent("message_id", message_id)
        yield StreamEvent("done")

    async def _latest_session(self, user_id: str) -> str | None:
        try:
            return await self._store.latest_session_id(user_id)
        except PersistenceError as e:
            logger.warning("latest_session_lookup_failed", user_id=user_id, error=str(e))
            return None

    async def _load_history(self, session_id: str) -> list[HistoryEntry]:
        try:
            stored = await self._store.recent_messages(session_id, MAX_HISTORY_SIZE)
        except PersistenceError as e:
            logger.warning("history_load_failed", session_id=session_id, error=str(e))
            return await self._sessions.get(session_id)
        if not stored:
            return await self._sessions.get(session_id)

        history = [
            HistoryEntry(role=m.role, content=m.content, timestamp=m.created_at.isoformat())
            for m in stored
        ]
        await self._sessions.replace(session_id, history)
        return history

    async def _record_turn(self, turn: _Turn, text: str, answer: str) -> int | None:
        now = datetime.now(timezone.utc).isoformat()
        await self._sessions.append(
            turn.session_id,
            [HistoryEntry("user", text, now), HistoryEntry("assistant", answer, now)],
        )
        await self._sessions.trim(turn.session_id, MAX_HISTORY_SIZE)

        try:
            await self._store.save_message(turn.session_id, turn.user_id, "user", text)
            message_id = await self._store.save_message(turn.session_id, turn.user_id, "assistant", answer)
        except PersistenceError as e:
            logger.warning("message_persist_failed", session_id=turn.session_id, error=str(e))
            return None

        if turn.matches:
            try:
                await self._store.save_sources(message_id, turn.matches)
            except PersistenceError as e:
                logger.warning("sources_persist_failed", message_id=message_id, error=str(e))
        return message_id


def _require_text(value: str | None, field: str) -> None:
    if value is None or not value.strip():
        raise InvalidInputError(f"{field} must not be empty")


def _resolve_user(user_id: str | None) -> str:
    return user_id.strip() if user_id and user_id.strip() else ANONYMOUS_USER
