"""In-memory session identity and recent-history cache."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from uuid import uuid4

from campus_rag.config.constants import MAX_HISTORY_SIZE
from campus_rag.models.domain import ConversationSession, HistoryEntry
from campus_rag.observability.logger import get_logger

logger = get_logger("session_cache")


class InMemorySessionCache:
    """Advisory cache over the conversation store.

    Session creation has a single winner per user and appends to one session
    never lose entries. History is capped at ``max_size`` entries.
    """

    def __init__(self, max_size: int = MAX_HISTORY_SIZE) -> None:
        self._max_size = max_size
        self._user_sessions: dict[str, str] = {}
        self._sessions: dict[str, ConversationSession] = {}
        self._lock = asyncio.Lock()

    async def get_or_create_session(
        self, user_id: str, loader: Callable[[str], Awaitable[str | None]]
    ) -> str:
        async with self._lock:
            session_id = self._user_sessions.get(user_id)
            if session_id:
                return session_id
            session_id = await loader(user_id) or uuid4().hex
            self._user_sessions[user_id] = session_id
            self._sessions.setdefault(session_id, ConversationSession(session_id, user_id))
            logger.info("session_bound", user_id=user_id, session_id=session_id)
            return session_id

    async def get(self, session_id: str) -> list[HistoryEntry]:
        async with self._lock:
            session = self._sessions.get(session_id)
            return list(session.history) if session else []

    async def replace(self, session_id: str, history: list[HistoryEntry]) -> None:
        async with self._lock:
            session = self._session(session_id)
            session.history = list(history[-self._max_size :])

    async def append(self, session_id: str, entries: list[HistoryEntry]) -> list[HistoryEntry]:
        async with self._lock:
            history = self._session(session_id).history
            history.extend(entries)
            if len(history) > self._max_size:
                del history[: len(history) - self._max_size]
            return list(history)

    async def trim(self, session_id: str, max_size: int) -> None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session and len(session.history) > max_size:
                del session.history[: len(session.history) - max_size]

    def _session(self, session_id: str) -> ConversationSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = ConversationSession(session_id, user_id="")
            self._sessions[session_id] = session
        return session
