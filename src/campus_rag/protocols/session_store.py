"""Protocol for the working-memory session store."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol

from campus_rag.models.domain import HistoryEntry


class SessionStore(Protocol):
    async def get_or_create_session(
        self, user_id: str, loader: Callable[[str], Awaitable[str | None]]
    ) -> str: ...

    async def get(self, session_id: str) -> list[HistoryEntry]: ...

    async def replace(self, session_id: str, history: list[HistoryEntry]) -> None: ...

    async def append(self, session_id: str, entries: list[HistoryEntry]) -> list[HistoryEntry]: ...

    async def trim(self, session_id: str, max_size: int) -> None: ...
