"""Tests for the in-memory session cache."""

import asyncio

import pytest

from campus_rag.conversation.session_cache import InMemorySessionCache
from campus_rag.models.domain import HistoryEntry


def _entry(i: int) -> HistoryEntry:
    return HistoryEntry(role="user", content=f"message {i}", timestamp="2024-01-01T00:00:00+00:00")


@pytest.mark.asyncio
async def test_concurrent_session_creation_has_single_winner():
    cache = InMemorySessionCache()
    calls = []

    async def loader(user_id):
        calls.append(user_id)
        await asyncio.sleep(0.01)
        return None

    ids = await asyncio.gather(*(cache.get_or_create_session("u1", loader) for _ in range(10)))
    assert len(set(ids)) == 1
    assert calls == ["u1"]


@pytest.mark.asyncio
async def test_existing_session_is_reused_from_loader():
    cache = InMemorySessionCache()

    async def loader(user_id):
        return "stored-session"

    assert await cache.get_or_create_session("u1", loader) == "stored-session"


@pytest.mark.asyncio
async def test_concurrent_appends_are_not_lost_and_capped():
    cache = InMemorySessionCache(max_size=20)
    await asyncio.gather(*(cache.append("s1", [_entry(i)]) for i in range(30)))
    history = await cache.get("s1")
    assert len(history) == 20
    assert history[-1].content == "message 29"


@pytest.mark.asyncio
async def test_replace_keeps_most_recent_entries():
    cache = InMemorySessionCache(max_size=3)
    await cache.replace("s1", [_entry(i) for i in range(5)])
    assert [e.content for e in await cache.get("s1")] == ["message 2", "message 3", "message 4"]


@pytest.mark.asyncio
async def test_trim_and_get_returns_copy():
    cache = InMemorySessionCache()
    await cache.append("s1", [_entry(i) for i in range(6)])
    await cache.trim("s1", 4)
    history = await cache.get("s1")
    history.clear()
    assert len(await cache.get("s1")) == 4


@pytest.mark.asyncio
async def test_unknown_session_is_empty():
    assert await InMemorySessionCache().get("missing") == []
