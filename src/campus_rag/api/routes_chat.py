"""Chat, streaming chat, search and feedback endpoints."""

from __future__ import annotations

import json
from contextlib import aclosing

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from campus_rag.api.dependencies import get_orchestrator
from campus_rag.api.rate_limiter import current_user
from campus_rag.models.domain import StreamEvent
from campus_rag.models.schemas import (
    ChatRequest,
    ChatResponse,
    FeedbackRequest,
    FeedbackResponse,
    SearchRequest,
    SearchResponse,
    SourceItem,
)
from campus_rag.pipeline.conversation import ConversationOrchestrator

router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    user_id: str = Depends(current_user),
) -> ChatResponse:
    result = await orchestrator.chat(user_id, request.message)
    return ChatResponse(
        answer=result.answer,
        sources=[SourceItem.from_match(m) for m in result.sources],
        message_id=result.message_id,
    )


@router.post("/chat/stream")
async def chat_stream(
    request: ChatRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    user_id: str = Depends(current_user),
):
    """Stream the answer via Server-Sent Events."""
    events = orchestrator.chat_stream(user_id, request.message)

    async def event_generator():
        async with aclosing(events) as stream:
            async for event in stream:
                yield format_sse(event)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    user_id: str = Depends(current_user),
) -> SearchResponse:
    metadata_filter = request.filter.to_filter() if request.filter else None
    matches = await orchestrator.search(request.query, request.top_k, user_id, metadata_filter)
    return SearchResponse(results=[SourceItem.from_match(m) for m in matches])


@router.post("/feedback", response_model=FeedbackResponse)
async def feedback(
    request: FeedbackRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    user_id: str = Depends(current_user),
) -> FeedbackResponse:
    await orchestrator.record_feedback(request.message_id, user_id, request.score, request.comment)
    return FeedbackResponse()


def format_sse(event: StreamEvent) -> str:
    if event.type == "sources":
        data = json.dumps(
            [SourceItem.from_match(m).model_dump() for m in event.data or []],
            ensure_ascii=False,
        )
    elif event.type == "done":
        data = ""
    else:
        data = json.dumps(event.data, ensure_ascii=False)
    return f"event: {event.type}\ndata: {data}\n\n"
