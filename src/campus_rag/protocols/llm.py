"""Protocol for LLM providers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol


class LLMProvider(Protocol):
    async def generate_completion(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = 256,
    ) -> str:
        """Blocking completion used for analysis, judging and reranking sub-calls."""
        ...

    def stream_response(
        self,
        query: str,
        reference_text: str,
        history: list[dict[str, str]],
    ) -> AsyncIterator[str]:
        """Stream the grounded final answer chunk by chunk.

        Closing the iterator cancels the underlying provider call.
        """
        ...
