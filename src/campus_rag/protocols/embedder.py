"""Protocol for embedding providers."""

from __future__ import annotations

from typing import Protocol


class Embedder(Protocol):
    async def encode(self, texts: list[str]) -> list[list[float]]:
        """Batch-encode texts. Raises EmbeddingError on provider failure."""
        ...

    @property
    def dimensions(self) -> int: ...
