"""Protocol for the external hybrid search index."""

from __future__ import annotations

from typing import Literal, Protocol

from campus_rag.models.domain import RetrievalMatch

MatchOperator = Literal["or", "and"]


class SearchIndex(Protocol):
    """Flat passage index ``{document_id, chunk_index, text, vector}``.

    Implementations raise IndexMissingError when the index does not exist and
    RetrievalError for any other backend failure.
    """

    async def hybrid_search(
        self,
        query: str,
        vector: list[float],
        recall_size: int,
        operator: MatchOperator,
        size: int,
    ) -> list[RetrievalMatch]: ...

    async def knn_search(
        self, vector: list[float], recall_size: int, size: int
    ) -> list[RetrievalMatch]: ...

    async def text_search(
        self, query: str, size: int, operator: MatchOperator = "or"
    ) -> list[RetrievalMatch]: ...

    async def ping(self) -> bool: ...
