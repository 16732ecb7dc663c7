"""Elasticsearch-backed hybrid passage index (kNN recall + lexical match + rescore)."""

from __future__ import annotations

from typing import Any

from elasticsearch import ApiError, AsyncElasticsearch, TransportError

from campus_rag.config.constants import LEXICAL_RESCORE_WEIGHT, VECTOR_QUERY_WEIGHT
from campus_rag.config.settings import Settings
from campus_rag.exceptions import IndexMissingError, RetrievalError
from campus_rag.models.domain import RetrievalMatch
from campus_rag.observability.logger import get_logger
from campus_rag.protocols.search_index import MatchOperator

logger = get_logger("elastic_index")

TEXT_FIELD = "text"
VECTOR_FIELD = "vector"


def _is_index_missing(error: BaseException | None) -> bool:
    while error is not None:
        if "index_not_found" in str(error).lower():
            return True
        error = error.__cause__
    return False


class ElasticsearchIndex:
    def __init__(self, settings: Settings) -> None:
        kwargs: dict[str, Any] = {"request_timeout": settings.elasticsearch_timeout_s}
        if settings.elasticsearch_api_key:
            kwargs["api_key"] = settings.elasticsearch_api_key
        self._client = AsyncElasticsearch(settings.elasticsearch_url, **kwargs)
        self._index = settings.elasticsearch_index

    async def hybrid_search(
        self,
        query: str,
        vector: list[float],
        recall_size: int,
        operator: MatchOperator,
        size: int,
    ) -> list[RetrievalMatch]:
        match = self._match_clause(query, operator)
        body = {
            "knn": {
                "field": VECTOR_FIELD,
                "query_vector": vector,
                "k": recall_size,
                "num_candidates": recall_size,
            },
            "query": match,
            "rescore": {
                "window_size": recall_size,
                "query": {
                    "rescore_query": match,
                    "query_weight": VECTOR_QUERY_WEIGHT,
                    "rescore_query_weight": LEXICAL_RESCORE_WEIGHT,
                },
            },
            "size": size,
        }
        return await self._search(body, "hybrid")

    async def knn_search(
        self, vector: list[float], recall_size: int, size: int
    ) -> list[RetrievalMatch]:
        body = {
            "knn": {
                "field": VECTOR_FIELD,
                "query_vector": vector,
                "k": recall_size,
                "num_candidates": recall_size,
            },
            "size": size,
        }
        return await self._search(body, "knn")

    async def text_search(
        self, query: str, size: int, operator: MatchOperator = "or"
    ) -> list[RetrievalMatch]:
        body = {"query": self._match_clause(query, operator), "size": size}
        return await self._search(body, "text")

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except TransportError:
            return False

    async def close(self) -> None:
        await self._client.close()

    @staticmethod
    def _match_clause(query: str, operator: MatchOperator) -> dict:
        return {"match": {TEXT_FIELD: {"query": query, "operator": operator}}}

    async def _search(self, body: dict, mode: str) -> list[RetrievalMatch]:
        try:
            response = await self._client.search(index=self._index, **body)
        except (ApiError, TransportError) as e:
            if _is_index_missing(e):
                raise IndexMissingError(f"Index {self._index} not found") from e
            raise RetrievalError(f"{mode} search failed: {e}") from e

        matches = []
        for hit in response["hits"]["hits"]:
            source = hit.get("_source")
            if not source:
                continue
            matches.append(
                RetrievalMatch(
                    document_id=source["document_id"],
                    chunk_index=int(source.get("chunk_index", 0)),
                    text=source.get(TEXT_FIELD, ""),
                    relevance_score=float(hit.get("_score") or 0.0),
                )
            )
        logger.debug("index_search", mode=mode, hits=len(matches))
        return matches
