"""Hybrid retriever: one kNN + lexical + rescore index query, then access,
metadata and feedback post-processing."""

from __future__ import annotations

import asyncio

from campus_rag.config.constants import ANONYMOUS_USER, PUBLIC_VISIBILITY
from campus_rag.exceptions import EmbeddingError, IndexMissingError, RetrievalError
from campus_rag.feedback.service import FeedbackService
from campus_rag.models.domain import MetadataFilter, RetrievalMatch
from campus_rag.observability.logger import get_logger
from campus_rag.protocols.embedder import Embedder
from campus_rag.protocols.search_index import SearchIndex
from campus_rag.protocols.stores import DocumentStore
from campus_rag.retrieval.filters import match_operator, matches_metadata, recall_size

logger = get_logger("hybrid_retriever")


class HybridRetriever:
    def __init__(
        self,
        index: SearchIndex,
        embedder: Embedder,
        document_store: DocumentStore,
        feedback: FeedbackService,
    ) -> None:
        self._index = index
        self._embedder = embedder
        self._documents = document_store
        self._feedback = feedback

    async def retrieve(
        self,
        query: str,
        top_k: int,
        user_id: str | None,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[RetrievalMatch]:
        vector = await self._embed(query)
        if vector is None:
            logger.info("lexical_only_fallback", query_len=len(query))
            return await self.retrieve_text_only(query, top_k, user_id, metadata_filter)

        try:
            raw = await self._index.hybrid_search(
                query,
                vector,
                recall_size=recall_size(query, top_k),
                operator=match_operator(query),
                size=top_k,
            )
        except IndexMissingError:
            logger.warning("index_missing", mode="hybrid")
            return []

        logger.info("hybrid_search_done", hits=len(raw), top_k=top_k)
        return await self._post_process(raw, top_k, user_id, metadata_filter)

    async def retrieve_vector_only(
        self,
        text: str,
        top_k: int,
        user_id: str | None,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[RetrievalMatch]:
        vector = await self._embed(text)
        if vector is None:
            return []
        try:
            raw = await self._index.knn_search(vector, recall_size(text, top_k), top_k)
        except RetrievalError as e:
            logger.warning("vector_search_failed", error=str(e))
            return []
        return await self._post_process(raw, top_k, user_id, metadata_filter)

    async def retrieve_text_only(
        self,
        query: str,
        top_k: int,
        user_id: str | None,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[RetrievalMatch]:
        try:
            raw = await self._index.text_search(query, top_k, match_operator(query))
        except RetrievalError as e:
            logger.warning("text_search_failed", error=str(e))
            return []
        return await self._post_process(raw, top_k, user_id, metadata_filter)

    async def _embed(self, text: str) -> list[float] | None:
        try:
            vectors = await self._embedder.encode([text])
        except EmbeddingError as e:
            logger.warning("query_embedding_failed", error=str(e))
            return None
        if not vectors or not vectors[0]:
            return None
        return vectors[0]

    async def _post_process(
        self,
        matches: list[RetrievalMatch],
        top_k: int,
        user_id: str | None,
        metadata_filter: MetadataFilter | None,
    ) -> list[RetrievalMatch]:
        if not matches:
            return []
        matches = await self._filter_by_access(matches, user_id)
        matches = await self._filter_by_metadata(matches, metadata_filter)
        matches = await self._feedback.apply_boost(matches)
        return matches[:top_k]

    async def _filter_by_access(
        self, matches: list[RetrievalMatch], user_id: str | None
    ) -> list[RetrievalMatch]:
        user = user_id.strip() if user_id and user_id.strip() else ANONYMOUS_USER
        owned, public = await asyncio.gather(
            self._documents.document_ids_by_owner(user),
            self._documents.document_ids_by_visibility(PUBLIC_VISIBILITY),
        )
        accessible = owned | public
        kept = [m for m in matches if m.document_id in accessible]
        if len(kept) < len(matches):
            logger.debug("access_filtered", before=len(matches), after=len(kept))
        return kept

    async def _filter_by_metadata(
        self, matches: list[RetrievalMatch], metadata_filter: MetadataFilter | None
    ) -> list[RetrievalMatch]:
        if not matches:
            return []
        records = await self._documents.get_documents({m.document_id for m in matches})
        kept = []
        for match in matches:
            record = records.get(match.document_id)
            if record is None:
                continue
            if metadata_filter is not None and not metadata_filter.is_empty():
                if not matches_metadata(record, metadata_filter):
                    continue
            match.source_name = record.source_name
            kept.append(match)
        return kept
