"""User ratings and the per-document score boost derived from them."""

from __future__ import annotations

from campus_rag.config.settings import Settings
from campus_rag.exceptions import InvalidInputError, PersistenceError
from campus_rag.models.domain import RetrievalMatch
from campus_rag.observability.logger import get_logger
from campus_rag.protocols.stores import ConversationStore

logger = get_logger("feedback")

NEUTRAL_RATING = 3.0
RATING_HALF_RANGE = 2.0


def compute_boost(average_score: float, max_boost: float) -> float:
    """Map an average 1-5 rating onto [-max_boost, +max_boost], centred at 3."""
    normalized = (average_score - NEUTRAL_RATING) / RATING_HALF_RANGE
    return max(-max_boost, min(max_boost, normalized * max_boost))


class FeedbackService:
    def __init__(self, store: ConversationStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings

    async def record_feedback(
        self,
        message_id: int,
        user_id: str,
        score: int,
        comment: str | None = None,
    ) -> None:
        if score < 1 or score > 5:
            raise InvalidInputError("score must be between 1 and 5")
        await self._store.save_feedback(message_id, user_id, score, comment)
        logger.info("feedback_recorded", message_id=message_id, score=score)

    async def load_boost_map(self, document_ids: set[str]) -> dict[str, float]:
        if not document_ids:
            return {}
        averages = await self._store.average_scores_by_document(document_ids)
        max_boost = self._settings.feedback_max_boost
        return {
            doc_id: compute_boost(avg, max_boost)
            for doc_id, avg in averages.items()
            if avg is not None
        }

    async def apply_boost(self, matches: list[RetrievalMatch]) -> list[RetrievalMatch]:
        """Scale scores by ``1 + boost`` and re-sort. Never cached across calls."""
        if not matches or not self._settings.feedback_enabled:
            return matches
        try:
            boosts = await self.load_boost_map({m.document_id for m in matches})
        except PersistenceError as e:
            logger.warning("feedback_boost_unavailable", error=str(e))
            return matches
        if not boosts:
            return matches

        for match in matches:
            boost = boosts.get(match.document_id)
            if boost:
                match.relevance_score *= 1.0 + boost
        return sorted(matches, key=lambda m: m.relevance_score, reverse=True)
