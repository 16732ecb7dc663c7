"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from campus_rag.api.dependencies import get_services
from campus_rag.bootstrap import Services
from campus_rag.exceptions import PersistenceError
from campus_rag.models.schemas import HealthResponse
from campus_rag.observability.logger import get_logger

logger = get_logger("health")

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(services: Services = Depends(get_services)) -> HealthResponse:
    index_available = await services.index.ping()
    try:
        document_count = await services.document_store.count()
    except PersistenceError as e:
        logger.warning("health_document_count_failed", error=str(e))
        document_count = 0
    return HealthResponse(
        status="ok" if index_available else "degraded",
        document_count=document_count,
        index_available=index_available,
    )
