"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from campus_rag.api.auth import router as auth_router
from campus_rag.api.middleware import RequestTimingMiddleware
from campus_rag.api.rate_limiter import SlidingWindowRateLimiter
from campus_rag.api.routes_chat import router as chat_router
from campus_rag.api.routes_eval import router as eval_router
from campus_rag.api.routes_health import router as health_router
from campus_rag.bootstrap import Services, build_services
from campus_rag.config.settings import Settings
from campus_rag.exceptions import InvalidInputError, RAGEngineError, ServiceUnavailableError
from campus_rag.observability.logger import get_logger, setup_logging

logger = get_logger("app")

ServicesFactory = Callable[[Settings], Awaitable[Services]]


def create_app(
    settings: Settings | None = None,
    services_factory: ServicesFactory = build_services,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resolved = settings or Settings()
        setup_logging(resolved.log_level, resolved.log_json)

        services = await services_factory(resolved)
        app.state.settings = resolved
        app.state.services = services
        app.state.rate_limiter = SlidingWindowRateLimiter()
        logger.info("startup_complete", index=resolved.elasticsearch_index)

        yield

        await services.close()
        logger.info("shutdown_complete")

    app = FastAPI(
        title="Campus RAG",
        version="1.0.0",
        description="Retrieval-and-answer orchestration over a campus knowledge base",
        lifespan=lifespan,
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_exception_handler(InvalidInputError, _invalid_input_handler)
    app.add_exception_handler(RAGEngineError, _engine_error_handler)
    app.include_router(health_router, tags=["health"])
    app.include_router(auth_router)
    app.include_router(chat_router, tags=["chat"])
    app.include_router(eval_router, tags=["evaluation"])
    return app


async def _invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


async def _engine_error_handler(request: Request, exc: RAGEngineError) -> JSONResponse:
    logger.error("engine_error", path=request.url.path, error_type=type(exc).__name__, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(ServiceUnavailableError())},
    )
