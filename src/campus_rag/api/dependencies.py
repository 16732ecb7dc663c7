"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Request

from campus_rag.bootstrap import Services
from campus_rag.evaluation.runner import EvaluationRunner
from campus_rag.pipeline.conversation import ConversationOrchestrator


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    return request.app.state.services.orchestrator


def get_evaluation_runner(request: Request) -> EvaluationRunner:
    return request.app.state.services.evaluation
