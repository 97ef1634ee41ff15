"""FastAPI dependencies resolving the engine services stored on the app."""

from __future__ import annotations

from fastapi import HTTPException, Request

from .agents.insights import InsightFeedService
from .agents.orchestrator import AgentOrchestrator
from .agents.scheduling import ScheduleRunner
from .agents.service import EngineServices


def get_services(request: Request) -> EngineServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Engine is not initialised")
    return services


def get_orchestrator(request: Request) -> AgentOrchestrator:
    return get_services(request).orchestrator


def get_insight_service(request: Request) -> InsightFeedService:
    return get_services(request).insights


def get_schedule_runner(request: Request) -> ScheduleRunner:
    return get_services(request).scheduler
