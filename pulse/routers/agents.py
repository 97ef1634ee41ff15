"""Agent instance API routes."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException

from ..agents import schemas
from ..agents.orchestrator import AgentOrchestrator, InstanceNotActiveError
from ..agents.scheduling import ScheduleRunner
from ..dependencies import get_orchestrator, get_schedule_runner
from ..store.errors import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agents", tags=["agents"])


@contextmanager
def _service_context() -> Iterator[None]:
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InstanceNotActiveError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Agent request failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post(
    "/instances/{instance_id}/trigger", response_model=schemas.TriggerRunResponse
)
def trigger_run(
    instance_id: str,
    payload: schemas.TriggerRunRequest | None = None,
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> schemas.TriggerRunResponse:
    """Start a manual run for the instance's audience or the given employees."""

    targets = payload.target_employees if payload else None
    with _service_context():
        outcome = orchestrator.trigger_agent_run(instance_id, "manual", targets)
    return schemas.TriggerRunResponse(
        run_id=outcome.run_id,
        messages_sent=outcome.messages_sent,
        conversations_touched=outcome.conversations_touched,
    )


@router.post("/schedules/run-due", response_model=schemas.RunDueResponse)
def run_due_schedules(
    runner: ScheduleRunner = Depends(get_schedule_runner),
) -> schemas.RunDueResponse:
    """Trigger every schedule whose ``next_run_at`` has passed.

    Meant for an external cron; the app also sweeps on an interval.
    """

    with _service_context():
        results = runner.run_due()
    return schemas.RunDueResponse(
        results=[
            schemas.ScheduledRunItem(
                schedule_id=result.schedule_id,
                agent_instance_id=result.agent_instance_id,
                run_id=result.run_id,
                error=result.error,
                skipped=result.skipped,
            )
            for result in results
        ]
    )
