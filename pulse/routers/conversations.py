"""Conversation API routes."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException, Request

from ..agents import schemas
from ..agents.orchestrator import AgentOrchestrator
from ..dependencies import get_orchestrator
from ..rate_limit import limiter, reply_rate_limit
from ..store.errors import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@contextmanager
def _service_context() -> Iterator[None]:
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Conversation request failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post("/{conversation_id}/reply", response_model=schemas.ReplyResponse)
@limiter.limit(reply_rate_limit)
def reply(
    request: Request,
    conversation_id: str,
    payload: schemas.ReplyRequest,
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> schemas.ReplyResponse:
    with _service_context():
        outcome = orchestrator.handle_employee_reply(
            conversation_id, payload.content, sender_id=payload.sender_id
        )
    return schemas.ReplyResponse(response=outcome.response, escalated=outcome.escalated)
