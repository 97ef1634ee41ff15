"""Insights dashboard API routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from ..agents import schemas
from ..agents.insights import InsightFeedService
from ..dependencies import get_insight_service

router = APIRouter(prefix="/api/insights", tags=["insights"])


def _resolve_company(
    x_company_id: Optional[str] = Header(default=None),
    company_id: Optional[str] = Query(default=None),
) -> str:
    company = x_company_id or company_id
    if not company:
        raise HTTPException(status_code=400, detail="Company identifier is required")
    return company


@router.get("", response_model=schemas.InsightFeed)
def get_insights(
    days: int = Query(default=7, ge=1, le=90),
    company_id: str = Depends(_resolve_company),
    service: InsightFeedService = Depends(get_insight_service),
) -> schemas.InsightFeed:
    """Feed, distribution, tags, action items and escalations for the window."""

    return service.build_feed(company_id, days=days)
