"""SQLAlchemy declarative base and the engine's tables.

This package hosts the SQLAlchemy models backing
:class:`pulse.store.sql.SqlAlchemyStore`.  It exposes a single declarative
``Base`` class; the tables themselves live in :mod:`pulse.models.engine`.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


# Re-export the tables so callers can import them via ``from pulse.models import
# ConversationRecord`` instead of touching private modules.
from .engine import (
    AgentInstanceRecord,
    AgentRunRecord,
    AgentScheduleRecord,
    AgentTemplateRecord,
    CompanyMember,
    ConversationRecord,
    EscalationRecord,
    FeedbackSummaryRecord,
    MessageRecord,
    Profile,
)


__all__ = [
    "AgentInstanceRecord",
    "AgentRunRecord",
    "AgentScheduleRecord",
    "AgentTemplateRecord",
    "Base",
    "CompanyMember",
    "ConversationRecord",
    "EscalationRecord",
    "FeedbackSummaryRecord",
    "MessageRecord",
    "Profile",
]
