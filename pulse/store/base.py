"""Persistence abstraction used by the agent engine."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Optional, Protocol

from ..agents import schemas
from .errors import NotFoundError, PersistenceError

__all__ = ["NotFoundError", "PersistenceError", "Store"]


class Store(Protocol):
    """Per-entity CRUD plus the range queries the engine relies on."""

    # Agent definitions --------------------------------------------------------
    def add_template(self, template: schemas.AgentTemplate) -> schemas.AgentTemplate: ...

    def get_template(self, template_id: str) -> Optional[schemas.AgentTemplate]: ...

    def add_instance(self, instance: schemas.AgentInstance) -> schemas.AgentInstance: ...

    def get_instance(self, instance_id: str) -> Optional[schemas.AgentInstance]: ...

    def update_instance_status(
        self, instance_id: str, status: schemas.AgentInstanceStatus
    ) -> schemas.AgentInstance: ...

    def upsert_schedule(self, schedule: schemas.AgentSchedule) -> schemas.AgentSchedule: ...

    def get_schedule(self, instance_id: str) -> Optional[schemas.AgentSchedule]: ...

    def list_due_schedules(self, now: datetime) -> list[schemas.AgentSchedule]: ...

    def mark_schedule_run(
        self,
        schedule_id: str,
        *,
        last_run_at: datetime,
        next_run_at: Optional[datetime],
    ) -> None: ...

    # Roster -------------------------------------------------------------------
    def add_member(self, member: schemas.RosterMember) -> schemas.RosterMember: ...

    def list_members(
        self,
        company_id: str,
        *,
        department: Optional[str] = None,
        team_ids: Optional[Sequence[str]] = None,
        role_ids: Optional[Sequence[str]] = None,
        user_ids: Optional[Sequence[str]] = None,
        status: str = "active",
    ) -> list[schemas.RosterMember]: ...

    def get_profiles(self, user_ids: Sequence[str]) -> list[schemas.Participant]: ...

    def get_profile(self, user_id: str) -> Optional[schemas.Participant]: ...

    # Conversations ------------------------------------------------------------
    def get_conversation(self, conversation_id: str) -> Optional[schemas.Conversation]: ...

    def find_conversation(
        self, instance_id: str, participant_id: str
    ) -> Optional[schemas.Conversation]: ...

    def create_conversation(
        self,
        company_id: str,
        instance_id: str,
        participant_id: str,
        *,
        status: schemas.ConversationStatus = "active",
    ) -> schemas.Conversation: ...

    def list_conversations(
        self,
        *,
        instance_id: Optional[str] = None,
        company_id: Optional[str] = None,
        status: Optional[schemas.ConversationStatus] = None,
    ) -> list[schemas.Conversation]: ...

    def update_conversation(
        self,
        conversation_id: str,
        *,
        status: Optional[schemas.ConversationStatus] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> schemas.Conversation: ...

    # Messages -----------------------------------------------------------------
    def add_message(
        self,
        conversation_id: str,
        sender_type: schemas.SenderType,
        content: str,
        *,
        sender_id: Optional[str] = None,
        content_type: schemas.ContentType = "text",
        metadata: Optional[dict[str, Any]] = None,
    ) -> schemas.Message: ...

    def list_recent_messages(
        self, conversation_id: str, limit: int
    ) -> list[schemas.Message]: ...

    def mark_messages_read(self, message_ids: Sequence[str]) -> None: ...

    # Runs ---------------------------------------------------------------------
    def create_run(
        self,
        instance_id: str,
        run_type: schemas.RunType,
        *,
        status: schemas.RunStatus = "running",
    ) -> schemas.AgentRun: ...

    def finish_run(
        self,
        run_id: str,
        *,
        status: schemas.RunStatus,
        messages_sent: int = 0,
        conversations_touched: int = 0,
        error_message: Optional[str] = None,
    ) -> schemas.AgentRun: ...

    def get_run(self, run_id: str) -> Optional[schemas.AgentRun]: ...

    # Summaries ----------------------------------------------------------------
    def add_summary(self, payload: schemas.FeedbackSummaryCreate) -> schemas.FeedbackSummary: ...

    def latest_summary(self, conversation_id: str) -> Optional[schemas.FeedbackSummary]: ...

    def list_summaries(
        self,
        *,
        conversation_id: Optional[str] = None,
        company_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[schemas.FeedbackSummary]: ...

    # Escalations --------------------------------------------------------------
    def create_escalation(
        self,
        conversation_id: str,
        company_id: str,
        *,
        trigger_message_id: Optional[str],
        escalation_type: schemas.EscalationType,
        severity: schemas.Severity,
        description: Optional[str] = None,
    ) -> schemas.Escalation: ...

    def list_escalations(
        self,
        company_id: str,
        *,
        status: Optional[schemas.EscalationStatus] = None,
    ) -> list[schemas.Escalation]: ...
