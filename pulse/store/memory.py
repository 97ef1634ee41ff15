"""In-memory store (useful for testing and sandbox environments)."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..agents import schemas
from .errors import NotFoundError, PersistenceError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class InMemoryStore:
    """Dictionary-backed implementation of :class:`~pulse.store.base.Store`.

    Every read returns a copy so callers cannot mutate stored state behind the
    store's back. A single re-entrant lock guards all collections.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or _utcnow
        self._lock = RLock()
        self._templates: Dict[str, schemas.AgentTemplate] = {}
        self._instances: Dict[str, schemas.AgentInstance] = {}
        self._schedules: Dict[str, schemas.AgentSchedule] = {}
        self._members: List[schemas.RosterMember] = []
        self._conversations: Dict[str, schemas.Conversation] = {}
        self._messages: Dict[str, List[schemas.Message]] = {}
        self._message_index: Dict[str, schemas.Message] = {}
        self._runs: Dict[str, schemas.AgentRun] = {}
        self._summaries: Dict[str, List[schemas.FeedbackSummary]] = {}
        self._escalations: Dict[str, schemas.Escalation] = {}

    # ------------------------------------------------------------------
    # Agent definitions

    def add_template(self, template: schemas.AgentTemplate) -> schemas.AgentTemplate:
        with self._lock:
            self._templates[template.id] = template.model_copy(deep=True)
        return template

    def get_template(self, template_id: str) -> Optional[schemas.AgentTemplate]:
        with self._lock:
            template = self._templates.get(template_id)
            return template.model_copy(deep=True) if template else None

    def add_instance(self, instance: schemas.AgentInstance) -> schemas.AgentInstance:
        with self._lock:
            self._instances[instance.id] = instance.model_copy(deep=True)
        return instance

    def get_instance(self, instance_id: str) -> Optional[schemas.AgentInstance]:
        with self._lock:
            instance = self._instances.get(instance_id)
            return instance.model_copy(deep=True) if instance else None

    def update_instance_status(
        self, instance_id: str, status: schemas.AgentInstanceStatus
    ) -> schemas.AgentInstance:
        with self._lock:
            instance = self._instances.get(instance_id)
            if not instance:
                raise NotFoundError(f"Agent instance {instance_id} not found")
            instance.status = status
            instance.updated_at = self._clock()
            return instance.model_copy(deep=True)

    def upsert_schedule(self, schedule: schemas.AgentSchedule) -> schemas.AgentSchedule:
        with self._lock:
            for existing_id, existing in list(self._schedules.items()):
                if (
                    existing.agent_instance_id == schedule.agent_instance_id
                    and existing_id != schedule.id
                ):
                    del self._schedules[existing_id]
            self._schedules[schedule.id] = schedule.model_copy(deep=True)
        return schedule

    def get_schedule(self, instance_id: str) -> Optional[schemas.AgentSchedule]:
        with self._lock:
            for schedule in self._schedules.values():
                if schedule.agent_instance_id == instance_id:
                    return schedule.model_copy(deep=True)
        return None

    def list_due_schedules(self, now: datetime) -> list[schemas.AgentSchedule]:
        with self._lock:
            due = [
                s.model_copy(deep=True)
                for s in self._schedules.values()
                if s.is_active and s.next_run_at is not None and s.next_run_at <= now
            ]
        due.sort(key=lambda s: s.next_run_at)
        return due

    def mark_schedule_run(
        self,
        schedule_id: str,
        *,
        last_run_at: datetime,
        next_run_at: Optional[datetime],
    ) -> None:
        with self._lock:
            schedule = self._schedules.get(schedule_id)
            if not schedule:
                raise NotFoundError(f"Schedule {schedule_id} not found")
            schedule.last_run_at = last_run_at
            schedule.next_run_at = next_run_at
            schedule.is_active = next_run_at is not None
            schedule.updated_at = self._clock()

    # ------------------------------------------------------------------
    # Roster

    def add_member(self, member: schemas.RosterMember) -> schemas.RosterMember:
        with self._lock:
            self._members.append(member.model_copy(deep=True))
        return member

    def list_members(
        self,
        company_id: str,
        *,
        department: Optional[str] = None,
        team_ids: Optional[Sequence[str]] = None,
        role_ids: Optional[Sequence[str]] = None,
        user_ids: Optional[Sequence[str]] = None,
        status: str = "active",
    ) -> list[schemas.RosterMember]:
        with self._lock:
            members = [m.model_copy() for m in self._members]
        result = []
        for member in members:
            if member.company_id != company_id or member.status != status:
                continue
            if department is not None and member.department != department:
                continue
            if team_ids is not None and member.team_id not in team_ids:
                continue
            if role_ids is not None and member.role not in role_ids:
                continue
            if user_ids is not None and member.user_id not in user_ids:
                continue
            result.append(member)
        return result

    def get_profiles(self, user_ids: Sequence[str]) -> list[schemas.Participant]:
        profiles = []
        for user_id in dict.fromkeys(user_ids):
            profile = self.get_profile(user_id)
            if profile:
                profiles.append(profile)
        return profiles

    def get_profile(self, user_id: str) -> Optional[schemas.Participant]:
        with self._lock:
            for member in self._members:
                if member.user_id == user_id:
                    return schemas.Participant(
                        id=member.user_id, name=member.full_name, email=member.email
                    )
        return None

    # ------------------------------------------------------------------
    # Conversations

    def get_conversation(self, conversation_id: str) -> Optional[schemas.Conversation]:
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            return conversation.model_copy(deep=True) if conversation else None

    def find_conversation(
        self, instance_id: str, participant_id: str
    ) -> Optional[schemas.Conversation]:
        with self._lock:
            for conversation in self._conversations.values():
                if (
                    conversation.agent_instance_id == instance_id
                    and conversation.participant_user_id == participant_id
                ):
                    return conversation.model_copy(deep=True)
        return None

    def create_conversation(
        self,
        company_id: str,
        instance_id: str,
        participant_id: str,
        *,
        status: schemas.ConversationStatus = "active",
    ) -> schemas.Conversation:
        with self._lock:
            if self.find_conversation(instance_id, participant_id):
                raise PersistenceError(
                    f"Conversation for {participant_id} on {instance_id} already exists"
                )
            now = self._clock()
            conversation = schemas.Conversation(
                id=_new_id(),
                company_id=company_id,
                agent_instance_id=instance_id,
                participant_user_id=participant_id,
                status=status,
                created_at=now,
                updated_at=now,
            )
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
            return conversation.model_copy(deep=True)

    def list_conversations(
        self,
        *,
        instance_id: Optional[str] = None,
        company_id: Optional[str] = None,
        status: Optional[schemas.ConversationStatus] = None,
    ) -> list[schemas.Conversation]:
        with self._lock:
            conversations = [c.model_copy(deep=True) for c in self._conversations.values()]
        return [
            c
            for c in conversations
            if (instance_id is None or c.agent_instance_id == instance_id)
            and (company_id is None or c.company_id == company_id)
            and (status is None or c.status == status)
        ]

    def update_conversation(
        self,
        conversation_id: str,
        *,
        status: Optional[schemas.ConversationStatus] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> schemas.Conversation:
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if not conversation:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            if status is not None:
                conversation.status = status
            if metadata is not None:
                conversation.metadata = dict(metadata)
            conversation.updated_at = self._clock()
            return conversation.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Messages

    def add_message(
        self,
        conversation_id: str,
        sender_type: schemas.SenderType,
        content: str,
        *,
        sender_id: Optional[str] = None,
        content_type: schemas.ContentType = "text",
        metadata: Optional[dict[str, Any]] = None,
    ) -> schemas.Message:
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if not conversation:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            now = self._clock()
            message = schemas.Message(
                id=_new_id(),
                conversation_id=conversation_id,
                sender_type=sender_type,
                sender_id=sender_id,
                content=content,
                content_type=content_type,
                metadata=dict(metadata or {}),
                created_at=now,
            )
            self._messages[conversation_id].append(message)
            self._message_index[message.id] = message
            conversation.message_count += 1
            conversation.last_message_at = now
            conversation.last_touched_at = now
            conversation.updated_at = now
            if sender_type == "agent":
                conversation.unread_count += 1
            return message.model_copy(deep=True)

    def list_recent_messages(
        self, conversation_id: str, limit: int
    ) -> list[schemas.Message]:
        if limit <= 0:
            return []
        with self._lock:
            messages = self._messages.get(conversation_id, [])
            return [m.model_copy(deep=True) for m in messages[-limit:]]

    def mark_messages_read(self, message_ids: Sequence[str]) -> None:
        with self._lock:
            for message_id in message_ids:
                message = self._message_index.get(message_id)
                if not message or message.is_read:
                    continue
                message.is_read = True
                conversation = self._conversations.get(message.conversation_id)
                if conversation and message.sender_type == "agent":
                    conversation.unread_count = max(conversation.unread_count - 1, 0)

    # ------------------------------------------------------------------
    # Runs

    def create_run(
        self,
        instance_id: str,
        run_type: schemas.RunType,
        *,
        status: schemas.RunStatus = "running",
    ) -> schemas.AgentRun:
        now = self._clock()
        run = schemas.AgentRun(
            id=_new_id(),
            agent_instance_id=instance_id,
            run_type=run_type,
            status=status,
            started_at=now,
            created_at=now,
        )
        with self._lock:
            self._runs[run.id] = run
        return run.model_copy(deep=True)

    def finish_run(
        self,
        run_id: str,
        *,
        status: schemas.RunStatus,
        messages_sent: int = 0,
        conversations_touched: int = 0,
        error_message: Optional[str] = None,
    ) -> schemas.AgentRun:
        with self._lock:
            run = self._runs.get(run_id)
            if not run:
                raise NotFoundError(f"Run {run_id} not found")
            run.status = status
            run.finished_at = self._clock()
            run.messages_sent = messages_sent
            run.conversations_touched = conversations_touched
            run.error_message = error_message
            return run.model_copy(deep=True)

    def get_run(self, run_id: str) -> Optional[schemas.AgentRun]:
        with self._lock:
            run = self._runs.get(run_id)
            return run.model_copy(deep=True) if run else None

    # ------------------------------------------------------------------
    # Summaries

    def add_summary(self, payload: schemas.FeedbackSummaryCreate) -> schemas.FeedbackSummary:
        with self._lock:
            if payload.conversation_id not in self._conversations:
                raise NotFoundError(f"Conversation {payload.conversation_id} not found")
            summary = schemas.FeedbackSummary(
                **payload.model_dump(), id=_new_id(), created_at=self._clock()
            )
            self._summaries.setdefault(payload.conversation_id, []).append(summary)
            return summary.model_copy(deep=True)

    def latest_summary(self, conversation_id: str) -> Optional[schemas.FeedbackSummary]:
        with self._lock:
            chain = self._summaries.get(conversation_id, [])
            if not chain:
                return None
            latest = max(chain, key=lambda s: s.computed_at)
            return latest.model_copy(deep=True)

    def list_summaries(
        self,
        *,
        conversation_id: Optional[str] = None,
        company_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[schemas.FeedbackSummary]:
        """Return matching summaries, newest first."""

        with self._lock:
            items: list[schemas.FeedbackSummary] = []
            for convo_id, chain in self._summaries.items():
                if conversation_id is not None and convo_id != conversation_id:
                    continue
                if company_id is not None:
                    conversation = self._conversations.get(convo_id)
                    if not conversation or conversation.company_id != company_id:
                        continue
                items.extend(s.model_copy(deep=True) for s in chain)
        items = [
            s
            for s in items
            if (since is None or s.computed_at >= since)
            and (until is None or s.computed_at < until)
        ]
        items.sort(key=lambda s: s.computed_at, reverse=True)
        return items[:limit] if limit is not None else items

    # ------------------------------------------------------------------
    # Escalations

    def create_escalation(
        self,
        conversation_id: str,
        company_id: str,
        *,
        trigger_message_id: Optional[str],
        escalation_type: schemas.EscalationType,
        severity: schemas.Severity,
        description: Optional[str] = None,
    ) -> schemas.Escalation:
        with self._lock:
            if trigger_message_id and any(
                e.trigger_message_id == trigger_message_id
                for e in self._escalations.values()
            ):
                raise PersistenceError(
                    f"Message {trigger_message_id} already has an escalation"
                )
            now = self._clock()
            escalation = schemas.Escalation(
                id=_new_id(),
                conversation_id=conversation_id,
                company_id=company_id,
                trigger_message_id=trigger_message_id,
                escalation_type=escalation_type,
                severity=severity,
                description=description,
                created_at=now,
                updated_at=now,
            )
            self._escalations[escalation.id] = escalation
            return escalation.model_copy(deep=True)

    def list_escalations(
        self,
        company_id: str,
        *,
        status: Optional[schemas.EscalationStatus] = None,
    ) -> list[schemas.Escalation]:
        with self._lock:
            items = [
                e.model_copy(deep=True)
                for e in self._escalations.values()
                if e.company_id == company_id and (status is None or e.status == status)
            ]
        items.sort(key=lambda e: e.created_at, reverse=True)
        return items
