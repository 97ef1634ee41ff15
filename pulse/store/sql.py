"""SQLAlchemy implementation of the store (Postgres in production, SQLite in tests)."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..agents import schemas
from ..models import (
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
from .errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise timestamps so SQLite (which drops offsets) round-trips as UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SqlAlchemyStore:
    """:class:`~pulse.store.base.Store` backed by the tables in :mod:`pulse.models`.

    Each public method runs in its own transaction. Database errors surface as
    :class:`PersistenceError`; missing rows as :class:`NotFoundError`.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._sessions = session_factory
        self._clock = clock or _utcnow

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        try:
            with self._sessions.begin() as session:
                yield session
        except IntegrityError as exc:
            raise PersistenceError(f"Constraint violated: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            logger.exception("Store operation failed")
            raise PersistenceError(str(exc)) from exc

    def _now(self) -> datetime:
        return _as_utc(self._clock())

    # ------------------------------------------------------------------
    # Agent definitions

    def add_template(self, template: schemas.AgentTemplate) -> schemas.AgentTemplate:
        with self._transaction() as session:
            session.add(
                AgentTemplateRecord(
                    id=template.id,
                    name=template.name,
                    slug=template.slug,
                    description=template.description,
                    agent_type=template.agent_type,
                    base_prompt=template.base_prompt,
                    tools_allowed=list(template.tools_allowed),
                    default_config=dict(template.default_config),
                    is_system=template.is_system,
                    created_at=_as_utc(template.created_at),
                    updated_at=_as_utc(template.updated_at),
                )
            )
        return template

    def get_template(self, template_id: str) -> Optional[schemas.AgentTemplate]:
        with self._transaction() as session:
            row = session.get(AgentTemplateRecord, template_id)
            return self._to_template(row) if row else None

    def add_instance(self, instance: schemas.AgentInstance) -> schemas.AgentInstance:
        with self._transaction() as session:
            session.add(
                AgentInstanceRecord(
                    id=instance.id,
                    company_id=instance.company_id,
                    agent_id=instance.agent_id,
                    created_by=instance.created_by,
                    name=instance.name,
                    config=instance.config.model_dump(mode="json"),
                    status=instance.status,
                    version=instance.version,
                    created_at=_as_utc(instance.created_at),
                    updated_at=_as_utc(instance.updated_at),
                )
            )
        return instance

    def get_instance(self, instance_id: str) -> Optional[schemas.AgentInstance]:
        with self._transaction() as session:
            row = session.get(AgentInstanceRecord, instance_id)
            return self._to_instance(row) if row else None

    def update_instance_status(
        self, instance_id: str, status: schemas.AgentInstanceStatus
    ) -> schemas.AgentInstance:
        with self._transaction() as session:
            row = session.get(AgentInstanceRecord, instance_id)
            if row is None:
                raise NotFoundError(f"Agent instance {instance_id} not found")
            row.status = status
            row.updated_at = self._now()
            return self._to_instance(row)

    def upsert_schedule(self, schedule: schemas.AgentSchedule) -> schemas.AgentSchedule:
        with self._transaction() as session:
            row = session.scalars(
                select(AgentScheduleRecord).where(
                    AgentScheduleRecord.agent_instance_id == schedule.agent_instance_id
                )
            ).first()
            if row is not None and row.id != schedule.id:
                session.delete(row)
                session.flush()
                row = None
            if row is None:
                row = AgentScheduleRecord(
                    id=schedule.id,
                    agent_instance_id=schedule.agent_instance_id,
                    created_at=_as_utc(schedule.created_at),
                )
                session.add(row)
            row.cadence = schedule.cadence
            row.cron_expression = schedule.cron_expression
            row.timezone = schedule.timezone
            row.next_run_at = _as_utc(schedule.next_run_at)
            row.last_run_at = _as_utc(schedule.last_run_at)
            row.is_active = schedule.is_active
            row.updated_at = _as_utc(schedule.updated_at)
        return schedule

    def get_schedule(self, instance_id: str) -> Optional[schemas.AgentSchedule]:
        with self._transaction() as session:
            row = session.scalars(
                select(AgentScheduleRecord).where(
                    AgentScheduleRecord.agent_instance_id == instance_id
                )
            ).first()
            return self._to_schedule(row) if row else None

    def list_due_schedules(self, now: datetime) -> list[schemas.AgentSchedule]:
        with self._transaction() as session:
            rows = session.scalars(
                select(AgentScheduleRecord)
                .where(
                    AgentScheduleRecord.is_active.is_(True),
                    AgentScheduleRecord.next_run_at.is_not(None),
                    AgentScheduleRecord.next_run_at <= _as_utc(now),
                )
                .order_by(AgentScheduleRecord.next_run_at)
            ).all()
            return [self._to_schedule(row) for row in rows]

    def mark_schedule_run(
        self,
        schedule_id: str,
        *,
        last_run_at: datetime,
        next_run_at: Optional[datetime],
    ) -> None:
        with self._transaction() as session:
            row = session.get(AgentScheduleRecord, schedule_id)
            if row is None:
                raise NotFoundError(f"Schedule {schedule_id} not found")
            row.last_run_at = _as_utc(last_run_at)
            row.next_run_at = _as_utc(next_run_at)
            row.is_active = next_run_at is not None
            row.updated_at = self._now()

    # ------------------------------------------------------------------
    # Roster

    def add_member(self, member: schemas.RosterMember) -> schemas.RosterMember:
        with self._transaction() as session:
            profile = session.get(Profile, member.user_id)
            if profile is None:
                session.add(
                    Profile(id=member.user_id, full_name=member.full_name, email=member.email)
                )
            else:
                profile.full_name = member.full_name
                profile.email = member.email
            session.add(
                CompanyMember(
                    company_id=member.company_id,
                    user_id=member.user_id,
                    department=member.department,
                    role=member.role,
                    team_id=member.team_id,
                    status=member.status,
                )
            )
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
        stmt = (
            select(CompanyMember, Profile)
            .join(Profile, Profile.id == CompanyMember.user_id)
            .where(CompanyMember.company_id == company_id, CompanyMember.status == status)
            .order_by(CompanyMember.id)
        )
        if department is not None:
            stmt = stmt.where(CompanyMember.department == department)
        if team_ids is not None:
            stmt = stmt.where(CompanyMember.team_id.in_(list(team_ids)))
        if role_ids is not None:
            stmt = stmt.where(CompanyMember.role.in_(list(role_ids)))
        if user_ids is not None:
            stmt = stmt.where(CompanyMember.user_id.in_(list(user_ids)))
        with self._transaction() as session:
            return [
                schemas.RosterMember(
                    user_id=member.user_id,
                    company_id=member.company_id,
                    full_name=profile.full_name,
                    email=profile.email,
                    department=member.department,
                    role=member.role,
                    team_id=member.team_id,
                    status=member.status,
                )
                for member, profile in session.execute(stmt).all()
            ]

    def get_profiles(self, user_ids: Sequence[str]) -> list[schemas.Participant]:
        ordered = list(dict.fromkeys(user_ids))
        if not ordered:
            return []
        with self._transaction() as session:
            rows = {
                row.id: row
                for row in session.scalars(select(Profile).where(Profile.id.in_(ordered)))
            }
            return [self._to_participant(rows[uid]) for uid in ordered if uid in rows]

    def get_profile(self, user_id: str) -> Optional[schemas.Participant]:
        with self._transaction() as session:
            row = session.get(Profile, user_id)
            return self._to_participant(row) if row else None

    # ------------------------------------------------------------------
    # Conversations

    def get_conversation(self, conversation_id: str) -> Optional[schemas.Conversation]:
        with self._transaction() as session:
            row = session.get(ConversationRecord, conversation_id)
            return self._to_conversation(row) if row else None

    def find_conversation(
        self, instance_id: str, participant_id: str
    ) -> Optional[schemas.Conversation]:
        with self._transaction() as session:
            row = session.scalars(
                select(ConversationRecord).where(
                    ConversationRecord.agent_instance_id == instance_id,
                    ConversationRecord.participant_user_id == participant_id,
                )
            ).first()
            return self._to_conversation(row) if row else None

    def create_conversation(
        self,
        company_id: str,
        instance_id: str,
        participant_id: str,
        *,
        status: schemas.ConversationStatus = "active",
    ) -> schemas.Conversation:
        now = self._now()
        with self._transaction() as session:
            row = ConversationRecord(
                id=str(uuid4()),
                company_id=company_id,
                agent_instance_id=instance_id,
                participant_user_id=participant_id,
                status=status,
                message_count=0,
                unread_count=0,
                metadata_={},
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            return self._to_conversation(row)

    def list_conversations(
        self,
        *,
        instance_id: Optional[str] = None,
        company_id: Optional[str] = None,
        status: Optional[schemas.ConversationStatus] = None,
    ) -> list[schemas.Conversation]:
        stmt = select(ConversationRecord).order_by(ConversationRecord.created_at)
        if instance_id is not None:
            stmt = stmt.where(ConversationRecord.agent_instance_id == instance_id)
        if company_id is not None:
            stmt = stmt.where(ConversationRecord.company_id == company_id)
        if status is not None:
            stmt = stmt.where(ConversationRecord.status == status)
        with self._transaction() as session:
            return [self._to_conversation(row) for row in session.scalars(stmt)]

    def update_conversation(
        self,
        conversation_id: str,
        *,
        status: Optional[schemas.ConversationStatus] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> schemas.Conversation:
        with self._transaction() as session:
            row = session.get(ConversationRecord, conversation_id)
            if row is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            if status is not None:
                row.status = status
            if metadata is not None:
                row.metadata_ = dict(metadata)
            row.updated_at = self._now()
            return self._to_conversation(row)

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
        now = self._now()
        with self._transaction() as session:
            conversation = session.get(ConversationRecord, conversation_id, with_for_update=True)
            if conversation is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            conversation.message_count += 1
            conversation.last_message_at = now
            conversation.last_touched_at = now
            conversation.updated_at = now
            if sender_type == "agent":
                conversation.unread_count += 1
            row = MessageRecord(
                id=str(uuid4()),
                seq=conversation.message_count,
                conversation_id=conversation_id,
                sender_type=sender_type,
                sender_id=sender_id,
                content=content,
                content_type=content_type,
                metadata_=dict(metadata or {}),
                is_read=False,
                created_at=now,
            )
            session.add(row)
            session.flush()
            return self._to_message(row)

    def list_recent_messages(
        self, conversation_id: str, limit: int
    ) -> list[schemas.Message]:
        if limit <= 0:
            return []
        with self._transaction() as session:
            rows = session.scalars(
                select(MessageRecord)
                .where(MessageRecord.conversation_id == conversation_id)
                .order_by(MessageRecord.created_at.desc(), MessageRecord.seq.desc())
                .limit(limit)
            ).all()
            return [self._to_message(row) for row in reversed(rows)]

    def mark_messages_read(self, message_ids: Sequence[str]) -> None:
        ids = list(dict.fromkeys(message_ids))
        if not ids:
            return
        with self._transaction() as session:
            rows = session.scalars(
                select(MessageRecord).where(
                    MessageRecord.id.in_(ids), MessageRecord.is_read.is_(False)
                )
            ).all()
            for row in rows:
                row.is_read = True
                if row.sender_type == "agent":
                    session.execute(
                        update(ConversationRecord)
                        .where(
                            ConversationRecord.id == row.conversation_id,
                            ConversationRecord.unread_count > 0,
                        )
                        .values(unread_count=ConversationRecord.unread_count - 1)
                    )

    # ------------------------------------------------------------------
    # Runs

    def create_run(
        self,
        instance_id: str,
        run_type: schemas.RunType,
        *,
        status: schemas.RunStatus = "running",
    ) -> schemas.AgentRun:
        now = self._now()
        with self._transaction() as session:
            row = AgentRunRecord(
                id=str(uuid4()),
                agent_instance_id=instance_id,
                run_type=run_type,
                status=status,
                started_at=now,
                messages_sent=0,
                conversations_touched=0,
                metadata_={},
                created_at=now,
            )
            session.add(row)
            session.flush()
            return self._to_run(row)

    def finish_run(
        self,
        run_id: str,
        *,
        status: schemas.RunStatus,
        messages_sent: int = 0,
        conversations_touched: int = 0,
        error_message: Optional[str] = None,
    ) -> schemas.AgentRun:
        with self._transaction() as session:
            row = session.get(AgentRunRecord, run_id)
            if row is None:
                raise NotFoundError(f"Run {run_id} not found")
            row.status = status
            row.finished_at = self._now()
            row.messages_sent = messages_sent
            row.conversations_touched = conversations_touched
            row.error_message = error_message
            return self._to_run(row)

    def get_run(self, run_id: str) -> Optional[schemas.AgentRun]:
        with self._transaction() as session:
            row = session.get(AgentRunRecord, run_id)
            return self._to_run(row) if row else None

    # ------------------------------------------------------------------
    # Summaries

    def add_summary(self, payload: schemas.FeedbackSummaryCreate) -> schemas.FeedbackSummary:
        with self._transaction() as session:
            if session.get(ConversationRecord, payload.conversation_id) is None:
                raise NotFoundError(f"Conversation {payload.conversation_id} not found")
            row = FeedbackSummaryRecord(
                id=str(uuid4()),
                conversation_id=payload.conversation_id,
                summary=payload.summary,
                sentiment=payload.sentiment,
                sentiment_score=payload.sentiment_score,
                tags=list(payload.tags),
                action_items=[item.model_dump(mode="json") for item in payload.action_items],
                key_quotes=list(payload.key_quotes),
                message_range_start=payload.message_range_start,
                message_range_end=payload.message_range_end,
                previous_summary_id=payload.previous_summary_id,
                delta_notes=payload.delta_notes,
                computed_at=_as_utc(payload.computed_at),
                created_at=self._now(),
            )
            session.add(row)
            session.flush()
            return self._to_summary(row)

    def latest_summary(self, conversation_id: str) -> Optional[schemas.FeedbackSummary]:
        with self._transaction() as session:
            row = session.scalars(
                select(FeedbackSummaryRecord)
                .where(FeedbackSummaryRecord.conversation_id == conversation_id)
                .order_by(FeedbackSummaryRecord.computed_at.desc())
                .limit(1)
            ).first()
            return self._to_summary(row) if row else None

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

        stmt = select(FeedbackSummaryRecord).order_by(FeedbackSummaryRecord.computed_at.desc())
        if conversation_id is not None:
            stmt = stmt.where(FeedbackSummaryRecord.conversation_id == conversation_id)
        if company_id is not None:
            stmt = stmt.join(
                ConversationRecord,
                ConversationRecord.id == FeedbackSummaryRecord.conversation_id,
            ).where(ConversationRecord.company_id == company_id)
        if since is not None:
            stmt = stmt.where(FeedbackSummaryRecord.computed_at >= _as_utc(since))
        if until is not None:
            stmt = stmt.where(FeedbackSummaryRecord.computed_at < _as_utc(until))
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._transaction() as session:
            return [self._to_summary(row) for row in session.scalars(stmt)]

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
        now = self._now()
        with self._transaction() as session:
            row = EscalationRecord(
                id=str(uuid4()),
                conversation_id=conversation_id,
                company_id=company_id,
                trigger_message_id=trigger_message_id,
                escalation_type=escalation_type,
                severity=severity,
                description=description,
                status="open",
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            return self._to_escalation(row)

    def list_escalations(
        self,
        company_id: str,
        *,
        status: Optional[schemas.EscalationStatus] = None,
    ) -> list[schemas.Escalation]:
        stmt = (
            select(EscalationRecord)
            .where(EscalationRecord.company_id == company_id)
            .order_by(EscalationRecord.created_at.desc())
        )
        if status is not None:
            stmt = stmt.where(EscalationRecord.status == status)
        with self._transaction() as session:
            return [self._to_escalation(row) for row in session.scalars(stmt)]

    # ------------------------------------------------------------------
    # Row conversion

    @staticmethod
    def _to_template(row: AgentTemplateRecord) -> schemas.AgentTemplate:
        return schemas.AgentTemplate(
            id=row.id,
            name=row.name,
            slug=row.slug,
            description=row.description,
            agent_type=row.agent_type,
            base_prompt=row.base_prompt,
            tools_allowed=list(row.tools_allowed or []),
            default_config=dict(row.default_config or {}),
            is_system=row.is_system,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    @staticmethod
    def _to_instance(row: AgentInstanceRecord) -> schemas.AgentInstance:
        return schemas.AgentInstance(
            id=row.id,
            company_id=row.company_id,
            agent_id=row.agent_id,
            created_by=row.created_by,
            name=row.name,
            config=schemas.AgentInstanceConfig.model_validate(row.config or {}),
            status=row.status,
            version=row.version,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    @staticmethod
    def _to_schedule(row: AgentScheduleRecord) -> schemas.AgentSchedule:
        return schemas.AgentSchedule(
            id=row.id,
            agent_instance_id=row.agent_instance_id,
            cadence=row.cadence,
            cron_expression=row.cron_expression,
            timezone=row.timezone,
            next_run_at=_as_utc(row.next_run_at),
            last_run_at=_as_utc(row.last_run_at),
            is_active=row.is_active,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    @staticmethod
    def _to_participant(row: Profile) -> schemas.Participant:
        return schemas.Participant(id=row.id, name=row.full_name, email=row.email)

    @staticmethod
    def _to_conversation(row: ConversationRecord) -> schemas.Conversation:
        return schemas.Conversation(
            id=row.id,
            company_id=row.company_id,
            agent_instance_id=row.agent_instance_id,
            participant_user_id=row.participant_user_id,
            status=row.status,
            last_message_at=_as_utc(row.last_message_at),
            last_touched_at=_as_utc(row.last_touched_at),
            message_count=row.message_count,
            unread_count=row.unread_count,
            metadata=dict(row.metadata_ or {}),
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    @staticmethod
    def _to_message(row: MessageRecord) -> schemas.Message:
        return schemas.Message(
            id=row.id,
            conversation_id=row.conversation_id,
            sender_type=row.sender_type,
            sender_id=row.sender_id,
            content=row.content,
            content_type=row.content_type,
            metadata=dict(row.metadata_ or {}),
            is_read=row.is_read,
            created_at=_as_utc(row.created_at),
        )

    @staticmethod
    def _to_run(row: AgentRunRecord) -> schemas.AgentRun:
        return schemas.AgentRun(
            id=row.id,
            agent_instance_id=row.agent_instance_id,
            run_type=row.run_type,
            status=row.status,
            started_at=_as_utc(row.started_at),
            finished_at=_as_utc(row.finished_at),
            messages_sent=row.messages_sent,
            conversations_touched=row.conversations_touched,
            error_message=row.error_message,
            metadata=dict(row.metadata_ or {}),
            created_at=_as_utc(row.created_at),
        )

    @staticmethod
    def _to_summary(row: FeedbackSummaryRecord) -> schemas.FeedbackSummary:
        return schemas.FeedbackSummary(
            id=row.id,
            conversation_id=row.conversation_id,
            summary=row.summary,
            sentiment=row.sentiment,
            sentiment_score=row.sentiment_score,
            tags=list(row.tags or []),
            action_items=[schemas.ActionItem.model_validate(item) for item in row.action_items or []],
            key_quotes=list(row.key_quotes or []),
            message_range_start=row.message_range_start,
            message_range_end=row.message_range_end,
            previous_summary_id=row.previous_summary_id,
            delta_notes=row.delta_notes,
            computed_at=_as_utc(row.computed_at),
            created_at=_as_utc(row.created_at),
        )

    @staticmethod
    def _to_escalation(row: EscalationRecord) -> schemas.Escalation:
        return schemas.Escalation(
            id=row.id,
            conversation_id=row.conversation_id,
            company_id=row.company_id,
            trigger_message_id=row.trigger_message_id,
            escalation_type=row.escalation_type,
            severity=row.severity,
            description=row.description,
            status=row.status,
            assigned_to=row.assigned_to,
            resolved_by=row.resolved_by,
            resolved_at=_as_utc(row.resolved_at),
            resolution_notes=row.resolution_notes,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )
