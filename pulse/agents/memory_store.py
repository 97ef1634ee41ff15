"""Conversation context assembly for the orchestrator.

The memory store reads and writes through the :class:`~pulse.store.base.Store`
but makes no delivery or generation decisions of its own.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..store.base import Store
from ..store.errors import NotFoundError
from . import schemas
from .locks import KeyedLocks

logger = logging.getLogger(__name__)

PROMPT_HISTORY_LIMIT = 10
NUDGE_COUNT_KEY = "nudge_count"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConversationContext:
    conversation: schemas.Conversation
    messages: list[schemas.Message]
    latest_summary: Optional[schemas.FeedbackSummary]
    participant_name: str
    participant_email: str


@dataclass(frozen=True)
class StalenessReport:
    is_stale: bool
    days_since_last_message: int
    nudge_count: int


class MemoryStore:
    """History, audience and staleness lookups over the store."""

    def __init__(
        self,
        store: Store,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.locks = locks or KeyedLocks()
        self._clock = clock or _utcnow

    def get_conversation_context(
        self, conversation_id: str, message_limit: int = 20
    ) -> Optional[ConversationContext]:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            logger.warning("Conversation not found", extra={"conversation_id": conversation_id})
            return None
        messages = self.store.list_recent_messages(conversation_id, message_limit)
        profile = self.store.get_profile(conversation.participant_user_id)
        return ConversationContext(
            conversation=conversation,
            messages=messages,
            latest_summary=self.store.latest_summary(conversation_id),
            participant_name=(profile.name if profile and profile.name else "Employee"),
            participant_email=(profile.email if profile else ""),
        )

    def get_or_create_conversation(
        self, company_id: str, instance_id: str, participant_id: str
    ) -> schemas.Conversation:
        """Return the conversation for (instance, participant), creating it once."""

        with self.locks.hold(("create", instance_id, participant_id)):
            existing = self.store.find_conversation(instance_id, participant_id)
            if existing is not None:
                return existing
            conversation = self.store.create_conversation(
                company_id, instance_id, participant_id, status="active"
            )
            logger.info(
                "Created conversation",
                extra={
                    "conversation_id": conversation.id,
                    "agent_instance_id": instance_id,
                },
            )
            return conversation

    def get_active_conversations(self, instance_id: str) -> list[schemas.Conversation]:
        return self.store.list_conversations(instance_id=instance_id, status="active")

    def get_target_employees(
        self, company_id: str, config: schemas.AgentInstanceConfig
    ) -> list[schemas.Participant]:
        """Resolve the instance's audience selector against the active roster.

        A selector whose filter is missing falls back to the whole company.
        """

        audience = config.audience_filter or schemas.AudienceFilter()
        kwargs: dict[str, object] = {}
        if config.audience_type == "department" and audience.department:
            kwargs["department"] = audience.department
        elif config.audience_type == "team" and audience.team_ids:
            kwargs["team_ids"] = audience.team_ids
        elif config.audience_type == "role" and audience.role_ids:
            kwargs["role_ids"] = audience.role_ids
        elif config.audience_type == "individual" and audience.employee_ids:
            kwargs["user_ids"] = audience.employee_ids

        members = self.store.list_members(company_id, **kwargs)  # type: ignore[arg-type]
        return [
            schemas.Participant(
                id=member.user_id,
                name=member.full_name or "Employee",
                email=member.email,
            )
            for member in members
        ]

    @staticmethod
    def format_for_prompt(
        messages: Sequence[schemas.Message],
        latest_summary: Optional[schemas.FeedbackSummary],
        participant_name: str,
    ) -> str:
        lines: list[str] = []
        if latest_summary is not None:
            lines.append(f"[Previous conversation summary: {latest_summary.summary}]")
            if latest_summary.tags:
                lines.append(f"[Topics discussed: {', '.join(latest_summary.tags)}]")
            lines.append("")
        if messages:
            lines.append("Recent conversation:")
            for message in list(messages)[-PROMPT_HISTORY_LIMIT:]:
                sender = participant_name if message.sender_type == "employee" else "Assistant"
                lines.append(f"{sender}: {message.content}")
        return "\n".join(lines) + ("\n" if lines else "")

    def check_staleness(self, conversation_id: str, stale_days: int = 7) -> StalenessReport:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None or conversation.last_message_at is None:
            return StalenessReport(is_stale=False, days_since_last_message=0, nudge_count=0)
        elapsed = self._clock() - conversation.last_message_at
        days = elapsed.days
        return StalenessReport(
            is_stale=days >= stale_days,
            days_since_last_message=days,
            nudge_count=int(conversation.metadata.get(NUDGE_COUNT_KEY, 0) or 0),
        )

    def increment_nudge_count(self, conversation_id: str) -> int:
        with self.locks.hold(conversation_id):
            conversation = self.store.get_conversation(conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            metadata = dict(conversation.metadata)
            metadata[NUDGE_COUNT_KEY] = int(metadata.get(NUDGE_COUNT_KEY, 0) or 0) + 1
            self.store.update_conversation(conversation_id, metadata=metadata)
            return metadata[NUDGE_COUNT_KEY]


__all__ = ["ConversationContext", "MemoryStore", "StalenessReport"]
