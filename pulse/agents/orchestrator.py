"""Agent orchestration: batch runs, reply handling and summary refresh.

:class:`AgentOrchestrator` is the only component with side-effecting control
flow across the others. It is constructed explicitly with its collaborators so
tests and the HTTP layer can wire in their own store, generator or random
source.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..channels import ChannelAdapter, get_channel_adapter
from ..store.base import Store
from ..store.errors import NotFoundError
from . import schemas
from .generation import (
    AgentResponseRequest,
    ChatTurn,
    InitialMessageRequest,
    TextGenerator,
)
from .insight_extractor import InsightExtractor
from .locks import KeyedLocks
from .memory_store import ConversationContext, MemoryStore
from .policy_guard import PolicyCheckResult, PolicyGuard
from .responses import FallbackResponder
from .summary_worker import SummaryRefreshWorker

logger = logging.getLogger(__name__)

SUMMARY_MESSAGE_LIMIT = 50
ESCALATION_DESCRIPTION_LIMIT = 200


class InstanceNotActiveError(RuntimeError):
    """Raised when a run is requested for an instance that is not ``active``."""


@dataclass(frozen=True)
class RunOutcome:
    run_id: str
    messages_sent: int
    conversations_touched: int


@dataclass(frozen=True)
class ReplyOutcome:
    response: Optional[schemas.Message]
    escalated: bool


@dataclass(frozen=True)
class _ParticipantResult:
    touched: bool
    sent: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentOrchestrator:
    """Coordinate the store, memory, policy, generation and delivery components."""

    def __init__(
        self,
        store: Store,
        *,
        memory: MemoryStore | None = None,
        channel: ChannelAdapter | None = None,
        policy_guard: PolicyGuard | None = None,
        insight_extractor: InsightExtractor | None = None,
        text_generator: TextGenerator | None = None,
        summary_worker: SummaryRefreshWorker | None = None,
        locks: KeyedLocks | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
        stale_days: int = 7,
        max_nudges: int = 2,
        max_workers: int = 4,
    ) -> None:
        self.store = store
        self._clock = clock or _utcnow
        self.locks = locks or (memory.locks if memory else KeyedLocks())
        self.memory = memory or MemoryStore(store, self.locks, clock=self._clock)
        self.channel = channel or get_channel_adapter(store)
        self.policy_guard = policy_guard or PolicyGuard()
        self.insight_extractor = insight_extractor or InsightExtractor()
        self.text_generator = text_generator
        self.summary_worker = summary_worker or SummaryRefreshWorker()
        self.fallback = FallbackResponder(rng)
        self.stale_days = stale_days
        self.max_nudges = max_nudges
        self.max_workers = max(1, max_workers)

    # ------------------------------------------------------------------
    # Batch runs

    def trigger_agent_run(
        self,
        instance_id: str,
        run_type: schemas.RunType = "manual",
        target_ids: Optional[Sequence[str]] = None,
    ) -> RunOutcome:
        """Message every participant in the instance's audience.

        Raises :class:`NotFoundError` or :class:`InstanceNotActiveError` before
        any run record exists. Failures for a single participant are logged
        and only reduce the counters; a failure outside the per-participant
        work marks the run ``failed`` and propagates.
        """

        instance = self.store.get_instance(instance_id)
        if instance is None:
            raise NotFoundError(f"Agent instance {instance_id} not found")
        if instance.status != "active":
            raise InstanceNotActiveError(
                f"Agent instance {instance_id} is {instance.status}, not active"
            )
        template = self.store.get_template(instance.agent_id)
        if template is None:
            raise NotFoundError(f"Agent template {instance.agent_id} not found")

        run = self.store.create_run(instance_id, run_type, status="running")
        logger.info(
            "Agent run started",
            extra={"run_id": run.id, "agent_instance_id": instance_id, "run_type": run_type},
        )
        messages_sent = 0
        conversations_touched = 0
        try:
            participants = self._resolve_audience(instance, target_ids)
            nudge_only = run_type == "nudge"
            if participants:
                workers = min(self.max_workers, len(participants))
                with ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix="agent-run"
                ) as pool:
                    futures = {
                        pool.submit(
                            self._process_participant, instance, template, participant, nudge_only
                        ): participant
                        for participant in participants
                    }
                    for future in as_completed(futures):
                        participant = futures[future]
                        try:
                            result = future.result()
                        except Exception:
                            logger.exception(
                                "Failed to process participant",
                                extra={"run_id": run.id, "participant_id": participant.id},
                            )
                            continue
                        conversations_touched += int(result.touched)
                        messages_sent += int(result.sent)

            self.store.finish_run(
                run.id,
                status="completed",
                messages_sent=messages_sent,
                conversations_touched=conversations_touched,
            )
        except Exception as exc:
            logger.exception("Agent run failed", extra={"run_id": run.id})
            self.store.finish_run(
                run.id,
                status="failed",
                messages_sent=messages_sent,
                conversations_touched=conversations_touched,
                error_message=str(exc) or type(exc).__name__,
            )
            raise

        logger.info(
            "Agent run completed",
            extra={
                "run_id": run.id,
                "messages_sent": messages_sent,
                "conversations_touched": conversations_touched,
            },
        )
        return RunOutcome(
            run_id=run.id,
            messages_sent=messages_sent,
            conversations_touched=conversations_touched,
        )

    def _resolve_audience(
        self, instance: schemas.AgentInstance, target_ids: Optional[Sequence[str]]
    ) -> list[schemas.Participant]:
        if target_ids:
            return self.store.get_profiles(target_ids)
        return self.memory.get_target_employees(instance.company_id, instance.config)

    def _process_participant(
        self,
        instance: schemas.AgentInstance,
        template: schemas.AgentTemplate,
        participant: schemas.Participant,
        nudge_only: bool = False,
    ) -> _ParticipantResult:
        conversation = self.memory.get_or_create_conversation(
            instance.company_id, instance.id, participant.id
        )
        with self.locks.hold(conversation.id):
            current = self.store.get_conversation(conversation.id) or conversation
            # Escalated, paused and closed conversations belong to a human now.
            if current.status != "active":
                logger.info(
                    "Conversation not active; skipping participant",
                    extra={"conversation_id": conversation.id, "status": current.status},
                )
                return _ParticipantResult(touched=False, sent=False)

            staleness = self.memory.check_staleness(conversation.id, self.stale_days)
            if staleness.is_stale and staleness.nudge_count >= self.max_nudges:
                logger.info(
                    "Nudge budget exhausted; skipping participant",
                    extra={"conversation_id": conversation.id, "nudge_count": staleness.nudge_count},
                )
                return _ParticipantResult(touched=False, sent=False)
            if nudge_only and not staleness.is_stale:
                return _ParticipantResult(touched=False, sent=False)

            is_nudge = staleness.is_stale
            text = self._compose_outreach(
                template, instance.config, conversation.id, participant.name, is_nudge
            )
            if text is None:
                return _ParticipantResult(touched=True, sent=False)

            check = self.policy_guard.check_agent_message(text)
            self._log_violations(check, conversation.id, "outbound")
            if not check.allowed:
                logger.warning(
                    "Outbound agent message blocked by policy",
                    extra={
                        "conversation_id": conversation.id,
                        "violation_types": [v.type for v in check.blocking_violations],
                    },
                )
                return _ParticipantResult(touched=True, sent=False)

            self.channel.send_message(
                conversation.id, text, metadata={"nudge": True} if is_nudge else None
            )
            if is_nudge:
                self.memory.increment_nudge_count(conversation.id)
            return _ParticipantResult(touched=True, sent=True)

    def _compose_outreach(
        self,
        template: schemas.AgentTemplate,
        config: schemas.AgentInstanceConfig,
        conversation_id: str,
        participant_name: str,
        is_nudge: bool,
    ) -> Optional[str]:
        """Pick the next agent-initiated message, or ``None`` to wait for a reply."""

        context = self.memory.get_conversation_context(conversation_id)
        if context is None or not context.messages:
            return self._opening_message(template, config, participant_name)

        if context.messages[-1].sender_type == "agent" and not is_nudge:
            return None
        if is_nudge:
            return self.fallback.nudge(participant_name)

        tags = context.latest_summary.tags if context.latest_summary else None
        return self.fallback.follow_up(participant_name, tags)

    def _opening_message(
        self,
        template: schemas.AgentTemplate,
        config: schemas.AgentInstanceConfig,
        participant_name: str,
    ) -> str:
        if self.text_generator is not None and self.text_generator.is_configured():
            try:
                return self.text_generator.generate_initial_message(
                    InitialMessageRequest(
                        participant_name=participant_name,
                        agent_type=template.agent_type,
                        tone_preset=config.tone_preset,
                        custom_prompt=config.custom_prompt,
                    )
                )
            except Exception as exc:
                logger.warning("Opening generation unavailable, using canned opening: %s", exc)
        return self.fallback.opening(template.agent_type, participant_name)

    # ------------------------------------------------------------------
    # Replies

    def handle_employee_reply(
        self, conversation_id: str, content: str, sender_id: Optional[str] = None
    ) -> ReplyOutcome:
        """Persist an employee message and answer it, escalating when required."""

        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")

        with self.locks.hold(conversation_id):
            inbound = self.store.add_message(
                conversation_id, "employee", content, sender_id=sender_id
            )

            check = self.policy_guard.check_employee_message(content)
            self._log_violations(check, conversation_id, "inbound")
            if check.requires_escalation:
                return ReplyOutcome(
                    response=self._escalate(conversation, inbound, check), escalated=True
                )

            context = self.memory.get_conversation_context(conversation_id)
            if context is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            instance = self.store.get_instance(conversation.agent_instance_id)
            if instance is None:
                raise NotFoundError(f"Agent instance {conversation.agent_instance_id} not found")
            template = self.store.get_template(instance.agent_id)
            if template is None:
                raise NotFoundError(f"Agent template {instance.agent_id} not found")

            text = self._reply_text(template, instance.config, context, content)
            reply_check = self.policy_guard.check_agent_message(text)
            self._log_violations(reply_check, conversation_id, "outbound")
            if not reply_check.allowed:
                logger.warning(
                    "Agent reply blocked by policy",
                    extra={
                        "conversation_id": conversation_id,
                        "violation_types": [v.type for v in reply_check.blocking_violations],
                    },
                )
                return ReplyOutcome(response=None, escalated=False)

            response = self.channel.send_message(conversation_id, text)

        self.schedule_summary_refresh(conversation_id, context.participant_name)
        return ReplyOutcome(response=response, escalated=False)

    def _escalate(
        self,
        conversation: schemas.Conversation,
        inbound: schemas.Message,
        check: PolicyCheckResult,
    ) -> schemas.Message:
        escalation_type = check.escalation_type or "urgent"
        redacted = self.policy_guard.redact(inbound.content)[:ESCALATION_DESCRIPTION_LIMIT]
        escalation = self.store.create_escalation(
            conversation.id,
            conversation.company_id,
            trigger_message_id=inbound.id,
            escalation_type=escalation_type,
            severity="critical" if escalation_type == "safety" else "high",
            description=f"Triggered by message content: {redacted}",
        )
        self.store.update_conversation(conversation.id, status="escalated")
        logger.warning(
            "Conversation escalated",
            extra={
                "conversation_id": conversation.id,
                "escalation_id": escalation.id,
                "escalation_type": escalation_type,
            },
        )
        profile = self.store.get_profile(conversation.participant_user_id)
        text = self.policy_guard.generate_escalation_message(
            escalation_type, profile.name if profile else "Employee"
        )
        return self.channel.send_message(
            conversation.id,
            text,
            metadata={"type": "escalation", "escalation_type": escalation_type},
            content_type="escalation",
        )

    def _reply_text(
        self,
        template: schemas.AgentTemplate,
        config: schemas.AgentInstanceConfig,
        context: ConversationContext,
        content: str,
    ) -> str:
        if self.text_generator is not None and self.text_generator.is_configured():
            history = [
                ChatTurn(
                    role="user" if message.sender_type == "employee" else "assistant",
                    content=message.content,
                )
                for message in context.messages
                if message.sender_type != "system"
            ]
            try:
                result = self.text_generator.generate_agent_response(
                    AgentResponseRequest(
                        participant_name=context.participant_name,
                        agent_type=template.agent_type,
                        tone_preset=config.tone_preset,
                        history=history,
                        custom_prompt=config.custom_prompt,
                    )
                )
            except Exception as exc:
                logger.warning("Reply generation unavailable, using fallback: %s", exc)
            else:
                if result.should_escalate:
                    logger.info(
                        "Generator flagged reply for escalation",
                        extra={
                            "conversation_id": context.conversation.id,
                            "escalation_type": result.escalation_type,
                        },
                    )
                return result.content
        return self.fallback.reply(content, context.participant_name)

    # ------------------------------------------------------------------
    # Summaries

    def schedule_summary_refresh(
        self, conversation_id: str, participant_name: Optional[str] = None
    ) -> None:
        """Queue a background refresh; never raises into the caller."""

        try:
            self.summary_worker.submit(
                conversation_id,
                lambda: self.refresh_summary(conversation_id, participant_name),
            )
        except Exception:
            logger.exception(
                "Could not queue summary refresh", extra={"conversation_id": conversation_id}
            )

    def refresh_summary(
        self, conversation_id: str, participant_name: Optional[str] = None
    ) -> Optional[schemas.FeedbackSummary]:
        """Append a new summary to the conversation's chain.

        Skipped (``None``) when fewer than two messages exist. Each new
        summary's ``computed_at`` is strictly later than its predecessor's.
        """

        with self.locks.hold(conversation_id):
            context = self.memory.get_conversation_context(
                conversation_id, message_limit=SUMMARY_MESSAGE_LIMIT
            )
            if context is None or len(context.messages) < 2:
                return None

            previous = context.latest_summary
            computed_at = self._clock()
            if previous is not None and computed_at <= previous.computed_at:
                computed_at = previous.computed_at + timedelta(microseconds=1)

            analysis = self.insight_extractor.analyze(
                context.messages,
                participant_name or context.participant_name,
                previous,
                now=computed_at,
            )
            summary = self.store.add_summary(
                analysis.to_summary(
                    conversation_id,
                    message_range_start=context.messages[0].id,
                    message_range_end=context.messages[-1].id,
                    previous_summary_id=previous.id if previous else None,
                )
            )
        logger.info(
            "Feedback summary stored",
            extra={
                "conversation_id": conversation_id,
                "summary_id": summary.id,
                "sentiment": summary.sentiment,
            },
        )
        return summary

    # ------------------------------------------------------------------
    # Utility

    def _log_violations(
        self, check: PolicyCheckResult, conversation_id: str, direction: str
    ) -> None:
        for violation in check.violations:
            level = logging.WARNING if violation.severity in {"high", "critical"} else logging.INFO
            logger.log(
                level,
                "Policy violation detected",
                extra={
                    "conversation_id": conversation_id,
                    "direction": direction,
                    "violation_type": violation.type,
                    "severity": violation.severity,
                },
            )

    def close(self, wait: bool = True) -> None:
        self.summary_worker.shutdown(wait=wait)


__all__ = [
    "AgentOrchestrator",
    "InstanceNotActiveError",
    "ReplyOutcome",
    "RunOutcome",
]
