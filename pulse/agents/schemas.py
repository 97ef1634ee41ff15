"""Pydantic schemas shared by the agent engine, the store and the HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

AgentType = Literal[
    "pulse_check",
    "onboarding",
    "exit_interview",
    "manager_coaching",
    "policy_qa",
    "custom",
]
TonePreset = Literal["friendly_peer", "professional_hr", "witty_safe", "poke_lite"]
Cadence = Literal["once", "daily", "weekly", "biweekly", "monthly", "custom"]
AudienceType = Literal["company_wide", "team", "role", "department", "individual"]
SenderType = Literal["employee", "agent", "system"]
Sentiment = Literal["positive", "neutral", "negative", "mixed"]
EscalationType = Literal["safety", "harassment", "discrimination", "urgent", "manual"]
Severity = Literal["low", "medium", "high", "critical"]
ConversationStatus = Literal["active", "paused", "escalated", "closed"]
AgentInstanceStatus = Literal["draft", "active", "paused", "archived"]
RunType = Literal["scheduled", "manual", "reply", "nudge"]
RunStatus = Literal["pending", "running", "completed", "failed"]
EscalationStatus = Literal["open", "acknowledged", "resolved", "dismissed"]
ContentType = Literal["text", "quick_reply", "card", "escalation"]
Priority = Literal["low", "medium", "high"]


# ---------------------------------------------------------------------------
# Agent definitions


class AgentTemplate(BaseModel):
    """Reusable, published agent definition. Read-only to the engine."""

    id: str
    name: str
    slug: str
    description: str | None = None
    agent_type: AgentType = "pulse_check"
    base_prompt: str = ""
    tools_allowed: list[str] = Field(default_factory=list)
    default_config: dict[str, Any] = Field(default_factory=dict)
    is_system: bool = False
    created_at: datetime
    updated_at: datetime


class AudienceFilter(BaseModel):
    team_ids: list[str] | None = None
    role_ids: list[str] | None = None
    department: str | None = None
    employee_ids: list[str] | None = None


class Guardrails(BaseModel):
    no_sensitive_topics: bool = True
    no_medical_legal: bool = True
    no_coercion: bool = True
    no_harassment: bool = True
    custom_restrictions: list[str] | None = None


class AgentInstanceConfig(BaseModel):
    tone_preset: TonePreset = "friendly_peer"
    audience_type: AudienceType = "company_wide"
    audience_filter: AudienceFilter | None = None
    guardrails: Guardrails = Field(default_factory=Guardrails)
    custom_prompt: str | None = None


class AgentInstance(BaseModel):
    """A template deployed for one company."""

    id: str
    company_id: str
    agent_id: str
    created_by: str | None = None
    name: str
    config: AgentInstanceConfig = Field(default_factory=AgentInstanceConfig)
    status: AgentInstanceStatus = "draft"
    version: int = 1
    created_at: datetime
    updated_at: datetime


class AgentSchedule(BaseModel):
    id: str
    agent_instance_id: str
    cadence: Cadence = "weekly"
    cron_expression: str | None = None
    timezone: str = "UTC"
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# People


class Participant(BaseModel):
    """Employee addressed by an agent."""

    id: str
    name: str = "Employee"
    email: str = ""

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0] if self.name else "there"


class RosterMember(BaseModel):
    """Active membership of an employee in a company."""

    user_id: str
    company_id: str
    full_name: str = "Employee"
    email: str = ""
    department: str | None = None
    role: str | None = None
    team_id: str | None = None
    status: str = "active"


# ---------------------------------------------------------------------------
# Conversations


class Conversation(BaseModel):
    id: str
    company_id: str
    agent_instance_id: str
    participant_user_id: str
    status: ConversationStatus = "active"
    last_message_at: datetime | None = None
    last_touched_at: datetime | None = None
    message_count: int = 0
    unread_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class Message(BaseModel):
    id: str
    conversation_id: str
    sender_type: SenderType
    sender_id: str | None = None
    content: str
    content_type: ContentType = "text"
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at: datetime


class AgentRun(BaseModel):
    id: str
    agent_instance_id: str
    run_type: RunType = "manual"
    status: RunStatus = "pending"
    started_at: datetime
    finished_at: datetime | None = None
    messages_sent: int = 0
    conversations_touched: int = 0
    error_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


# ---------------------------------------------------------------------------
# Insight


class ActionItem(BaseModel):
    text: str
    confidence: float
    priority: Priority
    category: str | None = None


class FeedbackSummaryCreate(BaseModel):
    """Fields required to append a summary to a conversation's chain."""

    conversation_id: str
    summary: str
    sentiment: Sentiment
    sentiment_score: float | None = None
    tags: list[str] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)
    key_quotes: list[str] = Field(default_factory=list)
    message_range_start: str | None = None
    message_range_end: str | None = None
    previous_summary_id: str | None = None
    delta_notes: str | None = None
    computed_at: datetime


class FeedbackSummary(FeedbackSummaryCreate):
    id: str
    created_at: datetime


class Escalation(BaseModel):
    id: str
    conversation_id: str
    company_id: str
    trigger_message_id: str | None = None
    escalation_type: EscalationType
    severity: Severity
    description: str | None = None
    status: EscalationStatus = "open"
    assigned_to: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# API payloads


class TriggerRunRequest(BaseModel):
    target_employees: list[str] | None = None


class TriggerRunResponse(BaseModel):
    run_id: str
    messages_sent: int
    conversations_touched: int


class ScheduledRunItem(BaseModel):
    schedule_id: str
    agent_instance_id: str
    run_id: str | None = None
    error: str | None = None
    skipped: bool = False


class RunDueResponse(BaseModel):
    results: list[ScheduledRunItem] = Field(default_factory=list)


class ReplyRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    sender_id: str


class ReplyResponse(BaseModel):
    response: Message | None = None
    escalated: bool


class FeedItem(BaseModel):
    id: str
    conversation_id: str
    summary: str
    sentiment: Sentiment
    tags: list[str] = Field(default_factory=list)
    key_quotes: list[str] = Field(default_factory=list)
    delta_notes: str | None = None
    computed_at: datetime
    participant_name: str


class SentimentDistribution(BaseModel):
    positive: int = 0
    neutral: int = 0
    negative: int = 0
    mixed: int = 0


class TagCount(BaseModel):
    tag: str
    count: int


class FeedActionItem(ActionItem):
    conversation_id: str
    participant_name: str


class DeltaHighlights(BaseModel):
    improved: list[str] = Field(default_factory=list)
    declined: list[str] = Field(default_factory=list)
    new_concerns: list[str] = Field(default_factory=list)


class FeedStats(BaseModel):
    active_conversations: int = 0
    summaries_count: int = 0
    open_escalations: int = 0


class InsightFeed(BaseModel):
    feed: list[FeedItem] = Field(default_factory=list)
    sentiment_distribution: SentimentDistribution = Field(
        default_factory=SentimentDistribution
    )
    top_tags: list[TagCount] = Field(default_factory=list)
    action_items: list[FeedActionItem] = Field(default_factory=list)
    escalations: list[Escalation] = Field(default_factory=list)
    delta_highlights: DeltaHighlights = Field(default_factory=DeltaHighlights)
    stats: FeedStats = Field(default_factory=FeedStats)
    days: int
    since: datetime
