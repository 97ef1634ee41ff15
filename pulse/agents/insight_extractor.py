"""Summaries, sentiment and action items derived from a conversation transcript."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from . import schemas
from .classifier import Classifier, KeywordClassifier

RETENTION_PATTERNS = (
    re.compile(r"\b(burnout|burning out|burnt out|burned out|exhausted|overwhelmed)\b", re.IGNORECASE),
    re.compile(r"\b(leaving|looking for|interview\w*|quit\w*|resign\w*)\b", re.IGNORECASE),
)

SENTIMENT_PHRASES: dict[str, str] = {
    "positive": "is feeling positive",
    "neutral": "has a neutral outlook",
    "negative": "is experiencing some challenges",
    "mixed": "has mixed feelings",
}

NO_RESPONSES_SUMMARY = "No employee responses yet."
NO_CHANGES_NOTE = "No significant changes from previous check-in."

_IMPROVED = {("negative", "positive"), ("negative", "neutral")}
_DECLINED = {("positive", "negative"), ("neutral", "negative")}


@dataclass
class InsightAnalysis:
    """Result of :meth:`InsightExtractor.analyze`, ready to persist."""

    summary: str
    sentiment: schemas.Sentiment
    sentiment_score: float
    tags: list[str]
    action_items: list[schemas.ActionItem]
    key_quotes: list[str]
    delta_notes: Optional[str]
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_summary(
        self,
        conversation_id: str,
        *,
        message_range_start: Optional[str] = None,
        message_range_end: Optional[str] = None,
        previous_summary_id: Optional[str] = None,
    ) -> schemas.FeedbackSummaryCreate:
        return schemas.FeedbackSummaryCreate(
            conversation_id=conversation_id,
            summary=self.summary,
            sentiment=self.sentiment,
            sentiment_score=self.sentiment_score,
            tags=list(self.tags),
            action_items=list(self.action_items),
            key_quotes=list(self.key_quotes),
            message_range_start=message_range_start,
            message_range_end=message_range_end,
            previous_summary_id=previous_summary_id,
            delta_notes=self.delta_notes,
            computed_at=self.computed_at,
        )


def _employee_messages(messages: Sequence[schemas.Message]) -> list[schemas.Message]:
    return [m for m in messages if m.sender_type == "employee"]


def _employee_text(messages: Sequence[schemas.Message]) -> str:
    return " ".join(m.content for m in _employee_messages(messages))


class InsightExtractor:
    """Stateless analysis over the employee side of a transcript."""

    def __init__(self, classifier: Classifier | None = None) -> None:
        self.classifier = classifier or KeywordClassifier()

    def extract_topics(self, messages: Sequence[schemas.Message]) -> list[str]:
        return self.classifier.classify_topics(_employee_text(messages))

    def analyze_sentiment(
        self, messages: Sequence[schemas.Message]
    ) -> tuple[schemas.Sentiment, float]:
        result = self.classifier.score_sentiment(_employee_text(messages))
        return result.sentiment, result.score

    def extract_key_quotes(
        self, messages: Sequence[schemas.Message], max_quotes: int = 3
    ) -> list[str]:
        """Longest employee messages between 20 and 300 characters."""

        candidates = [
            m.content for m in _employee_messages(messages) if 20 < len(m.content) < 300
        ]
        # sorted() is stable, so equal lengths keep transcript order.
        return sorted(candidates, key=len, reverse=True)[:max_quotes]

    def generate_action_items(
        self,
        messages: Sequence[schemas.Message],
        topics: Sequence[str],
        sentiment: schemas.Sentiment,
    ) -> list[schemas.ActionItem]:
        text = _employee_text(messages).lower()
        items: list[schemas.ActionItem] = []

        if any(pattern.search(text) for pattern in RETENTION_PATTERNS):
            items.append(
                schemas.ActionItem(
                    text=(
                        "Employee shows signs of burnout or may be considering leaving. "
                        "Schedule 1:1 to discuss workload and career path."
                    ),
                    confidence=0.8,
                    priority="high",
                    category="retention_risk",
                )
            )
        if "workload" in topics and sentiment != "positive":
            items.append(
                schemas.ActionItem(
                    text="Review employee workload and consider redistributing tasks or adjusting deadlines.",
                    confidence=0.7,
                    priority="medium",
                    category="workload",
                )
            )
        if "manager" in topics and sentiment == "negative":
            items.append(
                schemas.ActionItem(
                    text="Manager relationship may need attention. Consider facilitating a feedback session.",
                    confidence=0.6,
                    priority="medium",
                    category="management",
                )
            )
        if "compensation" in topics:
            items.append(
                schemas.ActionItem(
                    text=(
                        "Employee mentioned compensation. Review market rates and discuss "
                        "total compensation package."
                    ),
                    confidence=0.7,
                    priority="medium",
                    category="compensation",
                )
            )
        if "growth" in topics and sentiment != "positive":
            items.append(
                schemas.ActionItem(
                    text=(
                        "Employee seeking growth opportunities. Discuss career development "
                        "and potential learning paths."
                    ),
                    confidence=0.7,
                    priority="medium",
                    category="development",
                )
            )
        if "tooling" in topics and sentiment == "negative":
            items.append(
                schemas.ActionItem(
                    text="Review tools and systems that may be causing friction. Consider upgrades or training.",
                    confidence=0.5,
                    priority="low",
                    category="tooling",
                )
            )
        return items

    def generate_summary(
        self,
        messages: Sequence[schemas.Message],
        topics: Sequence[str],
        sentiment: schemas.Sentiment,
        participant_name: str,
    ) -> str:
        if not _employee_messages(messages):
            return NO_RESPONSES_SUMMARY
        topic_list = (
            f" Topics discussed include {', '.join(topics[:3])}." if topics else ""
        )
        return f"{participant_name} {SENTIMENT_PHRASES[sentiment]}.{topic_list}"

    def compare_summaries(
        self,
        previous: Optional[schemas.FeedbackSummary],
        current_sentiment: schemas.Sentiment,
        current_topics: Sequence[str],
    ) -> Optional[str]:
        """Describe what changed since ``previous``; ``None`` without one."""

        if previous is None:
            return None

        changes: list[str] = []
        transition = (previous.sentiment, current_sentiment)
        if transition in _IMPROVED:
            changes.append("Sentiment has improved since last check-in")
        elif transition in _DECLINED:
            changes.append("Sentiment has declined since last check-in")

        previous_topics = list(previous.tags or [])
        new_topics = [t for t in current_topics if t not in previous_topics]
        resolved = [t for t in previous_topics if t not in current_topics]
        if new_topics:
            changes.append(f"New concerns: {', '.join(new_topics)}")
        if resolved:
            changes.append(f"No longer mentioned: {', '.join(resolved)}")

        return ". ".join(changes) if changes else NO_CHANGES_NOTE

    def analyze(
        self,
        messages: Sequence[schemas.Message],
        participant_name: str,
        previous: Optional[schemas.FeedbackSummary] = None,
        now: Optional[datetime] = None,
    ) -> InsightAnalysis:
        topics = self.extract_topics(messages)
        sentiment, score = self.analyze_sentiment(messages)
        return InsightAnalysis(
            summary=self.generate_summary(messages, topics, sentiment, participant_name),
            sentiment=sentiment,
            sentiment_score=score,
            tags=topics,
            action_items=self.generate_action_items(messages, topics, sentiment),
            key_quotes=self.extract_key_quotes(messages),
            delta_notes=self.compare_summaries(previous, sentiment, topics),
            computed_at=now or datetime.now(timezone.utc),
        )


__all__ = ["InsightAnalysis", "InsightExtractor"]
