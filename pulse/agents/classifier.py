"""Topic and sentiment classification behind a swappable interface.

:class:`KeywordClassifier` is a keyword heuristic. Anything implementing
:class:`Classifier` (for example a hosted model) can be handed to
:class:`~pulse.agents.insight_extractor.InsightExtractor` instead.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Pattern, Protocol, Sequence

from .schemas import Sentiment

_FLAGS = re.IGNORECASE


def _words(*alternatives: str) -> Pattern[str]:
    return re.compile(r"\b(" + "|".join(alternatives) + r")\b", _FLAGS)


# Entries ending in ``\w*`` are stems and match any inflection.
TOPIC_PATTERNS: Mapping[str, Sequence[Pattern[str]]] = {
    "workload": (
        _words(r"overwhelm\w*", "too much", "busy", r"stress\w*", r"swamp\w*", "behind",
               "deadlines?", r"overwork\w*", "burnout", "exhausted"),
        _words("workload", "work load", "tasks", "projects", "bandwidth"),
    ),
    "manager": (
        _words("manager", "boss", "supervisor", "lead", "leadership"),
        _words("1:1", "one-on-one", "check-in", "feedback"),
    ),
    "compensation": (
        _words("salary", "pay", "compensation", "raise", "bonus", "equity", "stock", "benefits"),
        _words("underpaid", "market rate", "promotion"),
    ),
    "culture": (
        _words("culture", "values", "team", "environment", "atmosphere", "vibe"),
        _words("toxic", "supportive", "inclusive", "diverse", "belonging"),
    ),
    "tooling": (
        _words("tools", "software", "systems", "tech", "equipment", "laptop", "slow"),
        _words("broken", "outdated", "frustrating", "clunky"),
    ),
    "growth": (
        _words("growth", "career", "development", "learning", "promotion", "opportunity"),
        _words("stuck", "stagnant", "ceiling", "path", "progression"),
    ),
    "work_life_balance": (
        _words("balance", "hours", "overtime", "weekend", "evening", "family", "life"),
        _words("burnout", "exhausted", "tired", "rest", "vacation", "pto"),
    ),
    "communication": (
        _words("communication", "meetings?", "align", "unclear", r"confus\w*", "info", "updates?"),
        _words("siloed", "disconnected", "transparent", "visibility"),
    ),
    "team_dynamics": (
        _words("team", "colleagues?", "coworkers?", "collaboration", "conflict"),
        _words("friction", "tension", "support", "help", "trust"),
    ),
    "recognition": (
        _words(r"recogni\w*", r"appreciat\w*", "acknowledged", "valued", "seen", "invisible"),
        _words("thank", "credit", "praised", "noticed"),
    ),
}

POSITIVE_INDICATORS: Sequence[Pattern[str]] = (
    _words("great", "good", "love", "enjoy", "happy", "excited", "thrilled", "fantastic",
           "wonderful", "excellent"),
    _words("grateful", "thankful", "appreciate", "blessed", "lucky", "satisfied"),
    _words("improving", "better", "progress", "growing", "learning"),
)

NEGATIVE_INDICATORS: Sequence[Pattern[str]] = (
    _words("bad", "terrible", "awful", "hate", "frustrated", "annoyed", "upset", "angry",
           "disappointed"),
    _words("struggle", "difficult", "hard", "challenging", "problem", "issue"),
    _words("worried", "concerned", "anxious", "stressed", "overwhelmed"),
    _words("leaving", "quit", "resign", "looking for", "interview"),
)

POSITIVE_THRESHOLD = 0.3
NEGATIVE_THRESHOLD = -0.3


@dataclass(frozen=True)
class SentimentScore:
    sentiment: Sentiment
    score: float
    positive_hits: int = 0
    negative_hits: int = 0


class Classifier(Protocol):
    """Capability interface consumed by the insight pipeline."""

    def classify_topics(self, text: str) -> list[str]: ...

    def score_sentiment(self, text: str) -> SentimentScore: ...


class KeywordClassifier:
    """Regular-expression classifier over fixed keyword tables."""

    def __init__(
        self,
        topics: Mapping[str, Sequence[Pattern[str]]] | None = None,
        positive: Sequence[Pattern[str]] | None = None,
        negative: Sequence[Pattern[str]] | None = None,
    ) -> None:
        self.topics = topics or TOPIC_PATTERNS
        self.positive = positive or POSITIVE_INDICATORS
        self.negative = negative or NEGATIVE_INDICATORS

    def classify_topics(self, text: str) -> list[str]:
        """Return every topic with at least one matching pattern, in table order."""

        return [
            topic
            for topic, patterns in self.topics.items()
            if any(pattern.search(text) for pattern in patterns)
        ]

    def score_sentiment(self, text: str) -> SentimentScore:
        positive = sum(len(pattern.findall(text)) for pattern in self.positive)
        negative = sum(len(pattern.findall(text)) for pattern in self.negative)
        total = positive + negative
        if total == 0:
            return SentimentScore(sentiment="neutral", score=0.0)

        score = (positive - negative) / total
        if score > POSITIVE_THRESHOLD:
            sentiment: Sentiment = "positive"
        elif score < NEGATIVE_THRESHOLD:
            sentiment = "negative"
        elif positive and negative:
            sentiment = "mixed"
        else:
            sentiment = "neutral"
        return SentimentScore(
            sentiment=sentiment,
            score=round(score, 2),
            positive_hits=positive,
            negative_hits=negative,
        )


__all__ = [
    "Classifier",
    "KeywordClassifier",
    "NEGATIVE_INDICATORS",
    "POSITIVE_INDICATORS",
    "SentimentScore",
    "TOPIC_PATTERNS",
]
