"""Read-side projection of summaries and escalations for the insights dashboard."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from ..store.base import Store
from . import schemas

logger = logging.getLogger(__name__)

FEED_LIMIT = 50
TOP_TAG_LIMIT = 10
ACTION_ITEM_LIMIT = 20
NEGATIVE_RATE_DELTA = 0.1
_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


class InsightFeedService:
    """Aggregate a company's recent feedback summaries."""

    def __init__(self, store: Store, clock: Callable[[], datetime] | None = None):
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build_feed(self, company_id: str, days: int = 7) -> schemas.InsightFeed:
        now = self._clock()
        since = now - timedelta(days=days)
        summaries = self.store.list_summaries(
            company_id=company_id, since=since, limit=FEED_LIMIT
        )
        names = self._participant_names(summaries)

        distribution = schemas.SentimentDistribution()
        tag_counts: Counter[str] = Counter()
        action_items: list[schemas.FeedActionItem] = []
        feed: list[schemas.FeedItem] = []
        for summary in summaries:
            setattr(distribution, summary.sentiment, getattr(distribution, summary.sentiment) + 1)
            tag_counts.update(summary.tags)
            participant_name = names.get(summary.conversation_id, "Employee")
            for item in summary.action_items:
                action_items.append(
                    schemas.FeedActionItem(
                        **item.model_dump(),
                        conversation_id=summary.conversation_id,
                        participant_name=participant_name,
                    )
                )
            feed.append(
                schemas.FeedItem(
                    id=summary.id,
                    conversation_id=summary.conversation_id,
                    summary=summary.summary,
                    sentiment=summary.sentiment,
                    tags=list(summary.tags),
                    key_quotes=list(summary.key_quotes),
                    delta_notes=summary.delta_notes,
                    computed_at=summary.computed_at,
                    participant_name=participant_name,
                )
            )

        # Counter.most_common keeps first-seen order for equal counts.
        top_tags = [
            schemas.TagCount(tag=tag, count=count)
            for tag, count in tag_counts.most_common(TOP_TAG_LIMIT)
        ]
        action_items.sort(key=lambda item: _PRIORITY_ORDER.get(item.priority, 2))

        escalations = self.store.list_escalations(company_id, status="open")
        previous = self.store.list_summaries(
            company_id=company_id, since=since - timedelta(days=days), until=since
        )
        active = self.store.list_conversations(company_id=company_id, status="active")

        return schemas.InsightFeed(
            feed=feed,
            sentiment_distribution=distribution,
            top_tags=top_tags,
            action_items=action_items[:ACTION_ITEM_LIMIT],
            escalations=escalations,
            delta_highlights=self._delta_highlights(summaries, previous, tag_counts),
            stats=schemas.FeedStats(
                active_conversations=len(active),
                summaries_count=len(summaries),
                open_escalations=len(escalations),
            ),
            days=days,
            since=since,
        )

    def _participant_names(
        self, summaries: list[schemas.FeedbackSummary]
    ) -> dict[str, str]:
        names: dict[str, str] = {}
        for conversation_id in {s.conversation_id for s in summaries}:
            conversation = self.store.get_conversation(conversation_id)
            profile = (
                self.store.get_profile(conversation.participant_user_id)
                if conversation
                else None
            )
            names[conversation_id] = profile.name if profile and profile.name else "Employee"
        return names

    @staticmethod
    def _delta_highlights(
        current: list[schemas.FeedbackSummary],
        previous: list[schemas.FeedbackSummary],
        current_tags: Counter[str],
    ) -> schemas.DeltaHighlights:
        """Compare this window with the one before it; empty without history."""

        highlights = schemas.DeltaHighlights()
        if not previous:
            return highlights

        previous_rate = sum(1 for s in previous if s.sentiment == "negative") / len(previous)
        current_rate = sum(1 for s in current if s.sentiment == "negative") / max(len(current), 1)
        if current_rate < previous_rate - NEGATIVE_RATE_DELTA:
            highlights.improved.append("Overall sentiment has improved")
        elif current_rate > previous_rate + NEGATIVE_RATE_DELTA:
            highlights.declined.append("More negative feedback this week")

        previous_tags = {tag for s in previous for tag in s.tags}
        new_tags = [tag for tag in current_tags if tag not in previous_tags]
        if new_tags:
            highlights.new_concerns.append(f"New topics: {', '.join(new_tags)}")
        return highlights


__all__ = ["InsightFeedService"]
