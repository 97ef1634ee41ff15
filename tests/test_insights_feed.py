from datetime import timedelta

from conftest import COMPANY_ID, INSTANCE_ID
from pulse.agents import schemas
from pulse.agents.insights import InsightFeedService


def _add_summary(store, conversation_id, computed_at, sentiment, tags, action_items=()):
    return store.add_summary(
        schemas.FeedbackSummaryCreate(
            conversation_id=conversation_id,
            summary=f"{sentiment} summary",
            sentiment=sentiment,
            tags=list(tags),
            action_items=list(action_items),
            computed_at=computed_at,
        )
    )


def _item(text, priority):
    return schemas.ActionItem(text=text, confidence=0.7, priority=priority)


def test_empty_company_feed(seeded_store, clock):
    feed = InsightFeedService(seeded_store, clock=clock).build_feed(COMPANY_ID)

    assert feed.feed == []
    assert feed.stats.summaries_count == 0
    assert feed.delta_highlights.improved == []
    assert feed.since == clock() - timedelta(days=7)


def test_feed_aggregates_current_window(seeded_store, clock):
    now = clock()
    ana = seeded_store.create_conversation(COMPANY_ID, INSTANCE_ID, "u-ana")
    ben = seeded_store.create_conversation(COMPANY_ID, INSTANCE_ID, "u-ben")
    seeded_store.update_conversation(ben.id, status="escalated")
    message = seeded_store.add_message(ben.id, "employee", "I'm being harassed")
    seeded_store.create_escalation(
        ben.id,
        COMPANY_ID,
        trigger_message_id=message.id,
        escalation_type="harassment",
        severity="high",
    )

    # Previous window: mostly negative, only workload.
    _add_summary(seeded_store, ana.id, now - timedelta(days=10), "negative", ["workload"])
    _add_summary(seeded_store, ben.id, now - timedelta(days=9), "negative", ["workload"])
    # Current window.
    _add_summary(
        seeded_store,
        ana.id,
        now - timedelta(days=2),
        "positive",
        ["manager", "workload"],
        [_item("Compensation review", "low"), _item("Retention risk", "high")],
    )
    _add_summary(
        seeded_store,
        ben.id,
        now - timedelta(days=1),
        "neutral",
        ["manager", "growth"],
        [_item("Workload review", "medium")],
    )

    feed = InsightFeedService(seeded_store, clock=clock).build_feed(COMPANY_ID, days=7)

    assert [item.participant_name for item in feed.feed] == ["Ben Okafor", "Ana Lopez"]
    assert feed.sentiment_distribution.positive == 1
    assert feed.sentiment_distribution.neutral == 1
    assert feed.sentiment_distribution.negative == 0
    assert [(t.tag, t.count) for t in feed.top_tags] == [("manager", 2), ("growth", 1), ("workload", 1)]
    assert [a.priority for a in feed.action_items] == ["high", "medium", "low"]
    assert feed.action_items[0].participant_name == "Ana Lopez"
    assert feed.action_items[0].conversation_id == ana.id
    assert [e.escalation_type for e in feed.escalations] == ["harassment"]
    assert feed.stats.active_conversations == 1
    assert feed.stats.open_escalations == 1
    assert feed.stats.summaries_count == 2
    assert feed.delta_highlights.improved == ["Overall sentiment has improved"]
    assert feed.delta_highlights.declined == []
    assert feed.delta_highlights.new_concerns == ["New topics: manager, growth"]


def test_other_companies_are_excluded(seeded_store, clock):
    other = seeded_store.create_conversation("company-2", INSTANCE_ID, "u-zed")
    _add_summary(seeded_store, other.id, clock() - timedelta(days=1), "negative", ["culture"])

    feed = InsightFeedService(seeded_store, clock=clock).build_feed(COMPANY_ID)

    assert feed.feed == []
    assert feed.top_tags == []
