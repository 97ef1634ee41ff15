from datetime import datetime, timezone

from pulse.agents import schemas
from pulse.agents.insight_extractor import (
    NO_CHANGES_NOTE,
    NO_RESPONSES_SUMMARY,
    InsightExtractor,
)

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


def _messages(*pairs):
    return [
        schemas.Message(
            id=f"m-{i}",
            conversation_id="c-1",
            sender_type=sender,
            content=content,
            created_at=NOW,
        )
        for i, (sender, content) in enumerate(pairs)
    ]


def _previous(sentiment, tags):
    return schemas.FeedbackSummary(
        id="s-prev",
        conversation_id="c-1",
        summary="Earlier summary",
        sentiment=sentiment,
        tags=tags,
        computed_at=NOW,
        created_at=NOW,
    )


def test_workload_overload_is_negative():
    extractor = InsightExtractor()
    messages = _messages(
        ("employee", "I'm overwhelmed with my workload this week"),
        ("employee", "deadlines keep piling up"),
    )

    assert "workload" in extractor.extract_topics(messages)
    sentiment, score = extractor.analyze_sentiment(messages)
    assert sentiment == "negative"
    assert score == -1.0


def test_agent_messages_are_ignored():
    extractor = InsightExtractor()
    messages = _messages(
        ("agent", "How is your manager doing? Great to hear!"),
        ("employee", "Fine."),
    )

    assert extractor.extract_topics(messages) == []
    assert extractor.analyze_sentiment(messages) == ("neutral", 0.0)


def test_key_quotes_prefer_longest_within_bounds():
    extractor = InsightExtractor()
    messages = _messages(
        ("employee", "short"),
        ("employee", "This one is medium length, fine."),
        ("employee", "This message is quite a bit longer than the medium one above."),
        ("agent", "An agent message that is long enough to qualify otherwise."),
        ("employee", "x" * 300),
        ("employee", "Another medium sized line!!"),
    )

    quotes = extractor.extract_key_quotes(messages, max_quotes=2)

    assert quotes == [
        "This message is quite a bit longer than the medium one above.",
        "This one is medium length, fine.",
    ]


def test_action_items_fire_independently():
    extractor = InsightExtractor()
    messages = _messages(
        ("employee", "I'm burned out, my salary is behind market and I've been interviewing"),
    )
    topics = extractor.extract_topics(messages)
    sentiment, _ = extractor.analyze_sentiment(messages)

    items = extractor.generate_action_items(messages, topics, sentiment)
    categories = [item.category for item in items]

    assert categories[0] == "retention_risk"
    assert items[0].priority == "high"
    assert "compensation" in categories
    assert "workload" in categories


def test_summary_text():
    extractor = InsightExtractor()
    messages = _messages(("employee", "My manager is great and the team is supportive"))

    summary = extractor.generate_summary(messages, ["manager", "culture", "team_dynamics", "growth"], "positive", "Ana")

    assert summary == (
        "Ana is feeling positive. Topics discussed include manager, culture, team_dynamics."
    )
    assert extractor.generate_summary(_messages(("agent", "hi")), [], "neutral", "Ana") == NO_RESPONSES_SUMMARY


def test_compare_without_previous_is_none():
    assert InsightExtractor().compare_summaries(None, "positive", ["manager"]) is None


def test_compare_reports_improvement_new_and_resolved_topics():
    notes = InsightExtractor().compare_summaries(
        _previous("negative", ["workload"]), "positive", ["manager"]
    )

    assert "Sentiment has improved since last check-in" in notes
    assert "New concerns: manager" in notes
    assert "No longer mentioned: workload" in notes


def test_compare_without_changes():
    notes = InsightExtractor().compare_summaries(
        _previous("neutral", ["manager"]), "neutral", ["manager"]
    )

    assert notes == NO_CHANGES_NOTE


def test_analyze_composes_fields():
    extractor = InsightExtractor()
    messages = _messages(
        ("agent", "How's your week?"),
        ("employee", "My manager finally gave me great feedback on the launch"),
    )

    analysis = extractor.analyze(messages, "Ana", _previous("negative", ["workload"]), now=NOW)
    payload = analysis.to_summary("c-1", previous_summary_id="s-prev")

    assert analysis.sentiment == "positive"
    assert analysis.tags == ["manager"]
    assert analysis.computed_at == NOW
    assert payload.previous_summary_id == "s-prev"
    assert payload.delta_notes.startswith("Sentiment has improved")
