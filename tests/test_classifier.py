import pytest

from pulse.agents.classifier import KeywordClassifier


@pytest.fixture
def classifier():
    return KeywordClassifier()


def test_topics_follow_table_order(classifier):
    topics = classifier.classify_topics(
        "My manager never gives feedback and the laptop is so slow"
    )

    assert topics == ["manager", "tooling"]


def test_stems_match_inflections(classifier):
    assert "workload" in classifier.classify_topics("I'm totally swamped")
    assert "recognition" in classifier.classify_topics("Nobody appreciates the on-call work")


def test_no_indicators_is_neutral_zero(classifier):
    result = classifier.score_sentiment("The office moved to the third floor.")

    assert result.sentiment == "neutral"
    assert result.score == 0.0


def test_positive_and_negative_thresholds(classifier):
    assert classifier.score_sentiment("Great week, I love the team").sentiment == "positive"
    assert classifier.score_sentiment("This is awful and I am stressed").sentiment == "negative"


def test_balanced_counts_are_mixed(classifier):
    result = classifier.score_sentiment("Good progress but a hard sprint")

    assert result.positive_hits == 2
    assert result.negative_hits == 1
    assert result.score == pytest.approx(0.33)
    assert result.sentiment == "positive"

    mixed = classifier.score_sentiment("Good team, bad tooling")
    assert mixed.score == 0.0
    assert mixed.sentiment == "mixed"


@pytest.mark.parametrize(
    "text",
    [
        "great great great",
        "awful terrible bad",
        "good but difficult and hard and worried",
        "",
    ],
)
def test_score_is_bounded(classifier, text):
    result = classifier.score_sentiment(text)

    assert -1.0 <= result.score <= 1.0
