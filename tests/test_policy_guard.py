import pytest

from pulse.agents.policy_guard import ESCALATION_MESSAGES, PolicyGuard, PolicyViolation


@pytest.fixture
def guard():
    return PolicyGuard()


def test_safety_message_escalates_as_critical(guard):
    result = guard.check_employee_message("I don't want to live anymore")

    assert result.allowed is True
    assert result.requires_escalation is True
    assert result.escalation_type == "safety"
    assert [v.severity for v in result.violations] == ["critical"]
    assert result.violations[0].type == "escalation_safety"


def test_safety_wins_over_co_occurring_categories(guard):
    result = guard.check_employee_message(
        "My manager keeps bullying me and honestly I want to die"
    )

    assert result.escalation_type == "safety"
    assert {v.type for v in result.violations} == {"escalation_safety", "escalation_harassment"}
    assert any(v.severity == "critical" for v in result.violations)


def test_harassment_and_discrimination_are_high(guard):
    harassment = guard.check_employee_message("There is a hostile work situation on my team")
    discrimination = guard.check_employee_message("I was passed over for the role, it felt sexist")

    assert harassment.escalation_type == "harassment"
    assert discrimination.escalation_type == "discrimination"
    assert all(v.severity == "high" for v in harassment.violations + discrimination.violations)


def test_ordinary_employee_message_is_not_flagged(guard):
    result = guard.check_employee_message("Pretty good week, shipped the billing migration.")

    assert result.allowed is True
    assert result.requires_escalation is False
    assert result.violations == []


def test_agent_ssn_request_is_blocked(guard):
    result = guard.check_agent_message("What's your SSN?")

    assert result.allowed is False
    assert result.requires_escalation is False
    assert [(v.type, v.severity) for v in result.violations] == [("ssn_request", "high")]


@pytest.mark.parametrize(
    "text, expected_type",
    [
        ("Could you share your bank account details?", "bank_request"),
        ("Which credit card do you use for travel?", "cc_request"),
        ("Can you describe your medical history?", "medical_request"),
        ("What is your immigration status?", "immigration_request"),
    ],
)
def test_agent_personal_data_requests_block(guard, text, expected_type):
    result = guard.check_agent_message(text)

    assert result.allowed is False
    assert expected_type in {v.type for v in result.violations}


def test_low_and_medium_violations_do_not_block(guard):
    long_text = "Everyone else has answered already. " + "x" * 520
    result = guard.check_agent_message(long_text)

    assert result.allowed is True
    assert {v.type for v in result.violations} == {"message_too_long", "manipulation_attempt"}
    assert result.blocking_violations == []


def test_redact_masks_numbers_and_is_idempotent(guard):
    text = "SSN 123-45-6789, card 4111 1111 1111 1111, account #12345678 please"
    once = guard.redact(text)

    assert "[SSN REDACTED]" in once
    assert "[CC REDACTED]" in once
    assert "[ACCOUNT REDACTED]" in once
    assert not any(ch.isdigit() for ch in once)
    assert guard.redact(once) == once


@pytest.mark.parametrize("text", ["", "nothing to hide", "call 555-0100", "ids 12 34 5678"])
def test_redact_twice_equals_once(guard, text):
    assert guard.redact(guard.redact(text)) == guard.redact(text)


def test_escalation_messages_are_fixed_lookups(guard):
    safety = guard.generate_escalation_message("safety", "Ana Lopez")

    assert "911" in safety and "988" in safety
    assert safety == guard.generate_escalation_message("safety", "Ben")
    assert guard.generate_escalation_message("manual") == ESCALATION_MESSAGES["urgent"]
    assert guard.generate_escalation_message(None) == ESCALATION_MESSAGES["urgent"]


def test_should_route_to_human(guard):
    critical = PolicyViolation(type="other", description="", severity="critical")
    escalation = PolicyViolation(type="escalation_harassment", description="", severity="high")
    low = PolicyViolation(type="message_too_long", description="", severity="low")

    assert guard.should_route_to_human([critical]) is True
    assert guard.should_route_to_human([low, escalation]) is True
    assert guard.should_route_to_human([low]) is False
    assert guard.should_route_to_human([]) is False
