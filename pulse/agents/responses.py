"""Canned agent messages used whenever text generation is unavailable."""

from __future__ import annotations

import random
import re
from collections.abc import Mapping, Sequence
from typing import Optional

OPENING_MESSAGES: Mapping[str, Sequence[str]] = {
    "pulse_check": (
        "Hey! Quick check-in - how's your week going so far?",
        "Hi there! Just wanted to touch base. How are things going?",
        "Hey! Time for our weekly pulse. How's everything feeling?",
    ),
    "onboarding": (
        "Welcome! I'm here to help you get settled. How's your first week going?",
        "Hi! I'm your onboarding buddy. Quick question - do you have everything you need to get started?",
    ),
    "exit_interview": (
        "Thank you for taking a moment to share your experience with us. First, how would "
        "you describe your overall time here?",
    ),
    "manager_coaching": (
        "Hey! Quick reflection check-in. How did your 1:1s go this week?",
        "Hi there! Let's do a quick leadership pulse. How's the team feeling?",
    ),
}

NUDGE_MESSAGES: Sequence[str] = (
    "Hey {first_name}! Just checking back - when you have a moment, I'd love to hear how things are going.",
    "Quick ping! No pressure, but I'm here whenever you want to chat.",
    "Hi! Just a friendly nudge. Happy to pick up our conversation whenever works for you.",
)

WEEKLY_CHECK_INS: Sequence[str] = (
    "Hey {first_name}! Quick pulse check - how's the week treating you?",
    "Hi! Just checking in. How are you feeling about work lately?",
    "Hey there! What's been on your mind this week?",
)

TOPIC_FOLLOW_UPS: Mapping[str, str] = {
    "workload": "Hey {first_name}! Last time we talked about workload - any better this week?",
    "manager": "Hi {first_name}! How's things with your manager going since we last checked in?",
}

POSITIVE_REPLIES: Sequence[str] = (
    "That's great to hear, {first_name}! What's been the highlight?",
    "Awesome! Anything specific that made it good?",
    "Love hearing that! What's been working well?",
)

SUPPORTIVE_REPLIES: Sequence[str] = (
    "Thanks for being honest about that, {first_name}. What's been the biggest challenge?",
    "I hear you. Would you like to share more about what's making it tough?",
    "That sounds challenging. Is there anything specific you think could help?",
)

DEFAULT_REPLIES: Sequence[str] = (
    "Thanks for sharing that, {first_name}. Anything else on your mind?",
    "Got it! Is there anything you'd like to see improve?",
    "Appreciate you sharing. How's the team dynamic feeling?",
    "Thanks! Quick follow-up - how's work-life balance been lately?",
)

MANAGER_REPLY = "How's the relationship with your manager been lately? Getting the support you need?"
WORKLOAD_REPLY = "Workload can really pile up. Is it a temporary crunch or feeling more ongoing?"
THANKS_REPLY = "You're welcome, {first_name}! Feel free to reach out anytime. Have a great week!"

_POSITIVE = re.compile(r"\b(good|great|awesome|fantastic|love)\b", re.IGNORECASE)
_STRUGGLING = re.compile(r"\b(bad|terrible|stressed|overwhelmed|busy|tough)\b", re.IGNORECASE)
_MANAGER = re.compile(r"\b(manager|boss|lead)\b", re.IGNORECASE)
_WORKLOAD = re.compile(r"\b(workload|busy|too much|projects)\b", re.IGNORECASE)
_THANKS = re.compile(r"\b(thank|thanks|thank you)\b", re.IGNORECASE)


def first_name(name: str) -> str:
    return name.split(" ")[0] if name else "there"


class FallbackResponder:
    """Pick canned messages with an injectable random source.

    Given the same seed the same sequence of choices is made, which keeps
    fallback output reproducible in tests.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    def _choose(self, options: Sequence[str], name: str) -> str:
        return self.rng.choice(options).format(first_name=first_name(name))

    def opening(self, agent_type: str, participant_name: str = "") -> str:
        options = OPENING_MESSAGES.get(agent_type) or OPENING_MESSAGES["pulse_check"]
        return self._choose(options, participant_name)

    def nudge(self, participant_name: str) -> str:
        return self._choose(NUDGE_MESSAGES, participant_name)

    def follow_up(self, participant_name: str, tags: Optional[Sequence[str]] = None) -> str:
        """Reference the last summary's topics when there are any worth revisiting."""

        for topic, template in TOPIC_FOLLOW_UPS.items():
            if tags and topic in tags:
                return template.format(first_name=first_name(participant_name))
        return self._choose(WEEKLY_CHECK_INS, participant_name)

    def reply(self, employee_message: str, participant_name: str) -> str:
        """Keyword-driven answer to the employee's latest message."""

        if _POSITIVE.search(employee_message):
            return self._choose(POSITIVE_REPLIES, participant_name)
        if _STRUGGLING.search(employee_message):
            return self._choose(SUPPORTIVE_REPLIES, participant_name)
        if _MANAGER.search(employee_message):
            return MANAGER_REPLY
        if _WORKLOAD.search(employee_message):
            return WORKLOAD_REPLY
        if _THANKS.search(employee_message):
            return THANKS_REPLY.format(first_name=first_name(participant_name))
        return self._choose(DEFAULT_REPLIES, participant_name)


__all__ = ["FallbackResponder", "OPENING_MESSAGES", "first_name"]
