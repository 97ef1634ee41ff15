"""Two-directional content screening for agent conversations.

Inbound employee text is never blocked, only flagged for escalation. Outbound
agent text is blocked when it asks for personal data. :meth:`PolicyGuard.redact`
masks account, card and social security numbers before text reaches logs or
escalation records.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Pattern

from .schemas import EscalationType, Severity

_FLAGS = re.IGNORECASE

# Category order is significant: the first matching category becomes the
# escalation type.
ESCALATION_TRIGGERS: tuple[tuple[str, tuple[Pattern[str], ...]], ...] = (
    (
        "safety",
        (
            re.compile(
                r"\b(suicide|kill myself|end my life|self harm|hurt myself"
                r"|don['’]t want to live|want to die)\b",
                _FLAGS,
            ),
            re.compile(r"\b(violence|weapons?|guns?|knife|bomb|threat)\b", _FLAGS),
        ),
    ),
    (
        "harassment",
        (
            re.compile(
                r"\b(sexual harassment|harassing me|being harassed|hostile work|bullying|bully)\b",
                _FLAGS,
            ),
            re.compile(r"\b(inappropriate touch\w*|unwanted advances?|quid pro quo)\b", _FLAGS),
        ),
    ),
    (
        "discrimination",
        (
            re.compile(r"\b(discriminat\w*|racist|sexist|ageist|homophob\w*|transphob\w*)\b", _FLAGS),
            re.compile(r"\b(fired because|passed over for|denied promotion due to)\b", _FLAGS),
        ),
    ),
)

SENSITIVE_REQUESTS: tuple[tuple[str, Pattern[str]], ...] = (
    ("ssn_request", re.compile(r"what(['’]s| is) your (ssn|social security)", _FLAGS)),
    ("bank_request", re.compile(r"bank (account|routing|details)|(account|routing) number", _FLAGS)),
    ("cc_request", re.compile(r"credit card", _FLAGS)),
    ("medical_request", re.compile(r"medical (history|condition|diagnosis)", _FLAGS)),
    ("immigration_request", re.compile(r"immigration (status|visa)", _FLAGS)),
)

MANIPULATION_PATTERNS: tuple[Pattern[str], ...] = (
    re.compile(r"you (have to|must|need to) (tell|share|respond)", _FLAGS),
    re.compile(r"why (won['’]t|don['’]t) you (answer|respond|tell)", _FLAGS),
    re.compile(r"disappointed (in|with) you", _FLAGS),
    re.compile(r"everyone else (is|has)", _FLAGS),
)

MAX_AGENT_MESSAGE_LENGTH = 500

# Applied in order; every replacement token is digit-free so a second pass
# finds nothing to replace.
_REDACTIONS: tuple[tuple[Pattern[str], str], ...] = (
    (re.compile(r"\b(account|routing)[\s#:]+\d{6,17}\b", _FLAGS), "[ACCOUNT REDACTED]"),
    (re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"), "[CC REDACTED]"),
    (re.compile(r"\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b"), "[SSN REDACTED]"),
)

ESCALATION_MESSAGES: dict[str, str] = {
    "safety": (
        "I want to make sure you're okay. What you've shared sounds serious, and I want "
        "you to know that support is available. I'm connecting you with HR right now so "
        "a real person can help. In the meantime, if you're in immediate danger, please "
        "contact emergency services (911) or the 988 Suicide & Crisis Lifeline (call or text 988)."
    ),
    "harassment": (
        "Thank you for sharing this with me. What you've described is important and needs "
        "proper attention. I'm flagging this for HR review so someone can follow up with "
        "you directly and confidentially. You're not alone in this."
    ),
    "discrimination": (
        "I hear you, and I want you to know that what you've described is being taken "
        "seriously. I'm routing this to HR for proper review. Someone will reach out to "
        "you directly to discuss next steps."
    ),
    "urgent": (
        "This sounds urgent and important. I'm making sure the right people see this "
        "right away. Someone from HR will be in touch with you soon."
    ),
}

_BLOCKING = frozenset({"high", "critical"})


@dataclass(frozen=True)
class PolicyViolation:
    type: str
    description: str
    severity: Severity
    matched_text: Optional[str] = None


@dataclass(frozen=True)
class PolicyCheckResult:
    allowed: bool
    violations: list[PolicyViolation] = field(default_factory=list)
    requires_escalation: bool = False
    escalation_type: Optional[EscalationType] = None

    @property
    def blocking_violations(self) -> list[PolicyViolation]:
        return [v for v in self.violations if v.severity in _BLOCKING]


class PolicyGuard:
    """Stateless screening rules; safe to share between threads."""

    def check_employee_message(self, content: str) -> PolicyCheckResult:
        """Flag inbound text. Employee messages are always allowed."""

        violations: list[PolicyViolation] = []
        escalation_type: Optional[EscalationType] = None
        for category, patterns in ESCALATION_TRIGGERS:
            for pattern in patterns:
                match = pattern.search(content)
                if not match:
                    continue
                if escalation_type is None:
                    escalation_type = category  # type: ignore[assignment]
                violations.append(
                    PolicyViolation(
                        type=f"escalation_{category}",
                        description=f"Content indicates potential {category} issue",
                        severity="critical" if category == "safety" else "high",
                        matched_text=match.group(0),
                    )
                )
        return PolicyCheckResult(
            allowed=True,
            violations=violations,
            requires_escalation=escalation_type is not None,
            escalation_type=escalation_type,
        )

    def check_agent_message(self, content: str) -> PolicyCheckResult:
        """Decide whether agent-authored text may be sent."""

        violations: list[PolicyViolation] = []
        for violation_type, pattern in SENSITIVE_REQUESTS:
            if pattern.search(content):
                violations.append(
                    PolicyViolation(
                        type=violation_type,
                        description=(
                            f"Agent attempted to request {violation_type.replace('_', ' ')}"
                        ),
                        severity="high",
                    )
                )

        if len(content) > MAX_AGENT_MESSAGE_LENGTH:
            violations.append(
                PolicyViolation(
                    type="message_too_long",
                    description="Agent message exceeds recommended length",
                    severity="low",
                )
            )

        for pattern in MANIPULATION_PATTERNS:
            match = pattern.search(content)
            if match:
                violations.append(
                    PolicyViolation(
                        type="manipulation_attempt",
                        description="Message contains potentially manipulative language",
                        severity="medium",
                        matched_text=match.group(0),
                    )
                )

        return PolicyCheckResult(
            allowed=not any(v.severity in _BLOCKING for v in violations),
            violations=violations,
            requires_escalation=False,
        )

    @staticmethod
    def redact(content: str) -> str:
        """Mask account numbers, card numbers and SSNs. Idempotent."""

        redacted = content
        for pattern, token in _REDACTIONS:
            redacted = pattern.sub(token, redacted)
        return redacted

    @staticmethod
    def generate_escalation_message(
        escalation_type: Optional[str], participant_name: str = "Employee"
    ) -> str:
        """Return the fixed acknowledgement for ``escalation_type``.

        Unknown or manual types receive the urgent text.
        """

        return ESCALATION_MESSAGES.get(escalation_type or "urgent", ESCALATION_MESSAGES["urgent"])

    @staticmethod
    def should_route_to_human(violations: Iterable[PolicyViolation]) -> bool:
        return any(
            v.severity == "critical" or v.type.startswith("escalation_") for v in violations
        )


__all__ = [
    "ESCALATION_MESSAGES",
    "PolicyCheckResult",
    "PolicyGuard",
    "PolicyViolation",
]
