"""Optional LLM-backed text generation for agent messages.

Generation is never required: callers catch :class:`GenerationUnavailableError`
and fall back to :class:`~pulse.agents.responses.FallbackResponder`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Protocol

from openai import OpenAI

from .policy_guard import PolicyGuard
from .prompts import PromptTemplateStore
from .providers import ProviderRegistry
from .schemas import EscalationType

logger = logging.getLogger(__name__)

TONE_CHARACTER_LIMITS: dict[str, int] = {
    "poke_lite": 240,
    "witty_safe": 350,
    "friendly_peer": 400,
    "professional_hr": 500,
}
DEFAULT_CHARACTER_LIMIT = 500


class GenerationUnavailableError(RuntimeError):
    """Raised when no text could be generated (unconfigured or failing provider)."""


@dataclass(frozen=True)
class ChatTurn:
    role: Literal["user", "assistant"]
    content: str


@dataclass(frozen=True)
class InitialMessageRequest:
    participant_name: str
    agent_type: str
    tone_preset: str
    custom_prompt: Optional[str] = None


@dataclass(frozen=True)
class AgentResponseRequest:
    participant_name: str
    agent_type: str
    tone_preset: str
    history: Sequence[ChatTurn] = field(default_factory=tuple)
    custom_prompt: Optional[str] = None


@dataclass(frozen=True)
class GenerationResult:
    content: str
    should_escalate: bool = False
    escalation_type: Optional[EscalationType] = None


class TextGenerator(Protocol):
    def is_configured(self) -> bool: ...

    def generate_initial_message(self, request: InitialMessageRequest) -> str: ...

    def generate_agent_response(self, request: AgentResponseRequest) -> GenerationResult: ...


def truncate_for_tone(content: str, tone_preset: str) -> str:
    limit = TONE_CHARACTER_LIMITS.get(tone_preset, DEFAULT_CHARACTER_LIMIT)
    if len(content) <= limit:
        return content
    return content[: limit - 3] + "..."


class OpenAITextGenerator:
    """Chat-completions generator with bounded retries and exponential backoff."""

    provider = "openai"

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        *,
        registry: ProviderRegistry | None = None,
        client: Any | None = None,
        prompts: PromptTemplateStore | None = None,
        policy_guard: PolicyGuard | None = None,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.model = model
        self.registry = registry or ProviderRegistry()
        self.prompts = prompts or PromptTemplateStore()
        self.policy_guard = policy_guard or PolicyGuard()
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._client = client

    def is_configured(self) -> bool:
        return self._client is not None or self.registry.is_configured(self.provider)

    def _get_client(self) -> Any:
        if self._client is None:
            credentials = self.registry.get_credentials(self.provider)
            if not credentials.configured:
                raise GenerationUnavailableError("OpenAI API key is not configured")
            self._client = OpenAI(**credentials.client_kwargs())
        return self._client

    def _complete(self, system_prompt: str, messages: list[dict[str, str]], max_tokens: int) -> str:
        client = self._get_client()
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "system", "content": system_prompt}, *messages],
                    max_tokens=max_tokens,
                    temperature=0.7,
                )
                content = (response.choices[0].message.content or "").strip()
                if not content:
                    raise ValueError("empty completion")
                return content
            except Exception as exc:  # noqa: BLE001 - provider errors vary by SDK version
                last_error = exc
                logger.warning(
                    "OpenAI chat completion failed (attempt %s/%s): %s",
                    attempt,
                    self.max_attempts,
                    exc,
                )
                if attempt < self.max_attempts:
                    self._sleep(self.backoff_seconds * (2 ** (attempt - 1)))
        raise GenerationUnavailableError(
            f"Generation failed after {self.max_attempts} attempts"
        ) from last_error

    def generate_initial_message(self, request: InitialMessageRequest) -> str:
        system_prompt = self.prompts.system_prompt(
            request.tone_preset,
            request.agent_type,
            request.participant_name,
            opening=True,
            custom_prompt=request.custom_prompt,
        )
        content = self._complete(
            system_prompt,
            [{"role": "user", "content": "Generate an opening message."}],
            max_tokens=100,
        )
        return truncate_for_tone(content, request.tone_preset)

    def generate_agent_response(self, request: AgentResponseRequest) -> GenerationResult:
        latest = next(
            (turn.content for turn in reversed(request.history) if turn.role == "user"), ""
        )
        check = self.policy_guard.check_employee_message(latest)
        if check.requires_escalation:
            return GenerationResult(
                content=self.policy_guard.generate_escalation_message(
                    check.escalation_type, request.participant_name
                ),
                should_escalate=True,
                escalation_type=check.escalation_type,
            )

        system_prompt = self.prompts.system_prompt(
            request.tone_preset,
            request.agent_type,
            request.participant_name,
            custom_prompt=request.custom_prompt,
        )
        content = self._complete(
            system_prompt,
            [{"role": turn.role, "content": turn.content} for turn in request.history],
            max_tokens=100 if request.tone_preset == "poke_lite" else 200,
        )
        return GenerationResult(content=truncate_for_tone(content, request.tone_preset))


__all__ = [
    "AgentResponseRequest",
    "ChatTurn",
    "GenerationResult",
    "GenerationUnavailableError",
    "InitialMessageRequest",
    "OpenAITextGenerator",
    "TextGenerator",
    "truncate_for_tone",
]
