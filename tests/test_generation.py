from types import SimpleNamespace

import pytest

from pulse.agents.generation import (
    AgentResponseRequest,
    ChatTurn,
    GenerationUnavailableError,
    InitialMessageRequest,
    OpenAITextGenerator,
    truncate_for_tone,
)
from pulse.agents.prompts import PromptTemplateStore
from pulse.agents.providers import ProviderRegistry


class FakeCompletions:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        message = SimpleNamespace(content=outcome)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _generator(completions, **kwargs):
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    kwargs.setdefault("sleep", lambda _s: None)
    return OpenAITextGenerator(client=client, **kwargs)


def test_truncate_for_tone():
    assert truncate_for_tone("short", "poke_lite") == "short"
    long_text = "a" * 600
    assert truncate_for_tone(long_text, "poke_lite") == "a" * 237 + "..."
    assert len(truncate_for_tone(long_text, "friendly_peer")) == 400
    assert len(truncate_for_tone(long_text, "unknown")) == 500


def test_initial_message_uses_opening_prompt():
    completions = FakeCompletions("  Hey Ana! How's the week going?  ")
    generator = _generator(completions, model="gpt-test")

    text = generator.generate_initial_message(
        InitialMessageRequest(participant_name="Ana", agent_type="onboarding", tone_preset="poke_lite")
    )

    assert text == "Hey Ana! How's the week going?"
    [call] = completions.calls
    assert call["model"] == "gpt-test"
    assert call["max_tokens"] == 100
    assert call["messages"][0]["role"] == "system"
    assert "starting a new conversation with Ana" in call["messages"][0]["content"]
    assert call["messages"][1] == {"role": "user", "content": "Generate an opening message."}


def test_reply_passes_history_and_token_budget():
    completions = FakeCompletions("Thanks for sharing!")
    generator = _generator(completions)
    request = AgentResponseRequest(
        participant_name="Ana",
        agent_type="pulse_check",
        tone_preset="professional_hr",
        history=[ChatTurn("assistant", "How are you?"), ChatTurn("user", "Busy but fine")],
        custom_prompt="Mention the offsite.",
    )

    result = generator.generate_agent_response(request)

    assert result.content == "Thanks for sharing!"
    assert result.should_escalate is False
    [call] = completions.calls
    assert call["max_tokens"] == 200
    assert "Mention the offsite." in call["messages"][0]["content"]
    assert call["messages"][1:] == [
        {"role": "assistant", "content": "How are you?"},
        {"role": "user", "content": "Busy but fine"},
    ]


def test_escalating_history_short_circuits_the_provider():
    completions = FakeCompletions()
    generator = _generator(completions)

    result = generator.generate_agent_response(
        AgentResponseRequest(
            participant_name="Ana",
            agent_type="pulse_check",
            tone_preset="friendly_peer",
            history=[ChatTurn("user", "I want to die")],
        )
    )

    assert result.should_escalate is True
    assert result.escalation_type == "safety"
    assert "988" in result.content
    assert completions.calls == []


def test_retries_then_succeeds():
    delays = []
    completions = FakeCompletions(RuntimeError("429"), "", "Hello!")
    generator = _generator(completions, backoff_seconds=0.25, sleep=delays.append)

    text = generator.generate_initial_message(
        InitialMessageRequest(participant_name="Ana", agent_type="pulse_check", tone_preset="friendly_peer")
    )

    assert text == "Hello!"
    assert len(completions.calls) == 3
    assert delays == [0.25, 0.5]


def test_exhausted_retries_raise_unavailable():
    completions = FakeCompletions(RuntimeError("down"), RuntimeError("down"))
    generator = _generator(completions, max_attempts=2)

    with pytest.raises(GenerationUnavailableError):
        generator.generate_initial_message(
            InitialMessageRequest(participant_name="Ana", agent_type="pulse_check", tone_preset="friendly_peer")
        )


def test_unconfigured_generator(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    generator = OpenAITextGenerator(registry=ProviderRegistry())

    assert generator.is_configured() is False
    with pytest.raises(GenerationUnavailableError):
        generator.generate_initial_message(
            InitialMessageRequest(participant_name="Ana", agent_type="pulse_check", tone_preset="friendly_peer")
        )


def test_provider_registry_overrides_and_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://llm.internal/v1")
    monkeypatch.delenv("AZURE_OPENAI_API_KEY", raising=False)
    registry = ProviderRegistry({"Azure": {"api_key": "az-key", "deployment": "pulse"}})

    openai_creds = registry.get_credentials("openai")
    azure_creds = registry.get_credentials("azure")

    assert openai_creds.client_kwargs() == {"api_key": "sk-env", "base_url": "https://llm.internal/v1"}
    assert azure_creds.api_key == "az-key"
    assert azure_creds.extras == {"deployment": "pulse"}
    assert registry.list_supported_providers() == {"azure": True, "openai": True}
    assert registry.get_credentials("unknown").configured is False


def test_prompt_store_defaults_and_extras():
    prompts = PromptTemplateStore(extra_tones={"haiku": "Answer in haiku."})

    assert prompts.tone("nonexistent") == prompts.tone("friendly_peer")
    assert prompts.goal("custom") == prompts.goal("pulse_check")
    prompt = prompts.system_prompt("haiku", "pulse_check", "Ana")
    assert prompt.startswith("Answer in haiku.")
    assert "You're talking with Ana." in prompt
