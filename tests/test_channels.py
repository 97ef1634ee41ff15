import pytest

from conftest import COMPANY_ID, INSTANCE_ID
from pulse.channels import (
    ChannelAdapter,
    InAppAdapter,
    get_adapter,
    get_channel_adapter,
    register_adapter,
)
from pulse.channels import _REGISTRY


class RecordingAdapter(ChannelAdapter):
    channel_name = "recording"

    def __init__(self, store):
        super().__init__(store)
        self.sent = []

    def send_message(self, conversation_id, content, metadata=None, content_type="text"):
        self.sent.append((conversation_id, content))
        return self.store.add_message(conversation_id, "agent", content, metadata=metadata)


@pytest.fixture
def conversation(seeded_store):
    return seeded_store.create_conversation(COMPANY_ID, INSTANCE_ID, "u-ana")


def test_unknown_channel_falls_back_to_inapp(seeded_store):
    assert isinstance(get_channel_adapter(seeded_store), InAppAdapter)
    assert isinstance(get_channel_adapter(seeded_store, "carrier-pigeon"), InAppAdapter)
    with pytest.raises(KeyError):
        get_adapter("carrier-pigeon")


def test_registered_adapter_is_selected(seeded_store, monkeypatch):
    monkeypatch.setitem(_REGISTRY, "recording", RecordingAdapter)

    adapter = get_channel_adapter(seeded_store, "Recording")

    assert isinstance(adapter, RecordingAdapter)
    assert get_adapter("RECORDING") is RecordingAdapter


def test_register_adapter_uses_channel_name(monkeypatch):
    monkeypatch.setattr("pulse.channels._REGISTRY", dict(_REGISTRY))

    register_adapter(RecordingAdapter)

    assert get_adapter("recording") is RecordingAdapter


def test_inapp_persists_agent_message_and_marks_read(seeded_store, conversation):
    adapter = InAppAdapter(seeded_store)

    message = adapter.send_message(conversation.id, "Hello Ana", metadata={"nudge": True})

    assert message.sender_type == "agent"
    assert message.metadata == {"nudge": True}
    assert seeded_store.get_conversation(conversation.id).unread_count == 1

    adapter.mark_as_read([message.id])
    adapter.mark_as_read([message.id])

    assert seeded_store.get_conversation(conversation.id).unread_count == 0
    assert seeded_store.list_recent_messages(conversation.id, 1)[0].is_read is True
