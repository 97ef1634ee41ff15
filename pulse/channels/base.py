"""Base abstractions for message delivery channels."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Optional

from ..agents import schemas
from ..store.base import Store


class ChannelAdapter(ABC):
    """Abstract base class encapsulating channel-specific delivery."""

    #: Lowercase channel identifier used in configuration.
    channel_name: str

    def __init__(self, store: Store) -> None:
        self.store = store

    @abstractmethod
    def send_message(
        self,
        conversation_id: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
        content_type: schemas.ContentType = "text",
    ) -> schemas.Message:
        """Deliver an agent-authored message and return the persisted record."""

    def mark_as_read(self, message_ids: Sequence[str]) -> None:
        """Flag delivered messages as read.

        The default implementation updates the store directly.
        """

        self.store.mark_messages_read(message_ids)
