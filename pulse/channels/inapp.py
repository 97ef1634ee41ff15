"""In-app delivery: messages are persisted and picked up by the employee UI."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..agents import schemas
from .base import ChannelAdapter

logger = logging.getLogger(__name__)


class InAppAdapter(ChannelAdapter):
    channel_name = "inapp"

    def send_message(
        self,
        conversation_id: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
        content_type: schemas.ContentType = "text",
    ) -> schemas.Message:
        message = self.store.add_message(
            conversation_id,
            "agent",
            content,
            content_type=content_type,
            metadata=metadata,
        )
        logger.debug(
            "Delivered in-app message",
            extra={"conversation_id": conversation_id, "message_id": message.id},
        )
        return message
