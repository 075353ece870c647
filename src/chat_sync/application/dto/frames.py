from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from chat_sync.domain.entities.conversation import ConversationSummary
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import FrameKind, MessageStatus


@dataclass(frozen=True, slots=True)
class NotificationFrame:
    """One inbound event, already classified. Consumed once by the router."""

    kind: FrameKind
    conversation_id: str | None = None
    message_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    server_timestamp: datetime | None = None
    frame_id: str | None = None
    status: MessageStatus | None = None
    message: Message | None = None
    conversation: ConversationSummary | None = None

    @property
    def entity_id(self) -> str | None:
        """Identifier of the thing this frame is about, used for dedupe keys."""
        if self.kind == FrameKind.STATUS_UPDATE:
            if self.message_id and self.status:
                return f"{self.message_id}@{self.status}"
            return None
        if self.kind == FrameKind.CONVERSATION_CREATED:
            return self.conversation_id
        if self.kind == FrameKind.NEW_MESSAGE:
            return self.message_id
        return None
