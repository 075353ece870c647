from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any

from chat_sync.domain.value_objects.enums import Direction, MessageStatus
from chat_sync.domain.value_objects.status_lattice import resolve_status


@dataclass(frozen=True, slots=True)
class Message:
    conversation_id: str
    direction: Direction
    status: MessageStatus
    type: str
    content: str | None
    timestamp: datetime
    id: str | None = None
    provider_message_id: str | None = None
    provider_media_id: str | None = None
    client_msg_id: str | None = None
    interactive_data: Any = None

    @property
    def identity_keys(self) -> tuple[str, ...]:
        """Every external identifier this message can be addressed by.

        Falls back to a conversation/timestamp/content composite when the
        message carries no identifier at all.
        """
        keys = tuple(
            k for k in (
                self.id,
                self.provider_message_id,
                self.provider_media_id,
                self.client_msg_id,
            )
            if k
        )
        if keys:
            return keys
        return (f"{self.conversation_id}:{self.timestamp.isoformat()}:{self.content or ''}",)

    def merged_with(self, other: Message) -> Message:
        """Field-by-field merge: set fields of ``other`` win, status never regresses."""
        changes: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "status":
                continue
            value = getattr(other, f.name)
            if value is not None:
                changes[f.name] = value
        changes["status"] = resolve_status(self.status, other.status)
        return replace(self, **changes)
