from __future__ import annotations

from typing import Any

from chat_sync.domain.entities.conversation import ConversationSummary
from chat_sync.infrastructure.mappers._fields import as_str, parse_timestamp, pick


def payload_to_entity(data: dict[str, Any]) -> ConversationSummary:
    conv_id = as_str(pick(data, "id", "conversation_id", "conversationId"))
    if conv_id is None:
        raise KeyError("id")
    unread = pick(data, "unread_count", "unreadCount") or 0
    return ConversationSummary(
        id=conv_id,
        contact_name=pick(data, "contact_name", "contactName", "name"),
        contact_phone=as_str(pick(data, "contact_phone", "contactPhone", "phone_number", "phone")),
        status=pick(data, "status"),
        unread_count=int(unread),
        last_message_at=parse_timestamp(pick(data, "last_message_at", "lastMessageAt", "updated_at")),
    )
