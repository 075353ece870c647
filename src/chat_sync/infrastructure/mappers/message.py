from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import Direction, MessageStatus, MessageType
from chat_sync.infrastructure.mappers._fields import as_str, parse_status, parse_timestamp, pick


def payload_to_entity(
    data: dict[str, Any],
    *,
    conversation_id: str | None = None,
    default_timestamp: datetime | None = None,
) -> Message:
    """Build a Message from a REST row or a ``new_message`` frame body.

    Raises KeyError if no conversation can be determined.
    """
    conv = as_str(pick(data, "conversation_id", "conversationId")) or conversation_id
    if conv is None:
        raise KeyError("conversation_id")

    direction_raw = str(pick(data, "direction") or "").lower()
    direction = Direction.OUTBOUND if direction_raw == Direction.OUTBOUND else Direction.INBOUND

    status = parse_status(pick(data, "status"))
    if status is None:
        status = MessageStatus.SENT if direction == Direction.OUTBOUND else MessageStatus.DELIVERED

    timestamp = (
        parse_timestamp(pick(data, "timestamp", "created_at", "createdAt", "sent_at"))
        or default_timestamp
        or datetime.now(timezone.utc)
    )

    return Message(
        id=as_str(pick(data, "id", "_id")),
        conversation_id=conv,
        direction=direction,
        status=status,
        type=str(pick(data, "message_type", "messageType", "type") or MessageType.TEXT),
        content=pick(data, "content", "body", "text"),
        timestamp=timestamp,
        provider_message_id=as_str(pick(data, "whatsapp_message_id", "whatsappMessageId", "wamid")),
        provider_media_id=as_str(pick(data, "whatsapp_media_id", "whatsappMediaId")),
        client_msg_id=as_str(pick(data, "client_msg_id", "clientMsgId")),
        interactive_data=pick(data, "interactive_data", "interactiveData"),
    )
