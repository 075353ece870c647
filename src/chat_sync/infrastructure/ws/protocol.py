"""WebSocket frame envelope and its translation into NotificationFrame."""
from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from chat_sync.application.dto.frames import NotificationFrame
from chat_sync.application.exceptions import FrameDecodeError
from chat_sync.domain.value_objects.enums import FrameKind
from chat_sync.infrastructure.mappers import conversation as conversation_mapper
from chat_sync.infrastructure.mappers import message as message_mapper
from chat_sync.infrastructure.mappers._fields import as_str, parse_status, parse_timestamp, pick

logger = logging.getLogger(__name__)

_KIND_ALIASES: dict[str, FrameKind] = {
    "new_message": FrameKind.NEW_MESSAGE,
    "newmessage": FrameKind.NEW_MESSAGE,
    "message.created": FrameKind.NEW_MESSAGE,
    "message_status": FrameKind.STATUS_UPDATE,
    "statusupdate": FrameKind.STATUS_UPDATE,
    "status_update": FrameKind.STATUS_UPDATE,
    "message.status": FrameKind.STATUS_UPDATE,
    "typing": FrameKind.TYPING_UPDATE,
    "typingupdate": FrameKind.TYPING_UPDATE,
    "typing_update": FrameKind.TYPING_UPDATE,
    "new_conversation": FrameKind.CONVERSATION_CREATED,
    "conversationcreated": FrameKind.CONVERSATION_CREATED,
    "conversation_created": FrameKind.CONVERSATION_CREATED,
    "conversation.created": FrameKind.CONVERSATION_CREATED,
}


class WsFrame(BaseModel):
    """Server → Client."""

    model_config = ConfigDict(extra="allow")

    type: str | None = None  # new_message | message_status | typing | new_conversation
    kind: str | None = None
    id: str | int | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def discriminator(self) -> str:
        return (self.type or self.kind or "").strip().lower()

    def body(self) -> dict[str, Any]:
        """Top-level extras overlaid by the nested payload."""
        merged = dict(self.model_extra or {})
        merged.update(self.payload)
        return merged


class TypingFrame(BaseModel):
    """Client → Server."""

    type: Literal["typing"] = "typing"
    conversation_id: str = Field(serialization_alias="conversationId")
    is_typing: bool = Field(serialization_alias="isTyping")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def parse_frame(raw: str | bytes) -> NotificationFrame | None:
    """Decode one wire frame.

    Returns None for well-formed frames of a kind this client does not know.
    Raises FrameDecodeError for anything malformed.
    """
    try:
        envelope = WsFrame.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise FrameDecodeError(f"invalid frame: {exc.error_count()} error(s)") from exc

    kind = _KIND_ALIASES.get(envelope.discriminator)
    if kind is None:
        logger.debug("Ignoring unknown frame type: %r", envelope.discriminator)
        return None

    data = envelope.body()
    try:
        return _build(kind, envelope, data)
    except (KeyError, TypeError, ValueError) as exc:
        raise FrameDecodeError(f"malformed {kind} frame: {exc}") from exc


def _build(kind: FrameKind, envelope: WsFrame, data: dict[str, Any]) -> NotificationFrame:
    conversation_id = as_str(pick(data, "conversationId", "conversation_id"))
    server_ts = parse_timestamp(pick(data, "serverTimestamp", "server_timestamp", "timestamp"))
    frame_id = as_str(envelope.id)

    if kind == FrameKind.NEW_MESSAGE:
        body = data.get("message")
        if not isinstance(body, dict):
            raise TypeError("message body must be an object")
        message = message_mapper.payload_to_entity(
            body, conversation_id=conversation_id, default_timestamp=server_ts,
        )
        return NotificationFrame(
            kind=kind,
            conversation_id=message.conversation_id,
            message_id=message.id or message.provider_message_id,
            payload=data,
            server_timestamp=server_ts or message.timestamp,
            frame_id=frame_id,
            message=message,
        )

    if kind == FrameKind.STATUS_UPDATE:
        message_id = as_str(pick(data, "messageId", "message_id", "whatsappMessageId"))
        status = parse_status(pick(data, "status"))
        if message_id is None or status is None:
            raise ValueError(f"status frame needs messageId and a known status, got {data.get('status')!r}")
        return NotificationFrame(
            kind=kind,
            conversation_id=conversation_id,
            message_id=message_id,
            payload=data,
            server_timestamp=server_ts,
            frame_id=frame_id,
            status=status,
        )

    if kind == FrameKind.CONVERSATION_CREATED:
        body = data.get("conversation")
        summary = conversation_mapper.payload_to_entity(
            body if isinstance(body, dict) else {"id": conversation_id, **data},
        )
        return NotificationFrame(
            kind=kind,
            conversation_id=summary.id,
            payload=data,
            server_timestamp=server_ts,
            frame_id=frame_id,
            conversation=summary,
        )

    return NotificationFrame(
        kind=kind,
        conversation_id=conversation_id,
        payload=data,
        server_timestamp=server_ts,
        frame_id=frame_id,
    )
