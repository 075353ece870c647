from __future__ import annotations

from enum import StrEnum


class Direction(StrEnum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageStatus(StrEnum):
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class MessageType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    TEMPLATE = "template"
    INTERACTIVE = "interactive"
    BUTTONS = "buttons"
    LIST = "list"


class FrameKind(StrEnum):
    NEW_MESSAGE = "new_message"
    STATUS_UPDATE = "message_status"
    TYPING_UPDATE = "typing"
    CONVERSATION_CREATED = "new_conversation"


class ConnectionStatus(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class InteractiveKind(StrEnum):
    BUTTON = "button"
    LIST = "list"
    FLOW = "flow"
