"""Helpers for reading loosely-shaped backend payloads."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from chat_sync.domain.value_objects.enums import MessageStatus

_datetime = TypeAdapter(datetime)

_STATUS_ALIASES: dict[str, MessageStatus] = {
    "pending": MessageStatus.SENDING,
    "queued": MessageStatus.SENDING,
    "accepted": MessageStatus.SENT,
    "received": MessageStatus.DELIVERED,
    "seen": MessageStatus.READ,
    "undelivered": MessageStatus.FAILED,
    "error": MessageStatus.FAILED,
}


def pick(data: dict[str, Any], *names: str) -> Any:
    """First non-empty value among ``names`` (snake_case and camelCase spellings)."""
    for name in names:
        value = data.get(name)
        if value is not None and value != "":
            return value
    return None


def as_str(value: Any) -> str | None:
    return None if value is None else str(value)


def parse_timestamp(value: Any) -> datetime | None:
    """ISO-8601 string, epoch seconds/milliseconds or datetime; always UTC-aware."""
    if value is None:
        return None
    try:
        ts = _datetime.validate_python(value)
    except PydanticValidationError:
        return None
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


def parse_status(value: Any) -> MessageStatus | None:
    if not isinstance(value, str):
        return None
    raw = value.strip().lower()
    try:
        return MessageStatus(raw)
    except ValueError:
        return _STATUS_ALIASES.get(raw)
