"""Read-time derivations over a transcript snapshot: date separators and grouping."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo

from chat_sync.application.decoders.interactive import ButtonPayload, FlowPayload, ListPayload, decode
from chat_sync.domain.entities.message import Message

CONSECUTIVE_WINDOW = timedelta(minutes=5)


@dataclass(frozen=True, slots=True)
class DateSeparator:
    day: date
    label: str


@dataclass(frozen=True, slots=True)
class MessageItem:
    message: Message
    consecutive: bool = False
    interactive: ButtonPayload | ListPayload | FlowPayload | None = None


TranscriptItem = DateSeparator | MessageItem


def _local_day(ts: datetime, tz: tzinfo | None) -> date:
    return ts.astimezone(tz).date() if tz is not None else ts.date()


def date_label(day: date, today: date) -> str:
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    if day > today - timedelta(days=7):
        return day.strftime("%A")
    return f"{day.strftime('%B')} {day.day}, {day.year}"


def date_separators_for(
    messages: Sequence[Message],
    *,
    tz: tzinfo | None = None,
    today: date | None = None,
    consecutive_window: timedelta = CONSECUTIVE_WINDOW,
) -> list[TranscriptItem]:
    """Interleave separators between adjacent messages on different calendar days.

    A message is ``consecutive`` when the previous item is a message in the
    same direction sent less than ``consecutive_window`` earlier.
    """
    if today is None:
        today = datetime.now(tz).date()

    items: list[TranscriptItem] = []
    prev: Message | None = None
    for message in messages:
        day = _local_day(message.timestamp, tz)
        if prev is not None and _local_day(prev.timestamp, tz) != day:
            items.append(DateSeparator(day=day, label=date_label(day, today)))
            prev = None
        consecutive = (
            prev is not None
            and prev.direction == message.direction
            and message.timestamp - prev.timestamp < consecutive_window
        )
        items.append(MessageItem(
            message=message,
            consecutive=consecutive,
            interactive=decode(message.interactive_data),
        ))
        prev = message
    return items
