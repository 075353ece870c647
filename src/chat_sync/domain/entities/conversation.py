from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class ConversationSummary:
    id: str
    contact_name: str | None = None
    contact_phone: str | None = None
    status: str | None = None
    unread_count: int = 0
    last_message_at: datetime | None = None
