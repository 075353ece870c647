from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ConversationRead:
    conversation_id: str
    on_arrival: bool = False  # a live message landed in the open conversation
