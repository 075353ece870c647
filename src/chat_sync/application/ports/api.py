from __future__ import annotations

from typing import Any, Protocol

from chat_sync.domain.entities.conversation import ConversationSummary
from chat_sync.domain.entities.message import Message


class ConversationApi(Protocol):
    """REST system of record for conversations and messages."""

    async def list_conversations(
        self,
        *,
        status: str | None = None,
        page: int = 1,
    ) -> list[ConversationSummary]: ...

    async def get_conversation(self, conversation_id: str) -> ConversationSummary: ...

    async def get_messages(self, conversation_id: str) -> list[Message]:
        """Message history. The server marks inbound messages read as a side effect."""
        ...

    async def send_message(
        self,
        conversation_id: str,
        content: str,
        *,
        message_type: str = "text",
        extra: dict[str, Any] | None = None,
    ) -> Message: ...

    async def mark_read(self, conversation_id: str) -> None: ...

    async def close_conversation(self, conversation_id: str) -> None: ...
