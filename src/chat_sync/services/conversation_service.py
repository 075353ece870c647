from __future__ import annotations

from chat_sync.application.ports.api import ConversationApi
from chat_sync.application.reconcile.reconciler import TranscriptReconciler
from chat_sync.domain.entities.conversation import ConversationSummary
from chat_sync.domain.entities.message import Message


async def open_conversation(
    conversation_id: str,
    api: ConversationApi,
    reconciler: TranscriptReconciler,
) -> tuple[Message, ...]:
    """Load history into the transcript and clear the unread badge.

    Fetching history marks inbound messages read on the server, so the local
    read signal is emitted as soon as the fetch succeeds.

    The conversation becomes the active one: live inbound messages that
    arrive while it stays open are read on arrival.
    """
    reconciler.set_active(conversation_id)
    history = await api.get_messages(conversation_id)
    reconciler.load_history(conversation_id, history)
    reconciler.mark_read(conversation_id)
    return reconciler.transcript(conversation_id)


async def refresh_conversations(
    api: ConversationApi,
    reconciler: TranscriptReconciler,
    *,
    status: str | None = None,
    page: int = 1,
) -> list[ConversationSummary]:
    conversations = await api.list_conversations(status=status, page=page)
    for summary in conversations:
        reconciler.upsert_conversation(summary)
    return reconciler.conversations()


async def close_conversation(conversation_id: str, api: ConversationApi) -> None:
    await api.close_conversation(conversation_id)


def leave_conversation(conversation_id: str, reconciler: TranscriptReconciler) -> None:
    if reconciler.active_conversation == conversation_id:
        reconciler.set_active(None)


async def acknowledge_read(conversation_id: str, api: ConversationApi) -> None:
    await api.mark_read(conversation_id)
