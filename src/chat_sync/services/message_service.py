from __future__ import annotations

import uuid
from datetime import datetime, timezone

from chat_sync.application.exceptions import AppError
from chat_sync.application.ports.api import ConversationApi
from chat_sync.application.reconcile.reconciler import TranscriptReconciler
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import Direction, MessageStatus, MessageType


async def send_message(
    conversation_id: str,
    content: str,
    api: ConversationApi,
    reconciler: TranscriptReconciler,
    *,
    msg_type: MessageType = MessageType.TEXT,
) -> Message:
    """Send through REST with an optimistic local echo.

    The echo is visible immediately with status ``sending``. On success it is
    merged with the server's copy; on failure it is marked ``failed`` and the
    error is re-raised for the caller to show.
    """
    client_msg_id = uuid.uuid4().hex
    echo = Message(
        conversation_id=conversation_id,
        direction=Direction.OUTBOUND,
        status=MessageStatus.SENDING,
        type=msg_type.value,
        content=content,
        timestamp=datetime.now(timezone.utc),
        client_msg_id=client_msg_id,
    )
    reconciler.apply_new_message(echo, count_unread=False)

    try:
        sent = await api.send_message(conversation_id, content, message_type=msg_type.value)
    except AppError:
        reconciler.fail_local_echo(client_msg_id)
        raise

    return reconciler.confirm_local_echo(client_msg_id, sent)
