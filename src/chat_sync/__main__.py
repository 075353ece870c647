"""Entrypoint: python -m chat_sync

Connects with BUSINESS_ID / AUTH_TOKEN from the environment and logs every
transcript change until interrupted.
"""
from __future__ import annotations

import asyncio
import logging

from chat_sync.app import ChatSyncSession
from chat_sync.config import settings
from chat_sync.domain.events.connection_status_changed import ConnectionStatusChanged
from chat_sync.domain.events.conversation_created import ConversationCreated
from chat_sync.domain.events.transcript_changed import TranscriptChanged

logger = logging.getLogger("chat_sync")


def _log_status(event: ConnectionStatusChanged) -> None:
    if event.exhausted:
        logger.error("Disconnected after %d attempts; restart to retry", event.attempt)
    else:
        logger.info("Connection: %s", event.status)


def _log_change(event: TranscriptChanged) -> None:
    msg = event.message
    logger.info(
        "[%s] %s %s %s: %s",
        event.conversation_id, event.action, msg.direction, msg.status, msg.content or msg.type,
    )


def _log_conversation(event: ConversationCreated) -> None:
    logger.info("New conversation %s (%s)", event.conversation.id, event.conversation.contact_name or "?")


async def run_tail() -> None:
    session = ChatSyncSession(settings)
    session.signals.subscribe(ConnectionStatusChanged, _log_status)
    session.signals.subscribe(TranscriptChanged, _log_change)
    session.signals.subscribe(ConversationCreated, _log_conversation)

    await session.start()
    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await session.stop()


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(run_tail())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
