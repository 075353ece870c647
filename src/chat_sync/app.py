from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from chat_sync.application.ports.api import ConversationApi
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.ports.transport import Transport
from chat_sync.application.reconcile.reconciler import TranscriptReconciler
from chat_sync.application.reconcile.view import TranscriptItem, date_separators_for
from chat_sync.application.routing.router import NotificationRouter
from chat_sync.config import Settings, settings as default_settings
from chat_sync.domain.entities.message import Message
from chat_sync.domain.events.conversation_read import ConversationRead
from chat_sync.domain.value_objects.enums import MessageType
from chat_sync.infrastructure.bus.local_signals import LocalSignalBus
from chat_sync.infrastructure.rest.client import ConversationApiClient
from chat_sync.infrastructure.ws.manager import ConnectionManager
from chat_sync.infrastructure.ws.protocol import TypingFrame
from chat_sync.infrastructure.ws.transport import WebSocketTransport
from chat_sync.services import conversation_service, message_service

logger = logging.getLogger(__name__)


class ChatSyncSession:
    """Everything one logged-in dashboard session shares.

    Views receive the session (or its parts) explicitly and subscribe to the
    router or signal bus; none of them owns the connection.
    """

    def __init__(
        self,
        cfg: Settings,
        *,
        transport: Transport | None = None,
        api: ConversationApi | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = cfg
        self.clock = clock or SystemClock()
        self.signals = LocalSignalBus()
        self.router = NotificationRouter(
            self.clock,
            retention_seconds=cfg.DEDUPE_RETENTION_SECONDS,
            sweep_interval=cfg.DEDUPE_SWEEP_INTERVAL,
        )
        self.reconciler = TranscriptReconciler(self.signals, orphan_limit=cfg.ORPHAN_STATUS_LIMIT)
        self.router.attach(self.reconciler.handle_frame)
        self.connection = ConnectionManager(
            transport or WebSocketTransport(
                heartbeat_seconds=cfg.WS_HEARTBEAT_SECONDS,
                open_timeout=cfg.CONNECT_TIMEOUT,
            ),
            self.router,
            self.clock,
            url=cfg.WS_URL,
            tenant_id=cfg.BUSINESS_ID,
            credential=cfg.AUTH_TOKEN,
            base_delay=cfg.RECONNECT_BASE_DELAY,
            max_delay=cfg.RECONNECT_MAX_DELAY,
            max_attempts=cfg.RECONNECT_MAX_ATTEMPTS,
            signals=self.signals,
        )
        self._owns_api = api is None
        self.api: ConversationApi = api or ConversationApiClient.create(
            cfg.API_URL, cfg.AUTH_TOKEN, timeout=cfg.HTTP_TIMEOUT,
        )
        self._read_tasks: set[asyncio.Task[None]] = set()
        self.signals.subscribe(ConversationRead, self._on_conversation_read)

    async def start(self) -> None:
        await self.router.start()
        await self.connection.connect()

    async def stop(self) -> None:
        await self.connection.disconnect()
        for task in self._read_tasks:
            task.cancel()
        await asyncio.gather(*self._read_tasks, return_exceptions=True)
        await self.router.stop()
        if self._owns_api and isinstance(self.api, ConversationApiClient):
            await self.api.aclose()

    # --- consumer helpers ---

    async def open_conversation(self, conversation_id: str) -> tuple[Message, ...]:
        return await conversation_service.open_conversation(conversation_id, self.api, self.reconciler)

    def leave_conversation(self, conversation_id: str) -> None:
        conversation_service.leave_conversation(conversation_id, self.reconciler)

    async def send_message(
        self,
        conversation_id: str,
        content: str,
        *,
        msg_type: MessageType = MessageType.TEXT,
    ) -> Message:
        return await message_service.send_message(
            conversation_id, content, self.api, self.reconciler, msg_type=msg_type,
        )

    async def send_typing(self, conversation_id: str, is_typing: bool) -> bool:
        frame = TypingFrame(conversation_id=conversation_id, is_typing=is_typing)
        return await self.connection.send(frame.to_wire())

    def timeline(self, conversation_id: str) -> list[TranscriptItem]:
        return date_separators_for(
            self.reconciler.transcript(conversation_id),
            today=self.clock.now().date(),
            consecutive_window=timedelta(seconds=self.settings.CONSECUTIVE_WINDOW_SECONDS),
        )

    # --- read receipts ---

    def _on_conversation_read(self, event: ConversationRead) -> None:
        if not event.on_arrival:
            return
        task = asyncio.create_task(
            conversation_service.acknowledge_read(event.conversation_id, self.api),
            name=f"acknowledge-read-{event.conversation_id}",
        )
        self._read_tasks.add(task)
        task.add_done_callback(self._read_done)

    def _read_done(self, task: asyncio.Task[None]) -> None:
        self._read_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Server-side read failed: %s", exc)


@asynccontextmanager
async def session_scope(
    cfg: Settings | None = None,
    **overrides: object,
) -> AsyncIterator[ChatSyncSession]:
    """Startup / shutdown lifecycle of one session."""
    session = ChatSyncSession(cfg or default_settings, **overrides)  # type: ignore[arg-type]
    await session.start()
    logger.info("Chat sync session started")
    try:
        yield session
    finally:
        await session.stop()
        logger.info("Chat sync session stopped")
