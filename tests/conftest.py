"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from chat_sync.application.dto.frames import NotificationFrame
from chat_sync.application.exceptions import TransportClosedError, TransportError
from chat_sync.application.reconcile.reconciler import TranscriptReconciler
from chat_sync.application.routing.router import NotificationRouter
from chat_sync.domain.entities.conversation import ConversationSummary
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import Direction, FrameKind, MessageStatus
from chat_sync.domain.value_objects.ids import ABNORMAL_CLOSURE
from chat_sync.infrastructure.bus.local_signals import LocalSignalBus
from chat_sync.infrastructure.ws.manager import ConnectionManager

T0 = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)  # a Monday


async def settle(rounds: int = 20) -> None:
    """Let scheduled tasks run until the loop is quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Manual clock. ``sleep`` blocks until ``release()`` is called."""

    def __init__(self, start: datetime = T0) -> None:
        self._now = start
        self._mono = 0.0
        self.sleeps: list[float] = []
        self._waiters: list[asyncio.Future[None]] = []

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._mono += seconds
        self._now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        await fut

    @property
    def pending_sleeps(self) -> int:
        return sum(1 for f in self._waiters if not f.done())

    def release(self) -> None:
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(None)


class FakeConnection:
    def __init__(self) -> None:
        self.inbox: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.closed_with: int | None = None

    async def recv(self) -> str:
        item = await self.inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, data: str) -> None:
        if self.closed_with is not None:
            raise TransportClosedError(self.closed_with)
        self.sent.append(json.loads(data))

    async def close(self, code: int, reason: str = "") -> None:
        if self.closed_with is None:
            self.closed_with = code
            self.inbox.put_nowait(TransportClosedError(code, reason))

    def push(self, frame: dict[str, Any] | str) -> None:
        self.inbox.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self, code: int = ABNORMAL_CLOSURE) -> None:
        """Simulate the server or network ending the connection."""
        self.closed_with = code
        self.inbox.put_nowait(TransportClosedError(code, "dropped"))


class FakeTransport:
    def __init__(self) -> None:
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []
        self.fail_next = 0
        self.always_fail = False
        self.gate: asyncio.Event | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def open(self, url: str) -> FakeConnection:
        self.urls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.always_fail or self.fail_next > 0:
                self.fail_next = max(0, self.fail_next - 1)
                raise TransportError("connection refused")
        finally:
            self.in_flight -= 1
        conn = FakeConnection()
        self.connections.append(conn)
        return conn

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


def make_message(
    *,
    message_id: str | None = None,
    conversation_id: str = "c1",
    direction: Direction = Direction.INBOUND,
    status: MessageStatus = MessageStatus.DELIVERED,
    content: str | None = "hello",
    timestamp: datetime = T0,
    **extra: Any,
) -> Message:
    return Message(
        id=message_id if message_id is not None else uuid.uuid4().hex,
        conversation_id=conversation_id,
        direction=direction,
        status=status,
        type="text",
        content=content,
        timestamp=timestamp,
        **extra,
    )


def new_message_frame(message: Message, **kwargs: Any) -> NotificationFrame:
    return NotificationFrame(
        kind=FrameKind.NEW_MESSAGE,
        conversation_id=message.conversation_id,
        message_id=message.id,
        server_timestamp=message.timestamp,
        message=message,
        **kwargs,
    )


def status_frame(message_id: str, status: MessageStatus, **kwargs: Any) -> NotificationFrame:
    return NotificationFrame(
        kind=FrameKind.STATUS_UPDATE,
        message_id=message_id,
        status=status,
        **kwargs,
    )


def wire_message(
    message_id: str = "m1",
    conversation_id: str = "c1",
    timestamp: str = "2024-03-04T10:00:00Z",
    **fields: Any,
) -> dict[str, Any]:
    return {
        "type": "new_message",
        "conversationId": conversation_id,
        "message": {
            "id": message_id,
            "conversation_id": conversation_id,
            "direction": "inbound",
            "message_type": "text",
            "content": "hi",
            "timestamp": timestamp,
            **fields,
        },
    }


@dataclass
class FakeConversationApi:
    histories: dict[str, list[Message]] = field(default_factory=dict)
    conversations: list[ConversationSummary] = field(default_factory=list)
    send_error: Exception | None = None
    sent: list[tuple[str, str, str]] = field(default_factory=list)
    fetched: list[str] = field(default_factory=list)
    reads: list[str] = field(default_factory=list)
    closed: list[str] = field(default_factory=list)
    server_timestamp: datetime = T0

    async def list_conversations(self, *, status: str | None = None, page: int = 1) -> list[ConversationSummary]:
        return list(self.conversations)

    async def get_conversation(self, conversation_id: str) -> ConversationSummary:
        return next(c for c in self.conversations if c.id == conversation_id)

    async def get_messages(self, conversation_id: str) -> list[Message]:
        self.fetched.append(conversation_id)
        return list(self.histories.get(conversation_id, []))

    async def send_message(
        self,
        conversation_id: str,
        content: str,
        *,
        message_type: str = "text",
        extra: dict[str, Any] | None = None,
    ) -> Message:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((conversation_id, content, message_type))
        return Message(
            id=f"srv-{len(self.sent)}",
            conversation_id=conversation_id,
            direction=Direction.OUTBOUND,
            status=MessageStatus.SENT,
            type=message_type,
            content=content,
            timestamp=self.server_timestamp,
            provider_message_id=f"wamid.{len(self.sent)}",
        )

    async def mark_read(self, conversation_id: str) -> None:
        self.reads.append(conversation_id)

    async def close_conversation(self, conversation_id: str) -> None:
        self.closed.append(conversation_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def signals() -> LocalSignalBus:
    return LocalSignalBus()


@pytest.fixture
def router(clock: FakeClock) -> NotificationRouter:
    return NotificationRouter(clock, retention_seconds=300, sweep_interval=60)


@pytest.fixture
def reconciler(signals: LocalSignalBus) -> TranscriptReconciler:
    return TranscriptReconciler(signals, orphan_limit=100)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def manager_factory(transport, router, clock, signals, reconciler):
    router.attach(reconciler.handle_frame)

    def _make(**kwargs: Any) -> ConnectionManager:
        params: dict[str, Any] = {
            "url": "ws://chat.test/ws",
            "tenant_id": "biz-1",
            "credential": "secret",
            "base_delay": 1.0,
            "max_delay": 30.0,
            "max_attempts": 5,
            "signals": signals,
        }
        params.update(kwargs)
        return ConnectionManager(transport, router, clock, **params)

    return _make
