"""Event-stream connection manager: one connection per session, backoff reconnect."""
from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import urlencode

from chat_sync.application.exceptions import (
    FrameDecodeError,
    InvalidTransitionError,
    TransportClosedError,
    TransportError,
)
from chat_sync.application.ports.bus import SignalPublisher
from chat_sync.application.ports.clock import Clock
from chat_sync.application.ports.transport import Transport, TransportConnection
from chat_sync.application.routing.router import NotificationRouter
from chat_sync.domain.events.connection_status_changed import ConnectionStatusChanged
from chat_sync.domain.value_objects.enums import ConnectionStatus
from chat_sync.domain.value_objects.ids import ABNORMAL_CLOSURE, NORMAL_CLOSURE
from chat_sync.infrastructure.bus.serializer import serialize_frame
from chat_sync.infrastructure.ws.protocol import parse_frame

logger = logging.getLogger(__name__)

_S = ConnectionStatus

TRANSITIONS: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    _S.DISCONNECTED: frozenset({_S.CONNECTING, _S.CLOSED}),
    _S.CONNECTING: frozenset({_S.CONNECTED, _S.RECONNECTING, _S.DISCONNECTED, _S.CLOSED}),
    _S.CONNECTED: frozenset({_S.RECONNECTING, _S.DISCONNECTED, _S.CLOSED, _S.CONNECTING}),
    _S.RECONNECTING: frozenset({_S.CONNECTING, _S.DISCONNECTED, _S.CLOSED}),
    _S.CLOSED: frozenset({_S.CONNECTING}),
}


def backoff_delay(failures: int, base: float, cap: float) -> float:
    return min(base * (2 ** failures), cap)


class ConnectionManager:
    """Owns the session's single event-stream connection.

    Transport failures never propagate out of this class: they end in a
    scheduled retry or, once ``max_attempts`` retries have failed, in a
    terminal ``DISCONNECTED`` status that only ``reconnect()`` leaves.
    """

    def __init__(
        self,
        transport: Transport,
        router: NotificationRouter,
        clock: Clock,
        *,
        url: str,
        tenant_id: str | None,
        credential: str | None,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        max_attempts: int = 5,
        signals: SignalPublisher | None = None,
    ) -> None:
        self._transport = transport
        self._router = router
        self._clock = clock
        self._url = url
        self.tenant_id = tenant_id
        self._credential = credential
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._max_attempts = max_attempts
        self._signals = signals

        self._state = ConnectionStatus.DISCONNECTED
        self._conn: TransportConnection | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._failures = 0
        self._current_delay: float | None = None
        self._retry_task: asyncio.Task[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None

    # --- state ---

    @property
    def state(self) -> ConnectionStatus:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionStatus.CONNECTED

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def current_delay(self) -> float | None:
        return self._current_delay

    @property
    def connect_pending(self) -> bool:
        return self._connect_task is not None and not self._connect_task.done()

    @property
    def retry_pending(self) -> bool:
        return self._retry_task is not None and not self._retry_task.done()

    def _set_state(self, new: ConnectionStatus, **details: Any) -> None:
        if new == self._state:
            return
        if new not in TRANSITIONS[self._state]:
            raise InvalidTransitionError(f"{self._state} -> {new}")
        logger.debug("Connection state %s -> %s", self._state, new)
        self._state = new
        if self._signals is not None:
            try:
                self._signals.publish(ConnectionStatusChanged(status=new, **details))
            except Exception:
                logger.exception("Connection status listener failed")

    def _build_url(self) -> str:
        query = urlencode({"businessId": self.tenant_id, "token": self._credential})
        sep = "&" if "?" in self._url else "?"
        return f"{self._url}{sep}{query}"

    # --- lifecycle ---

    async def connect(self) -> None:
        if self.connect_pending:
            logger.debug("Connection already in progress, skipping")
            return
        if self._state == ConnectionStatus.CONNECTED:
            return
        if not self.tenant_id or not self._credential:
            logger.warning("Missing tenant id or credential, not connecting")
            return

        self._cancel_retry()
        self._set_state(ConnectionStatus.CONNECTING, attempt=self._failures)
        stale, self._conn = self._conn, None
        task = self._connect_task = asyncio.create_task(self._handshake(stale), name="event-stream-connect")
        # returns normally when disconnect() or reconnect() cancels the handshake
        await asyncio.wait({task})

    async def _handshake(self, stale: TransportConnection | None) -> None:
        await self._drop_connection(stale, NORMAL_CLOSURE, "superseded")
        try:
            conn = await self._transport.open(self._build_url())
        except (TransportError, OSError) as exc:
            logger.warning("Connect failed: %s", exc)
            self._on_close(ABNORMAL_CLOSURE)
            return

        self._conn = conn
        self._failures = 0
        self._current_delay = None
        self._router.reset()
        self._set_state(ConnectionStatus.CONNECTED)
        logger.info("Event stream connected (tenant=%s)", self.tenant_id)
        self._reader_task = asyncio.create_task(self._read_loop(conn), name="event-stream-reader")

    async def disconnect(self) -> None:
        """Close deliberately and cancel any pending retry. Idempotent."""
        self._cancel_retry()
        await self._cancel_connect()
        conn, self._conn = self._conn, None
        self._cancel_reader()
        await self._drop_connection(conn, NORMAL_CLOSURE, "client disconnect")
        self._current_delay = None
        if self._state != ConnectionStatus.CLOSED:
            self._set_state(ConnectionStatus.CLOSED, close_code=NORMAL_CLOSURE)
            logger.info("Event stream closed")

    async def reconnect(self) -> None:
        """User-triggered reconnect: resets backoff and connects immediately.

        A handshake already in flight is cancelled first, so at most one
        ``open`` is ever outstanding.
        """
        logger.info("Manual reconnect requested")
        self._cancel_retry()
        await self._cancel_connect()
        self._failures = 0
        self._current_delay = None
        conn, self._conn = self._conn, None
        self._cancel_reader()
        await self._drop_connection(conn, NORMAL_CLOSURE, "reconnect")
        if self._state == ConnectionStatus.CONNECTED:
            self._set_state(ConnectionStatus.CONNECTING)
        await self.connect()

    async def send(self, payload: dict[str, Any]) -> bool:
        """Best-effort send. False when not connected or the write fails."""
        conn = self._conn
        if conn is None or self._state != ConnectionStatus.CONNECTED:
            logger.debug("Not connected, frame not sent: %s", payload.get("type"))
            return False
        try:
            await conn.send(serialize_frame(payload))
        except (TransportError, OSError) as exc:
            logger.debug("Send failed: %s", exc)
            return False
        return True

    # --- close / retry path ---

    def _on_close(self, code: int) -> None:
        if code == NORMAL_CLOSURE:
            self._set_state(ConnectionStatus.CLOSED, close_code=code)
            logger.info("Event stream closed normally")
            return

        if self._failures >= self._max_attempts:
            self._current_delay = None
            self._set_state(
                ConnectionStatus.DISCONNECTED,
                attempt=self._failures,
                close_code=code,
                exhausted=True,
            )
            logger.error("Max reconnection attempts reached (%d)", self._max_attempts)
            return

        delay = backoff_delay(self._failures, self._base_delay, self._max_delay)
        self._failures += 1
        self._current_delay = delay
        self._set_state(
            ConnectionStatus.RECONNECTING,
            attempt=self._failures,
            delay=delay,
            close_code=code,
        )
        logger.info(
            "Reconnecting in %.1fs (attempt %d/%d, code=%d)",
            delay, self._failures, self._max_attempts, code,
        )
        self._retry_task = asyncio.create_task(self._retry_after(delay), name="event-stream-retry")

    async def _retry_after(self, delay: float) -> None:
        await self._clock.sleep(delay)
        self._retry_task = None
        await self.connect()

    async def _read_loop(self, conn: TransportConnection) -> None:
        code = ABNORMAL_CLOSURE
        try:
            while True:
                raw = await conn.recv()
                self._handle_raw(raw)
        except TransportClosedError as exc:
            code = exc.code
            logger.info("Event stream disconnected: %d %s", exc.code, exc.reason)
        except (TransportError, OSError) as exc:
            logger.warning("Event stream error: %s", exc)

        if conn is self._conn:
            self._conn = None
            self._reader_task = None
            self._on_close(code)

    def _handle_raw(self, raw: str | bytes) -> None:
        try:
            frame = parse_frame(raw)
        except FrameDecodeError as exc:
            logger.warning("Dropping malformed frame: %s", exc.detail)
            return
        if frame is None:
            return
        self._router.route(frame)

    def _cancel_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
        self._retry_task = None

    def _cancel_reader(self) -> None:
        task, self._reader_task = self._reader_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _cancel_connect(self) -> None:
        task, self._connect_task = self._connect_task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.wait({task})

    async def _drop_connection(
        self,
        conn: TransportConnection | None,
        code: int,
        reason: str,
    ) -> None:
        if conn is None:
            return
        try:
            await conn.close(code, reason)
        except (TransportError, OSError) as exc:
            logger.debug("Error while closing connection: %s", exc)
