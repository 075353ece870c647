"""``websockets``-backed event-stream transport."""
from __future__ import annotations

import logging

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from chat_sync.application.exceptions import TransportClosedError, TransportError
from chat_sync.domain.value_objects.ids import ABNORMAL_CLOSURE

logger = logging.getLogger(__name__)


def _closed(exc: ConnectionClosed) -> TransportClosedError:
    frame = exc.rcvd or exc.sent
    if frame is None:
        return TransportClosedError(ABNORMAL_CLOSURE, "connection lost")
    return TransportClosedError(frame.code, frame.reason)


class WebSocketConnection:
    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws

    async def recv(self) -> str | bytes:
        try:
            return await self._ws.recv()
        except ConnectionClosed as exc:
            raise _closed(exc) from exc
        except WebSocketException as exc:
            raise TransportError(str(exc)) from exc

    async def send(self, data: str) -> None:
        try:
            await self._ws.send(data)
        except ConnectionClosed as exc:
            raise _closed(exc) from exc
        except WebSocketException as exc:
            raise TransportError(str(exc)) from exc

    async def close(self, code: int, reason: str = "") -> None:
        await self._ws.close(code=code, reason=reason)


class WebSocketTransport:
    """Opens client connections with protocol-level heartbeats."""

    def __init__(self, *, heartbeat_seconds: float | None = 30, open_timeout: float = 10) -> None:
        self._heartbeat = heartbeat_seconds
        self._open_timeout = open_timeout

    async def open(self, url: str) -> WebSocketConnection:
        try:
            ws = await connect(
                url,
                ping_interval=self._heartbeat,
                ping_timeout=self._heartbeat,
                open_timeout=self._open_timeout,
            )
        except WebSocketException as exc:
            raise TransportError(f"handshake failed: {exc}") from exc
        logger.debug("WebSocket opened: %s", ws.remote_address)
        return WebSocketConnection(ws)
