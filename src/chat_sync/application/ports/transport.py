from __future__ import annotations

from typing import Protocol


class TransportConnection(Protocol):
    """One open event-stream connection.

    ``recv`` raises ``TransportClosedError`` once the peer or the network ends
    the connection; other failures surface as ``TransportError``.
    """

    async def recv(self) -> str | bytes: ...

    async def send(self, data: str) -> None: ...

    async def close(self, code: int, reason: str = "") -> None: ...


class Transport(Protocol):
    async def open(self, url: str) -> TransportConnection: ...
