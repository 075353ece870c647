from __future__ import annotations

from dataclasses import dataclass

from chat_sync.domain.value_objects.enums import ConnectionStatus


@dataclass(frozen=True, slots=True)
class ConnectionStatusChanged:
    status: ConnectionStatus
    attempt: int = 0
    delay: float | None = None
    close_code: int | None = None
    exhausted: bool = False
