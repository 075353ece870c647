from __future__ import annotations

from typing import Protocol


class SignalPublisher(Protocol):
    """Same-process broadcast of domain events to sibling views."""

    def publish(self, event: object) -> None: ...
