"""In-process signal bus: lets sibling views react without a refetch."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")
SignalCallback = Callable[[Any], None]


class LocalSignalBus:
    """Synchronous publish/subscribe keyed by event class.

    A failing listener is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._listeners: dict[type, list[SignalCallback]] = {}

    def subscribe(self, event_type: type[E], callback: Callable[[E], None]) -> Callable[[], None]:
        self._listeners.setdefault(event_type, []).append(callback)
        return lambda: self.unsubscribe(event_type, callback)

    def unsubscribe(self, event_type: type, callback: SignalCallback) -> None:
        listeners = self._listeners.get(event_type)
        if listeners and callback in listeners:
            listeners.remove(callback)

    def publish(self, event: object) -> None:
        for callback in list(self._listeners.get(type(event), ())):
            try:
                callback(event)
            except Exception:
                logger.exception("Signal listener failed for %s", type(event).__name__)
