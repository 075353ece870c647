"""Notification router: dedupe, status coalescing and fan-out of inbound frames."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Iterable

from chat_sync.application.dto.frames import NotificationFrame
from chat_sync.application.ports.clock import Clock
from chat_sync.application.routing.dedupe import SeenSet, compute_dedupe_key
from chat_sync.domain.value_objects.enums import FrameKind
from chat_sync.domain.value_objects.ids import DedupeKey
from chat_sync.domain.value_objects.status_lattice import supersedes

logger = logging.getLogger(__name__)

FrameCallback = Callable[[NotificationFrame], None]


class NotificationRouter:
    """Routes frames from the connection to the reconciler and UI subscribers.

    Frames are queued and dispatched in arrival order. A frame routed while
    another is being dispatched (or as part of ``route_many``) waits in the
    queue, and a queued status update for a message is replaced by a later
    one carrying a higher status instead of being dispatched twice.
    """

    def __init__(
        self,
        clock: Clock,
        *,
        retention_seconds: float,
        sweep_interval: float,
    ) -> None:
        self._clock = clock
        self._seen = SeenSet(retention_seconds)
        self._sweep_interval = sweep_interval
        self._sinks: list[FrameCallback] = []
        self._subscribers: dict[FrameKind, dict[FrameCallback, int]] = {}
        self._queue: deque[DedupeKey] = deque()
        self._pending: dict[DedupeKey, NotificationFrame] = {}
        self._slot_keys: dict[DedupeKey, list[DedupeKey]] = {}
        self._pending_status: dict[str, DedupeKey] = {}
        self._inflight: set[DedupeKey] = set()
        self._dispatching = False
        self._sweeper: asyncio.Task[None] | None = None

    # --- subscriptions ---

    def attach(self, sink: FrameCallback) -> None:
        """Register an always-on sink that receives every routed frame."""
        self._sinks.append(sink)

    def subscribe(self, kind: FrameKind, callback: FrameCallback) -> Callable[[], None]:
        counts = self._subscribers.setdefault(kind, {})
        counts[callback] = counts.get(callback, 0) + 1
        return lambda: self.unsubscribe(kind, callback)

    def unsubscribe(self, kind: FrameKind, callback: FrameCallback) -> None:
        counts = self._subscribers.get(kind)
        if not counts or callback not in counts:
            return
        counts[callback] -= 1
        if counts[callback] <= 0:
            del counts[callback]
        if not counts:
            del self._subscribers[kind]

    def subscriber_count(self, kind: FrameKind) -> int:
        return sum(self._subscribers.get(kind, {}).values())

    # --- routing ---

    def route(self, frame: NotificationFrame) -> bool:
        """Route one frame. Returns False if it was dropped as a duplicate."""
        accepted = self._enqueue(frame)
        self._drain()
        return accepted

    def route_many(self, frames: Iterable[NotificationFrame]) -> int:
        accepted = sum(1 for frame in frames if self._enqueue(frame))
        self._drain()
        return accepted

    def reset(self) -> None:
        """Forget dedupe history, e.g. after a fresh connection."""
        self._seen.clear()

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def _enqueue(self, frame: NotificationFrame) -> bool:
        key = compute_dedupe_key(frame)
        if key in self._seen:
            logger.debug("Duplicate frame dropped: %s", key)
            return False
        self._seen.add(key, self._clock.monotonic())
        self._inflight.add(key)

        if frame.kind == FrameKind.STATUS_UPDATE and frame.message_id and frame.status:
            queued_key = self._pending_status.get(frame.message_id)
            if queued_key is not None:
                queued = self._pending[queued_key]
                if queued.status is None or supersedes(frame.status, queued.status):
                    self._pending[queued_key] = frame
                self._slot_keys[queued_key].append(key)
                logger.debug(
                    "Coalesced status update for %s: %s -> %s",
                    frame.message_id, frame.status, self._pending[queued_key].status,
                )
                return True
            self._pending_status[frame.message_id] = key

        self._pending[key] = frame
        self._slot_keys[key] = [key]
        self._queue.append(key)
        return True

    def _drain(self) -> None:
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                key = self._queue.popleft()
                frame = self._pending.pop(key)
                for k in self._slot_keys.pop(key):
                    self._inflight.discard(k)
                if frame.message_id and self._pending_status.get(frame.message_id) == key:
                    del self._pending_status[frame.message_id]
                self._dispatch(frame)
        finally:
            self._dispatching = False

    def _dispatch(self, frame: NotificationFrame) -> None:
        callbacks = [*self._sinks, *self._subscribers.get(frame.kind, {})]
        for callback in callbacks:
            try:
                callback(frame)
            except Exception:
                logger.exception("Frame subscriber failed for %s", frame.kind)

    # --- seen-set maintenance ---

    def sweep(self) -> int:
        return self._seen.sweep(self._clock.monotonic(), pinned=self._inflight)

    async def start(self) -> None:
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="dedupe-sweeper")
        logger.info("Dedupe sweeper started (interval=%.1fs)", self._sweep_interval)

    async def stop(self) -> None:
        if self._sweeper:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
            logger.info("Dedupe sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await self._clock.sleep(self._sweep_interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Dedupe sweep failed")
