"""Frame identity and the seen-set used to drop re-delivered frames.

Key rules, first match wins:

1. the frame carries an explicit id: ``id:<frame id>``
2. the frame names an entity (message, status-of-message, conversation):
   ``<kind>|<conversation>|<entity>|<server timestamp>``
3. otherwise ``random:<uuid>``, so the frame is always treated as new
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Collection

from chat_sync.application.dto.frames import NotificationFrame
from chat_sync.domain.value_objects.ids import DedupeKey

logger = logging.getLogger(__name__)


def compute_dedupe_key(frame: NotificationFrame) -> DedupeKey:
    if frame.frame_id:
        return DedupeKey(f"id:{frame.frame_id}")
    entity = frame.entity_id
    if entity:
        ts = frame.server_timestamp.isoformat() if frame.server_timestamp else ""
        return DedupeKey(f"{frame.kind}|{frame.conversation_id or ''}|{entity}|{ts}")
    return DedupeKey(f"random:{uuid.uuid4().hex}")


class SeenSet:
    """Dedupe keys with the monotonic time they were first seen."""

    def __init__(self, retention_seconds: float) -> None:
        self._retention = retention_seconds
        self._seen: dict[DedupeKey, float] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, key: object) -> bool:
        return key in self._seen

    def add(self, key: DedupeKey, now: float) -> None:
        self._seen.setdefault(key, now)

    def clear(self) -> None:
        self._seen.clear()

    def sweep(self, now: float, pinned: Collection[DedupeKey] = ()) -> int:
        """Evict keys older than the retention window, except ``pinned`` ones."""
        cutoff = now - self._retention
        expired = [k for k, seen_at in self._seen.items() if seen_at < cutoff and k not in pinned]
        for key in expired:
            del self._seen[key]
        if expired:
            logger.debug("Swept %d dedupe keys (remaining=%d)", len(expired), len(self._seen))
        return len(expired)
