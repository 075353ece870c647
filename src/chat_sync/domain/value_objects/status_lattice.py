"""Delivery status ordering: sending < sent < delivered < read, failed absorbs."""
from __future__ import annotations

from chat_sync.domain.value_objects.enums import MessageStatus

_RANK: dict[MessageStatus, int] = {
    MessageStatus.SENDING: 0,
    MessageStatus.SENT: 1,
    MessageStatus.DELIVERED: 2,
    MessageStatus.READ: 3,
}


def is_advance(current: MessageStatus, new: MessageStatus) -> bool:
    """True if moving from ``current`` to ``new`` is allowed."""
    if current == MessageStatus.FAILED:
        return False
    if new == MessageStatus.FAILED:
        return True
    return _RANK[new] > _RANK[current]


def resolve_status(current: MessageStatus, new: MessageStatus) -> MessageStatus:
    return new if is_advance(current, new) else current


def supersedes(candidate: MessageStatus, queued: MessageStatus) -> bool:
    """Coalescing order for queued updates; failed outranks every delivery status."""
    if queued == MessageStatus.FAILED:
        return False
    if candidate == MessageStatus.FAILED:
        return True
    return _RANK[candidate] > _RANK[queued]
