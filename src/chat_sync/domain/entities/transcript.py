from __future__ import annotations

import bisect
import itertools
from datetime import datetime

from chat_sync.domain.entities.message import Message


class Transcript:
    """Messages of one conversation, ordered by timestamp and unique by identity.

    Entries sharing any identity key collapse into one. Equal timestamps keep
    arrival order.
    """

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        self._entries: dict[int, Message] = {}
        self._order: list[tuple[datetime, int]] = []
        self._index: dict[str, int] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def find(self, key: str) -> Message | None:
        seq = self._index.get(key)
        return self._entries[seq] if seq is not None else None

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self._entries[seq] for _, seq in self._order)

    def upsert(self, message: Message) -> tuple[Message, bool]:
        """Insert or merge by identity. Returns (stored message, inserted)."""
        seqs = sorted({self._index[k] for k in message.identity_keys if k in self._index})
        if not seqs:
            self._insert(next(self._seq), message)
            return message, True

        primary, *others = seqs
        merged = self._entries[primary]
        for seq in others:
            merged = merged.merged_with(self._entries[seq])
            self._remove(seq)
        merged = merged.merged_with(message)
        self._update(primary, merged)
        return merged, False

    def replace(self, key: str, message: Message) -> None:
        seq = self._index[key]
        self._update(seq, message)

    def _insert(self, seq: int, message: Message) -> None:
        self._entries[seq] = message
        bisect.insort(self._order, (message.timestamp, seq))
        for key in message.identity_keys:
            self._index[key] = seq

    def _remove(self, seq: int) -> None:
        message = self._entries.pop(seq)
        pos = bisect.bisect_left(self._order, (message.timestamp, seq))
        del self._order[pos]
        for key in message.identity_keys:
            if self._index.get(key) == seq:
                del self._index[key]

    def _update(self, seq: int, message: Message) -> None:
        old = self._entries[seq]
        if old.timestamp != message.timestamp:
            pos = bisect.bisect_left(self._order, (old.timestamp, seq))
            del self._order[pos]
            bisect.insort(self._order, (message.timestamp, seq))
        for key in old.identity_keys:
            if self._index.get(key) == seq:
                del self._index[key]
        self._entries[seq] = message
        for key in message.identity_keys:
            self._index[key] = seq
