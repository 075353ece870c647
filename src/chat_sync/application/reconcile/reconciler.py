"""Transcript reconciler: the in-memory source of truth for open conversations."""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import replace

from chat_sync.application.dto.frames import NotificationFrame
from chat_sync.application.ports.bus import SignalPublisher
from chat_sync.domain.entities.conversation import ConversationSummary
from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.transcript import Transcript
from chat_sync.domain.events.conversation_created import ConversationCreated
from chat_sync.domain.events.conversation_read import ConversationRead
from chat_sync.domain.events.transcript_changed import TranscriptChanged
from chat_sync.domain.value_objects.enums import Direction, FrameKind, MessageStatus
from chat_sync.domain.value_objects.status_lattice import is_advance

logger = logging.getLogger(__name__)


class TranscriptReconciler:
    """Merges routed frames, REST history and local echoes into transcripts.

    Every public method is synchronous and never raises on bad input: frames
    that cannot be applied are logged and ignored.
    """

    def __init__(
        self,
        signals: SignalPublisher | None = None,
        *,
        orphan_limit: int = 1000,
    ) -> None:
        self._signals = signals
        self._transcripts: dict[str, Transcript] = {}
        self._locator: dict[str, str] = {}
        self._conversations: dict[str, ConversationSummary] = {}
        self._orphans: OrderedDict[str, MessageStatus] = OrderedDict()
        self._orphan_limit = orphan_limit
        self._active: str | None = None

    # --- frame sink ---

    def handle_frame(self, frame: NotificationFrame) -> None:
        if frame.kind == FrameKind.NEW_MESSAGE:
            if frame.message is None:
                logger.warning("new_message frame without message body dropped")
                return
            self.apply_new_message(frame.message)
        elif frame.kind == FrameKind.STATUS_UPDATE:
            if not frame.message_id or frame.status is None:
                logger.warning("message_status frame without message id or status dropped")
                return
            self.apply_status_update(frame.message_id, frame.status)
        elif frame.kind == FrameKind.CONVERSATION_CREATED:
            if frame.conversation is not None:
                self.upsert_conversation(frame.conversation)
        # typing frames carry no transcript state

    # --- writes ---

    def apply_new_message(self, message: Message, *, count_unread: bool = True) -> Message:
        transcript = self._transcript_for(message.conversation_id)
        stored, inserted = transcript.upsert(message)
        stored = self._apply_orphans(transcript, stored)
        for key in stored.identity_keys:
            self._locator[key] = message.conversation_id

        read_on_arrival = (
            inserted
            and count_unread
            and stored.direction == Direction.INBOUND
            and stored.conversation_id == self._active
        )
        self._touch_conversation(stored, bump_unread=inserted and count_unread and not read_on_arrival)
        self._publish(TranscriptChanged(
            conversation_id=stored.conversation_id,
            message=stored,
            action="inserted" if inserted else "merged",
        ))
        if read_on_arrival:
            self.mark_read(stored.conversation_id, on_arrival=True)
        return stored

    def apply_status_update(self, message_id: str, status: MessageStatus) -> bool:
        """Advance a message's status. Returns True if the transcript changed."""
        conversation_id = self._locator.get(message_id)
        if conversation_id is None:
            self._hold_orphan(message_id, status)
            return False

        transcript = self._transcripts[conversation_id]
        current = transcript.find(message_id)
        if current is None:
            self._hold_orphan(message_id, status)
            return False
        if not is_advance(current.status, status):
            logger.debug(
                "Stale status for %s ignored: %s -> %s", message_id, current.status, status,
            )
            return False

        updated = replace(current, status=status)
        transcript.replace(message_id, updated)
        self._publish(TranscriptChanged(
            conversation_id=conversation_id, message=updated, action="status",
        ))
        return True

    def load_history(self, conversation_id: str, messages: list[Message]) -> None:
        """Merge a REST history page. History never counts as unread."""
        for message in messages:
            if message.conversation_id != conversation_id:
                message = replace(message, conversation_id=conversation_id)
            self.apply_new_message(message, count_unread=False)

    def confirm_local_echo(self, client_msg_id: str, server_message: Message) -> Message:
        """Attach the server's copy to an optimistic echo.

        Works in either arrival order: if the event stream already delivered
        the server copy, the echo and that copy collapse into one message.
        """
        return self.apply_new_message(
            replace(server_message, client_msg_id=client_msg_id), count_unread=False,
        )

    def fail_local_echo(self, client_msg_id: str) -> bool:
        return self.apply_status_update(client_msg_id, MessageStatus.FAILED)

    def mark_read(self, conversation_id: str, *, on_arrival: bool = False) -> None:
        """Zero the unread counter now and tell sibling views, without a round trip."""
        summary = self._conversations.get(conversation_id) or ConversationSummary(id=conversation_id)
        self._conversations[conversation_id] = replace(summary, unread_count=0)
        self._publish(ConversationRead(conversation_id=conversation_id, on_arrival=on_arrival))

    def set_active(self, conversation_id: str | None) -> None:
        """The conversation currently on screen. Its live inbound messages are read on arrival."""
        self._active = conversation_id

    def upsert_conversation(self, summary: ConversationSummary) -> None:
        known = summary.id in self._conversations
        self._conversations[summary.id] = summary
        if not known:
            self._publish(ConversationCreated(conversation=summary))

    # --- reads ---

    @property
    def active_conversation(self) -> str | None:
        return self._active

    def transcript(self, conversation_id: str) -> tuple[Message, ...]:
        transcript = self._transcripts.get(conversation_id)
        return transcript.snapshot() if transcript else ()

    def find_message(self, key: str) -> Message | None:
        conversation_id = self._locator.get(key)
        if conversation_id is None:
            return None
        return self._transcripts[conversation_id].find(key)

    def unread_count(self, conversation_id: str) -> int:
        summary = self._conversations.get(conversation_id)
        return summary.unread_count if summary else 0

    def conversation(self, conversation_id: str) -> ConversationSummary | None:
        return self._conversations.get(conversation_id)

    def conversations(self) -> list[ConversationSummary]:
        """Known conversations, most recent activity first."""
        return sorted(
            self._conversations.values(),
            key=lambda c: (c.last_message_at is not None, c.last_message_at or 0),
            reverse=True,
        )

    # --- internals ---

    def _transcript_for(self, conversation_id: str) -> Transcript:
        transcript = self._transcripts.get(conversation_id)
        if transcript is None:
            transcript = self._transcripts[conversation_id] = Transcript(conversation_id)
        return transcript

    def _hold_orphan(self, message_id: str, status: MessageStatus) -> None:
        held = self._orphans.get(message_id)
        if held is None or is_advance(held, status):
            self._orphans[message_id] = status
            self._orphans.move_to_end(message_id)
        while len(self._orphans) > self._orphan_limit:
            self._orphans.popitem(last=False)
        logger.debug("Status %s held for unknown message %s", status, message_id)

    def _apply_orphans(self, transcript: Transcript, message: Message) -> Message:
        for key in message.identity_keys:
            held = self._orphans.pop(key, None)
            if held is not None and is_advance(message.status, held):
                message = replace(message, status=held)
                transcript.replace(key, message)
        return message

    def _touch_conversation(self, message: Message, *, bump_unread: bool) -> None:
        summary = self._conversations.get(message.conversation_id)
        if summary is None:
            summary = ConversationSummary(id=message.conversation_id)
        changes: dict[str, object] = {}
        if summary.last_message_at is None or message.timestamp > summary.last_message_at:
            changes["last_message_at"] = message.timestamp
        if bump_unread and message.direction == Direction.INBOUND:
            changes["unread_count"] = summary.unread_count + 1
        self._conversations[message.conversation_id] = replace(summary, **changes)

    def _publish(self, event: object) -> None:
        if self._signals is None:
            return
        try:
            self._signals.publish(event)
        except Exception:
            logger.exception("Signal listener failed for %s", type(event).__name__)
