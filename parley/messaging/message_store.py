"""File-based JSON storage for messages.

Storage path: ``<data_dir>/messaging/messages.json``.  Messages are never
physically removed; soft-deleted rows keep their content on disk and are
tombstoned on the way out.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from parley.errors import Forbidden, NotFound, ValidationError
from parley.messaging.conversation_store import ConversationStore
from parley.messaging.models import Message, utcnow
from parley.storage import Database

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 5000
DEFAULT_PAGE_SIZE = 50


def normalize_content(content: str, max_length: int = MAX_CONTENT_LENGTH) -> str:
    """Trim *content* and enforce the 1..max_length bound."""
    if not isinstance(content, str):
        raise ValidationError("Message content is required")
    content = content.strip()
    if not content:
        raise ValidationError("Message content is required")
    if len(content) > max_length:
        raise ValidationError(
            f"Message exceeds maximum length of {max_length} characters"
        )
    return content


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp to an aware UTC datetime.

    A trailing ``Z`` is accepted and naive values are taken as UTC.  Anything
    else raises ``ValidationError``.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid cursor: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class MessageStore:
    """Message persistence, cursor pagination and read-time counts."""

    def __init__(
        self,
        db: Database,
        conversations: ConversationStore,
        max_length: int = MAX_CONTENT_LENGTH,
    ) -> None:
        self._db = db
        self._conversations = conversations
        self._max_length = max_length

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _message_from_dict(d: dict) -> Message:
        return Message(
            id=d["id"],
            conversation_id=d["conversation_id"],
            sender_id=d["sender_id"],
            content=d.get("content", ""),
            seq=d.get("seq", 0),
            created_at=d.get("created_at", ""),
            edited_at=d.get("edited_at"),
            deleted_at=d.get("deleted_at"),
        )

    @staticmethod
    def _message_to_dict(m: Message) -> dict:
        return {
            "id": m.id,
            "conversation_id": m.conversation_id,
            "sender_id": m.sender_id,
            "content": m.content,
            "seq": m.seq,
            "created_at": m.created_at,
            "edited_at": m.edited_at,
            "deleted_at": m.deleted_at,
        }

    def _in_conversation(self, conversation_id: str) -> list[Message]:
        """All messages of a conversation in store order (oldest first)."""
        messages = [
            self._message_from_dict(d)
            for d in self._db.read("messages")
            if d["conversation_id"] == conversation_id
        ]
        messages.sort(key=lambda m: m.seq)
        return messages

    def _mutate(self, message_id: str, caller_id: str, **changes) -> Message:
        with self._db.transaction():
            rows = self._db.read("messages")
            for d in rows:
                if d["id"] != message_id:
                    continue
                if d.get("deleted_at") is not None:
                    break
                if d["sender_id"] != caller_id:
                    raise Forbidden()
                d.update(changes)
                self._db.write("messages", rows)
                return self._message_from_dict(d)
        raise NotFound("Message not found")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def send(self, conversation_id: str, sender_id: str, content: str) -> Message:
        """Persist a message and bump the conversation's ``updated_at``."""
        content = normalize_content(content, self._max_length)
        with self._db.transaction():
            participant = self._conversations.get_participant(conversation_id, sender_id)
            if participant is None or not participant.is_active:
                raise Forbidden()

            rows = self._db.read("messages")
            previous = [d for d in rows if d["conversation_id"] == conversation_id]
            seq = max((d.get("seq", 0) for d in previous), default=0) + 1
            created_at = utcnow()
            last_created = max((d.get("created_at", "") for d in previous), default="")
            if created_at < last_created:
                created_at = last_created

            message = Message(
                id=str(uuid.uuid4()),
                conversation_id=conversation_id,
                sender_id=sender_id,
                content=content,
                seq=seq,
                created_at=created_at,
            )
            rows.append(self._message_to_dict(message))
            self._db.write("messages", rows)
            self._conversations.touch(conversation_id, created_at)

        logger.debug("stored message %s in %s (seq %d)", message.id, conversation_id, seq)
        return message

    def get(self, message_id: str) -> Optional[Message]:
        for d in self._db.read("messages"):
            if d["id"] == message_id:
                return self._message_from_dict(d)
        return None

    def list(
        self,
        conversation_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        before: Optional[str] = None,
    ) -> list[Message]:
        """Return up to *limit* messages older than *before*, newest first.

        *before* is the id of a message in this conversation, or an ISO-8601
        timestamp compared as an instant.  Any other value, including an id
        from another conversation, raises ``ValidationError``.  Deleted
        messages are returned tombstoned.
        """
        messages = self._in_conversation(conversation_id)

        if before:
            cursor = next((m for m in messages if m.id == before), None)
            if cursor is not None:
                messages = [m for m in messages if m.seq < cursor.seq]
            else:
                cutoff = parse_timestamp(before)
                messages = [m for m in messages if parse_timestamp(m.created_at) < cutoff]

        page = list(reversed(messages))[: max(limit, 0)]
        return [m.tombstoned() for m in page]

    def edit(self, message_id: str, caller_id: str, new_content: str) -> Message:
        content = normalize_content(new_content, self._max_length)
        return self._mutate(message_id, caller_id, content=content, edited_at=utcnow())

    def soft_delete(self, message_id: str, caller_id: str) -> Message:
        message = self._mutate(message_id, caller_id, deleted_at=utcnow())
        return message.tombstoned()

    def last_message(self, conversation_id: str) -> Optional[Message]:
        for m in reversed(self._in_conversation(conversation_id)):
            if not m.is_deleted:
                return m
        return None

    def count_unread(self, conversation_id: str, user_id: str, since: Optional[str]) -> int:
        """Messages from other senders newer than *since* that are not deleted."""
        return sum(
            1
            for m in self._in_conversation(conversation_id)
            if not m.is_deleted
            and m.sender_id != user_id
            and (since is None or m.created_at > since)
        )
