"""File-based JSON storage for conversations and their participants.

Storage path: ``<data_dir>/messaging/`` with:
- ``conversations.json`` -- list of conversation dicts
- ``participants.json`` -- list of participant dicts (one per conversation/user)
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional

from parley.errors import Conflict, NotFound, ValidationError
from parley.messaging.models import (
    Conversation,
    Participant,
    ParticipantRole,
    ParticipantStatus,
    pair_key,
    utcnow,
)
from parley.storage import Database

logger = logging.getLogger(__name__)

MIN_GROUP_SIZE = 3


class ConversationStore:
    """Conversations and participant rows.

    Callers share a :class:`~parley.storage.Database` with the
    :class:`~parley.messaging.message_store.MessageStore` so that both see
    the same lock.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _conversation_from_dict(d: dict) -> Conversation:
        return Conversation(
            id=d["id"],
            is_group=d.get("is_group", False),
            created_by=d.get("created_by", ""),
            name=d.get("name"),
            pair_key=d.get("pair_key"),
            created_at=d.get("created_at", ""),
            updated_at=d.get("updated_at", ""),
        )

    @staticmethod
    def _conversation_to_dict(c: Conversation) -> dict:
        return {
            "id": c.id,
            "is_group": c.is_group,
            "created_by": c.created_by,
            "name": c.name,
            "pair_key": c.pair_key,
            "created_at": c.created_at,
            "updated_at": c.updated_at,
        }

    @staticmethod
    def _participant_from_dict(d: dict) -> Participant:
        try:
            role = ParticipantRole(d.get("role", "member"))
        except ValueError:
            role = ParticipantRole.member
        try:
            status = ParticipantStatus(d.get("status", "accepted"))
        except ValueError:
            status = ParticipantStatus.accepted
        return Participant(
            conversation_id=d["conversation_id"],
            user_id=d["user_id"],
            role=role,
            status=status,
            joined_at=d.get("joined_at", ""),
            left_at=d.get("left_at"),
            is_muted=d.get("is_muted", False),
            last_read_at=d.get("last_read_at"),
        )

    @staticmethod
    def _participant_to_dict(p: Participant) -> dict:
        return {
            "conversation_id": p.conversation_id,
            "user_id": p.user_id,
            "role": p.role.value,
            "status": p.status.value,
            "joined_at": p.joined_at,
            "left_at": p.left_at,
            "is_muted": p.is_muted,
            "last_read_at": p.last_read_at,
        }

    def _update_participant(self, conversation_id: str, user_id: str, **changes) -> Participant:
        """Apply *changes* to one participant row and return it."""
        with self._db.transaction():
            rows = self._db.read("participants")
            for d in rows:
                if d["conversation_id"] == conversation_id and d["user_id"] == user_id:
                    d.update(changes)
                    self._db.write("participants", rows)
                    return self._participant_from_dict(d)
        raise NotFound("Participant not found")

    def _find_active_pair(self, key: str, participants: list[dict]) -> Optional[dict]:
        for d in self._db.read("conversations"):
            if d.get("is_group") or d.get("pair_key") != key:
                continue
            active = [
                p for p in participants
                if p["conversation_id"] == d["id"] and p.get("left_at") is None
            ]
            if len(active) == 2:
                return d
        return None

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create(
        self,
        participant_ids: Iterable[str],
        created_by: str,
        is_group: bool = False,
        name: Optional[str] = None,
        pending_ids: Iterable[str] = (),
    ) -> tuple[Conversation, bool]:
        """Create a conversation, or return the existing active 1:1.

        Returns ``(conversation, created)``.  The creator is always a
        participant.  The dedup lookup and the insert run under one lock.
        """
        ids = list(dict.fromkeys([created_by, *participant_ids]))
        pending = set(pending_ids)

        if is_group:
            if len(ids) < MIN_GROUP_SIZE:
                raise ValidationError("Group conversations require at least 3 participants")
            name = (name or "").strip()
            if not name:
                raise ValidationError("Group conversations require a name")
        else:
            if len(ids) != 2:
                raise ValidationError("Direct conversations require exactly 2 participants")
            name = None

        key = None if is_group else pair_key(ids[0], ids[1])

        with self._db.transaction():
            participants = self._db.read("participants")
            if key is not None:
                existing = self._find_active_pair(key, participants)
                if existing is not None:
                    return self._conversation_from_dict(existing), False

            conversation = Conversation(
                id=str(uuid.uuid4()),
                is_group=is_group,
                created_by=created_by,
                name=name,
                pair_key=key,
            )
            conversations = self._db.read("conversations")
            conversations.append(self._conversation_to_dict(conversation))

            for user_id in ids:
                role = (
                    ParticipantRole.admin
                    if is_group and user_id == created_by
                    else ParticipantRole.member
                )
                status = (
                    ParticipantStatus.pending
                    if user_id in pending and user_id != created_by
                    else ParticipantStatus.accepted
                )
                participants.append(self._participant_to_dict(Participant(
                    conversation_id=conversation.id,
                    user_id=user_id,
                    role=role,
                    status=status,
                    joined_at=conversation.created_at,
                )))

            self._db.write("conversations", conversations)
            self._db.write("participants", participants)

        logger.info(
            "created %s conversation %s with %d participants",
            "group" if is_group else "direct", conversation.id, len(ids),
        )
        return conversation, True

    def get(self, conversation_id: str) -> Optional[Conversation]:
        for d in self._db.read("conversations"):
            if d["id"] == conversation_id:
                return self._conversation_from_dict(d)
        return None

    def list_for_user(self, user_id: str) -> list[Conversation]:
        """Conversations the user actively participates in, newest activity first."""
        active_ids = {
            d["conversation_id"]
            for d in self._db.read("participants")
            if d["user_id"] == user_id and d.get("left_at") is None
        }
        conversations = [
            self._conversation_from_dict(d)
            for d in self._db.read("conversations")
            if d["id"] in active_ids
        ]
        conversations.sort(key=lambda c: c.updated_at, reverse=True)
        return conversations

    def touch(self, conversation_id: str, at: Optional[str] = None) -> None:
        """Bump ``updated_at``.  Never moves it backwards."""
        at = at or utcnow()
        with self._db.transaction():
            rows = self._db.read("conversations")
            for d in rows:
                if d["id"] == conversation_id:
                    if at > d.get("updated_at", ""):
                        d["updated_at"] = at
                        self._db.write("conversations", rows)
                    return
        raise NotFound("Conversation not found")

    def rename(self, conversation_id: str, name: str) -> Conversation:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Group name cannot be empty")
        with self._db.transaction():
            rows = self._db.read("conversations")
            for d in rows:
                if d["id"] == conversation_id:
                    if not d.get("is_group"):
                        raise ValidationError("Only group conversations can be renamed")
                    d["name"] = name
                    d["updated_at"] = utcnow()
                    self._db.write("conversations", rows)
                    return self._conversation_from_dict(d)
        raise NotFound("Conversation not found")

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    def get_participant(self, conversation_id: str, user_id: str) -> Optional[Participant]:
        for d in self._db.read("participants"):
            if d["conversation_id"] == conversation_id and d["user_id"] == user_id:
                return self._participant_from_dict(d)
        return None

    def list_participants(self, conversation_id: str, active_only: bool = True) -> list[Participant]:
        return [
            self._participant_from_dict(d)
            for d in self._db.read("participants")
            if d["conversation_id"] == conversation_id
            and (not active_only or d.get("left_at") is None)
        ]

    def participations_for_user(self, user_id: str) -> list[Participant]:
        """Active participant rows for *user_id* across all conversations."""
        return [
            self._participant_from_dict(d)
            for d in self._db.read("participants")
            if d["user_id"] == user_id and d.get("left_at") is None
        ]

    def add_participant(self, conversation_id: str, user_id: str) -> Participant:
        """Add *user_id* to a group, reactivating their old row if they left."""
        with self._db.transaction():
            conversation = self.get(conversation_id)
            if conversation is None:
                raise NotFound("Conversation not found")
            if not conversation.is_group:
                raise ValidationError("Participants can only be added to group conversations")

            rows = self._db.read("participants")
            for d in rows:
                if d["conversation_id"] == conversation_id and d["user_id"] == user_id:
                    if d.get("left_at") is None:
                        raise Conflict("User is already a participant")
                    d["left_at"] = None
                    d["joined_at"] = utcnow()
                    d["role"] = ParticipantRole.member.value
                    d["status"] = ParticipantStatus.accepted.value
                    self._db.write("participants", rows)
                    return self._participant_from_dict(d)

            participant = Participant(conversation_id=conversation_id, user_id=user_id)
            rows.append(self._participant_to_dict(participant))
            self._db.write("participants", rows)
            return participant

    def leave(self, conversation_id: str, user_id: str) -> bool:
        """Mark the user's row as left.  Returns False if it had already left."""
        with self._db.transaction():
            rows = self._db.read("participants")
            for d in rows:
                if d["conversation_id"] == conversation_id and d["user_id"] == user_id:
                    if d.get("left_at") is not None:
                        return False
                    d["left_at"] = utcnow()
                    self._db.write("participants", rows)
                    return True
        raise NotFound("Participant not found")

    def set_muted(self, conversation_id: str, user_id: str, muted: bool) -> Participant:
        return self._update_participant(conversation_id, user_id, is_muted=bool(muted))

    def mark_read(self, conversation_id: str, user_id: str, at: Optional[str] = None) -> Participant:
        return self._update_participant(conversation_id, user_id, last_read_at=at or utcnow())

    def accept(self, conversation_id: str, user_id: str) -> Participant:
        return self._update_participant(
            conversation_id, user_id, status=ParticipantStatus.accepted.value
        )
