"""Messaging domain models: conversations, participants, messages."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

TOMBSTONE = "This message was deleted"


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def pair_key(user_a: str, user_b: str) -> str:
    """Order-independent key for a 1:1 conversation between two users."""
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


class ParticipantRole(str, Enum):
    """Role within a conversation.  Only meaningful for groups."""

    admin = "admin"
    member = "member"


class ParticipantStatus(str, Enum):
    """Acceptance state of a conversation invite.

    Distinct from any follow-request state in the social graph: a pending
    participant has been invited into a conversation by someone whose
    messages they have not yet accepted.
    """

    accepted = "accepted"
    pending = "pending"


@dataclass
class Conversation:
    """A messaging thread, either 1:1 or group."""

    id: str
    is_group: bool
    created_by: str
    name: Optional[str] = None
    pair_key: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow()
        if not self.updated_at:
            self.updated_at = self.created_at


@dataclass
class Participant:
    """A user's membership record in a conversation."""

    conversation_id: str
    user_id: str
    role: ParticipantRole = ParticipantRole.member
    status: ParticipantStatus = ParticipantStatus.accepted
    joined_at: str = ""
    left_at: Optional[str] = None
    is_muted: bool = False
    last_read_at: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.joined_at:
            self.joined_at = utcnow()
        if isinstance(self.role, str):
            self.role = ParticipantRole(self.role)
        if isinstance(self.status, str):
            self.status = ParticipantStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.left_at is None


@dataclass
class Message:
    """A single message.  ``seq`` is strictly increasing per conversation."""

    id: str
    conversation_id: str
    sender_id: str
    content: str
    seq: int = 0
    created_at: str = ""
    edited_at: Optional[str] = None
    deleted_at: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow()

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_edited(self) -> bool:
        return self.edited_at is not None

    def tombstoned(self) -> "Message":
        """Return the read-path view: deleted messages lose their content."""
        if not self.is_deleted:
            return self
        return replace(self, content=TOMBSTONE)


# ---------------------------------------------------------------------------
# Hydrated views
# ---------------------------------------------------------------------------


@dataclass
class UserSummary:
    """Profile fields attached to participants and message senders."""

    id: str
    display_name: str = ""
    avatar_url: str = ""


@dataclass
class ParticipantDetails:
    participant: Participant
    profile: Optional[UserSummary] = None


@dataclass
class MessageDetails:
    message: Message
    sender: Optional[UserSummary] = None


@dataclass
class ConversationDetails:
    """A conversation with participant profiles and read-time bookkeeping."""

    conversation: Conversation
    participants: list[ParticipantDetails] = field(default_factory=list)
    last_message: Optional[MessageDetails] = None
    unread_count: int = 0

    @property
    def id(self) -> str:
        return self.conversation.id

    def participant_for(self, user_id: str) -> Optional[Participant]:
        for p in self.participants:
            if p.participant.user_id == user_id:
                return p.participant
        return None
