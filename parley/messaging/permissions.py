"""Authorization checks for conversations and messages.

The gate answers questions and never raises for a negative answer; the
service decides which typed error a ``False`` turns into.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from parley.directory.store import ProfileDirectory
from parley.messaging.conversation_store import ConversationStore
from parley.messaging.models import Message, ParticipantRole

BLOCKED_REASON = "Unable to message this user"
MESSAGES_DISABLED_REASON = "This user has disabled direct messages"
SELF_MESSAGE_REASON = "You cannot message yourself"


@dataclass
class MessagingPermission:
    """Outcome of a can-message check."""

    can_message: bool
    reason: Optional[str] = None


class PermissionGate:
    """Who may message whom, and who may touch a conversation or message."""

    def __init__(self, conversations: ConversationStore, directory: ProfileDirectory) -> None:
        self._conversations = conversations
        self._directory = directory

    def can_message(self, sender_id: str, recipient_id: str) -> MessagingPermission:
        """Check whether *sender_id* may open a direct conversation with *recipient_id*.

        Privacy settings that only gate acceptance (visibility, friend
        requests) are handled by :meth:`requires_approval`, not here.
        """
        if sender_id == recipient_id:
            return MessagingPermission(False, SELF_MESSAGE_REASON)

        recipient = self._directory.get_profile(recipient_id)
        if recipient is not None and not recipient.allow_messages:
            return MessagingPermission(False, MESSAGES_DISABLED_REASON)

        if self._directory.is_blocked(sender_id, recipient_id):
            return MessagingPermission(False, BLOCKED_REASON)

        return MessagingPermission(True)

    def requires_approval(self, sender_id: str, recipient_id: str) -> bool:
        """True if a new conversation should start pending for the recipient."""
        if sender_id == recipient_id:
            return False
        recipient = self._directory.get_profile(recipient_id)
        return recipient is not None and recipient.requires_approval

    def is_active_participant(self, conversation_id: str, user_id: str) -> bool:
        participant = self._conversations.get_participant(conversation_id, user_id)
        return participant is not None and participant.is_active

    def is_group_admin(self, conversation_id: str, user_id: str) -> bool:
        participant = self._conversations.get_participant(conversation_id, user_id)
        return (
            participant is not None
            and participant.is_active
            and participant.role == ParticipantRole.admin
        )

    @staticmethod
    def is_sender(message: Message, user_id: str) -> bool:
        return message.sender_id == user_id
