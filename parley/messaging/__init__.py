"""Direct messaging: conversation/message stores, permissions, service facade."""

from parley.messaging.conversation_store import ConversationStore
from parley.messaging.message_store import MessageStore
from parley.messaging.models import (
    TOMBSTONE,
    Conversation,
    ConversationDetails,
    Message,
    MessageDetails,
    Participant,
    ParticipantRole,
    ParticipantStatus,
)
from parley.messaging.permissions import MessagingPermission, PermissionGate
from parley.messaging.service import MessagingService

__all__ = [
    "TOMBSTONE",
    "Conversation",
    "ConversationDetails",
    "ConversationStore",
    "Message",
    "MessageDetails",
    "MessageStore",
    "MessagingPermission",
    "MessagingService",
    "Participant",
    "ParticipantRole",
    "ParticipantStatus",
    "PermissionGate",
]
