"""Messaging service: the operations exposed to HTTP handlers and the CLI.

Each content-bearing operation runs the same pipeline:
validate -> authorize -> moderate -> persist.  A failure at any stage
raises one typed error from :mod:`parley.errors` and leaves no state
behind.  Every operation takes the caller's user id explicitly.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from parley.audit.audit_log import AuditLogger, snippet
from parley.config import Settings
from parley.directory.store import ProfileDirectory
from parley.errors import ContentRejected, Forbidden, NotFound, ValidationError
from parley.messaging.conversation_store import ConversationStore
from parley.messaging.message_store import MessageStore, normalize_content
from parley.messaging.models import (
    Conversation,
    ConversationDetails,
    Message,
    MessageDetails,
    Participant,
    ParticipantDetails,
    ParticipantStatus,
    UserSummary,
)
from parley.messaging.permissions import MessagingPermission, PermissionGate
from parley.moderation.classifiers import (
    ChainClassifier,
    Classifier,
    HttpClassifier,
    KeywordClassifier,
)
from parley.moderation.gate import ModerationGate
from parley.notifications.notifier import (
    CONVERSATION_REQUEST,
    LogNotifier,
    Notifier,
    WebhookNotifier,
)
from parley.storage import Database

logger = logging.getLogger(__name__)


class MessagingService:
    """Facade over the stores, the permission gate and the moderation gate."""

    def __init__(
        self,
        db: Database,
        directory: ProfileDirectory,
        moderation: ModerationGate,
        notifier: Optional[Notifier] = None,
        audit: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.directory = directory
        self.conversations = ConversationStore(db)
        self.messages = MessageStore(
            db, self.conversations, max_length=self.settings.max_message_length
        )
        self.permissions = PermissionGate(self.conversations, directory)
        self.moderation = moderation
        self.notifier: Notifier = notifier or LogNotifier()
        self.audit = audit

    @classmethod
    def from_settings(cls, settings: Settings) -> "MessagingService":
        """Wire every collaborator from configuration."""
        classifiers: list[Classifier] = [KeywordClassifier()]
        if settings.moderation_url:
            classifiers.append(HttpClassifier(
                settings.moderation_url,
                api_key=settings.moderation_api_key,
                model=settings.moderation_model,
                timeout=settings.moderation_timeout,
            ))
        if settings.llm_moderation:
            from parley.moderation.llm_classifier import LLMClassifier

            classifiers.append(LLMClassifier(
                api_key=settings.anthropic_api_key or None,
                timeout=settings.moderation_timeout,
            ))
        classifier = classifiers[0] if len(classifiers) == 1 else ChainClassifier(classifiers)

        notifier: Notifier
        if settings.notify_webhook_url:
            notifier = WebhookNotifier(settings.notify_webhook_url, timeout=settings.notify_timeout)
        else:
            notifier = LogNotifier()

        return cls(
            db=Database(settings.messaging_dir),
            directory=ProfileDirectory(settings.directory_dir),
            moderation=ModerationGate(classifier, timeout=settings.moderation_timeout),
            notifier=notifier,
            audit=AuditLogger(settings.audit_dir),
            settings=settings,
        )

    def close(self) -> None:
        """Release the moderation worker pool and any HTTP clients."""
        self.moderation.close()
        classifier = self.moderation.classifier
        for c in getattr(classifier, "classifiers", [classifier]):
            if hasattr(c, "close"):
                c.close()
        if hasattr(self.notifier, "close"):
            self.notifier.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _summaries(self, user_ids: Iterable[str]) -> dict[str, UserSummary]:
        profiles = self.directory.get_profiles(list(set(user_ids)))
        return {
            uid: UserSummary(id=p.id, display_name=p.display_name, avatar_url=p.avatar_url)
            for uid, p in profiles.items()
        }

    def _message_details(self, messages: list[Message]) -> list[MessageDetails]:
        senders = self._summaries(m.sender_id for m in messages)
        return [MessageDetails(message=m, sender=senders.get(m.sender_id)) for m in messages]

    def _unread_since(self, participant: Participant) -> str:
        return participant.last_read_at or participant.joined_at

    def _details(self, conversation: Conversation, user_id: str) -> ConversationDetails:
        participants = self.conversations.list_participants(conversation.id)
        last = self.messages.last_message(conversation.id)
        profiles = self._summaries(
            [p.user_id for p in participants] + ([last.sender_id] if last else [])
        )

        unread = 0
        own = next((p for p in participants if p.user_id == user_id), None)
        if own is not None:
            unread = self.messages.count_unread(conversation.id, user_id, self._unread_since(own))

        return ConversationDetails(
            conversation=conversation,
            participants=[
                ParticipantDetails(participant=p, profile=profiles.get(p.user_id))
                for p in participants
            ],
            last_message=(
                MessageDetails(message=last, sender=profiles.get(last.sender_id)) if last else None
            ),
            unread_count=unread,
        )

    def _require_active(self, conversation_id: str, user_id: str) -> None:
        if not self.permissions.is_active_participant(conversation_id, user_id):
            raise Forbidden()

    def _moderate(self, actor: str, resource_id: str, content: str) -> None:
        """Run fail-open moderation and raise ``ContentRejected`` on a decline."""
        result = self.moderation.moderate(content, fail_open=True)
        if result.approved:
            return
        logger.warning("moderation rejected content from %s: %s", actor, result.categories)
        if self.audit is not None:
            self.audit.log_event(
                actor=actor,
                action="moderation.reject",
                resource_type="conversation",
                resource_id=resource_id,
                details={
                    "reason": result.reason,
                    "categories": result.categories,
                    "snippet": snippet(content),
                },
                success=False,
            )
        raise ContentRejected(result.reason or "", result.categories)

    def _load_own_message(
        self, message_id: str, caller_id: str, conversation_id: Optional[str]
    ) -> Message:
        """Resolve a message for mutation by *caller_id*.

        Absent, already deleted, or in a conversation the caller cannot see
        all look like ``NotFound``; another participant's message is
        ``Forbidden``.
        """
        message = self.messages.get(message_id)
        if message is None or message.is_deleted:
            raise NotFound("Message not found")
        if conversation_id is not None and message.conversation_id != conversation_id:
            raise NotFound("Message not found")
        if not self.permissions.is_active_participant(message.conversation_id, caller_id):
            raise NotFound("Message not found")
        if not self.permissions.is_sender(message, caller_id):
            raise Forbidden()
        return message

    def _notify(self, user_id: str, type: str, payload: dict) -> None:
        try:
            self.notifier.notify(user_id, type, payload)
        except Exception:
            logger.exception("notification %s to %s failed", type, user_id)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def can_message_user(self, sender_id: str, recipient_id: str) -> MessagingPermission:
        return self.permissions.can_message(sender_id, recipient_id)

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create_conversation(
        self,
        caller_id: str,
        participant_ids: list[str],
        name: Optional[str] = None,
        is_group: bool = False,
    ) -> ConversationDetails:
        """Create a 1:1 or group conversation.

        A 1:1 with someone who already shares an active 1:1 with the caller
        returns that conversation.  If the recipient's privacy settings gate
        new conversations, their participant row starts ``pending`` and they
        receive a ``conversation_request`` notification.
        """
        if not participant_ids:
            raise ValidationError("participant_ids is required and must be a non-empty list")
        ids = list(dict.fromkeys([caller_id, *participant_ids]))

        pending: list[str] = []
        if not is_group:
            if len(ids) != 2:
                raise ValidationError("Direct conversations require exactly 2 participants")
            recipient_id = ids[1]
            permission = self.permissions.can_message(caller_id, recipient_id)
            if not permission.can_message:
                raise Forbidden(permission.reason or "")
            if self.permissions.requires_approval(caller_id, recipient_id):
                pending.append(recipient_id)

        conversation, created = self.conversations.create(
            ids, created_by=caller_id, is_group=is_group, name=name, pending_ids=pending
        )

        if created:
            if self.audit is not None:
                self.audit.log_event(
                    actor=caller_id,
                    action="conversation.create",
                    resource_type="conversation",
                    resource_id=conversation.id,
                    details={"is_group": is_group, "participants": ids, "pending": pending},
                )
            for user_id in pending:
                self._notify(user_id, CONVERSATION_REQUEST, {
                    "conversation_id": conversation.id,
                    "from_user_id": caller_id,
                })

        return self._details(conversation, caller_id)

    def get_conversation(self, conversation_id: str, user_id: str) -> Optional[ConversationDetails]:
        """Return the conversation, or None if absent or the user is not in it."""
        if not self.permissions.is_active_participant(conversation_id, user_id):
            return None
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return None
        return self._details(conversation, user_id)

    def list_conversations(self, user_id: str) -> list[ConversationDetails]:
        return [self._details(c, user_id) for c in self.conversations.list_for_user(user_id)]

    def update_conversation(
        self,
        conversation_id: str,
        caller_id: str,
        name: Optional[str] = None,
        is_muted: Optional[bool] = None,
    ) -> ConversationDetails:
        self._require_active(conversation_id, caller_id)

        if name is not None:
            conversation = self.conversations.get(conversation_id)
            if (
                conversation is None
                or not conversation.is_group
                or not self.permissions.is_group_admin(conversation_id, caller_id)
            ):
                raise Forbidden("Only admins can update group name")
            if not name.strip():
                raise ValidationError("Group name cannot be empty")
            self.conversations.rename(conversation_id, name)

        if is_muted is not None:
            self.conversations.set_muted(conversation_id, caller_id, is_muted)

        details = self.get_conversation(conversation_id, caller_id)
        if details is None:
            raise NotFound("Conversation not found")
        return details

    def leave_conversation(self, conversation_id: str, user_id: str) -> None:
        """Leave; a second call is a no-op.  Never-members are refused."""
        participant = self.conversations.get_participant(conversation_id, user_id)
        if participant is None:
            raise Forbidden()
        if self.conversations.leave(conversation_id, user_id):
            logger.info("user %s left conversation %s", user_id, conversation_id)

    def accept_conversation(self, conversation_id: str, user_id: str) -> ConversationDetails:
        self._require_active(conversation_id, user_id)
        participant = self.conversations.get_participant(conversation_id, user_id)
        if participant is not None and participant.status == ParticipantStatus.pending:
            self.conversations.accept(conversation_id, user_id)
        details = self.get_conversation(conversation_id, user_id)
        if details is None:
            raise NotFound("Conversation not found")
        return details

    def add_participant(self, conversation_id: str, caller_id: str, user_id: str) -> Participant:
        conversation = self.conversations.get(conversation_id)
        if conversation is None or not conversation.is_group:
            raise Forbidden("Conversation not found or not a group")
        if not self.permissions.is_group_admin(conversation_id, caller_id):
            raise Forbidden("Only admins can add participants")
        return self.conversations.add_participant(conversation_id, user_id)

    def remove_participant(self, conversation_id: str, caller_id: str, user_id: str) -> None:
        if caller_id == user_id:
            raise ValidationError("Use leave_conversation to leave")
        if not self.permissions.is_group_admin(conversation_id, caller_id):
            raise Forbidden("Only admins can remove participants")
        if not self.permissions.is_active_participant(conversation_id, user_id):
            raise NotFound("Participant not found")
        self.conversations.leave(conversation_id, user_id)

    def mark_read(self, conversation_id: str, user_id: str) -> Participant:
        self._require_active(conversation_id, user_id)
        return self.conversations.mark_read(conversation_id, user_id)

    def total_unread_count(self, user_id: str) -> int:
        return sum(
            self.messages.count_unread(p.conversation_id, user_id, self._unread_since(p))
            for p in self.conversations.participations_for_user(user_id)
        )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def list_messages(
        self,
        conversation_id: str,
        user_id: str,
        limit: Optional[int] = None,
        before: Optional[str] = None,
    ) -> list[MessageDetails]:
        """Newest-first page of messages; reverse it for display."""
        self._require_active(conversation_id, user_id)
        if limit is None:
            limit = self.settings.default_page_size
        limit = max(1, min(int(limit), self.settings.max_page_size))
        return self._message_details(self.messages.list(conversation_id, limit=limit, before=before))

    def send_message(self, conversation_id: str, sender_id: str, content: str) -> MessageDetails:
        content = normalize_content(content, self.settings.max_message_length)
        self._require_active(conversation_id, sender_id)
        self._moderate(sender_id, conversation_id, content)
        message = self.messages.send(conversation_id, sender_id, content)
        return self._message_details([message])[0]

    def edit_message(
        self,
        message_id: str,
        caller_id: str,
        content: str,
        conversation_id: Optional[str] = None,
    ) -> MessageDetails:
        content = normalize_content(content, self.settings.max_message_length)
        message = self._load_own_message(message_id, caller_id, conversation_id)
        self._moderate(caller_id, message.conversation_id, content)
        edited = self.messages.edit(message_id, caller_id, content)
        if self.audit is not None:
            self.audit.log_event(
                actor=caller_id,
                action="message.edit",
                resource_type="message",
                resource_id=message_id,
                details={"conversation_id": edited.conversation_id},
            )
        return self._message_details([edited])[0]

    def delete_message(
        self,
        message_id: str,
        caller_id: str,
        conversation_id: Optional[str] = None,
    ) -> MessageDetails:
        self._load_own_message(message_id, caller_id, conversation_id)
        deleted = self.messages.soft_delete(message_id, caller_id)
        if self.audit is not None:
            self.audit.log_event(
                actor=caller_id,
                action="message.delete",
                resource_type="message",
                resource_id=message_id,
                details={"conversation_id": deleted.conversation_id},
            )
        return self._message_details([deleted])[0]
