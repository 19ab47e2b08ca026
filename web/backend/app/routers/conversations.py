"""Conversations router -- conversations, participants, read state and messages."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from parley.messaging.models import ConversationDetails, MessageDetails, UserSummary
from parley.messaging.service import MessagingService
from web.backend.app.middleware.auth import get_current_user_id, get_service
from web.backend.app.models.api import (
    AddParticipantRequest,
    ConversationResponse,
    CreateConversationRequest,
    MessagePageResponse,
    MessageResponse,
    ParticipantResponse,
    SendMessageRequest,
    SuccessResponse,
    UnreadCountResponse,
    UpdateConversationRequest,
    UserSummaryResponse,
)

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _summary_response(summary: Optional[UserSummary]) -> Optional[UserSummaryResponse]:
    if summary is None:
        return None
    return UserSummaryResponse(
        id=summary.id,
        display_name=summary.display_name,
        avatar_url=summary.avatar_url,
    )


def _message_response(details: MessageDetails) -> MessageResponse:
    """Convert a domain MessageDetails to the Pydantic response model."""
    m = details.message
    return MessageResponse(
        id=m.id,
        conversation_id=m.conversation_id,
        sender_id=m.sender_id,
        content=m.content,
        created_at=m.created_at,
        edited_at=m.edited_at,
        deleted_at=m.deleted_at,
        is_edited=m.is_edited,
        is_deleted=m.is_deleted,
        sender=_summary_response(details.sender),
    )


def _conversation_response(details: ConversationDetails) -> ConversationResponse:
    """Convert a domain ConversationDetails to the Pydantic response model."""
    c = details.conversation
    return ConversationResponse(
        id=c.id,
        is_group=c.is_group,
        name=c.name,
        created_by=c.created_by,
        created_at=c.created_at,
        updated_at=c.updated_at,
        participants=[
            ParticipantResponse(
                user_id=p.participant.user_id,
                role=p.participant.role.value,
                status=p.participant.status.value,
                joined_at=p.participant.joined_at,
                left_at=p.participant.left_at,
                is_muted=p.participant.is_muted,
                last_read_at=p.participant.last_read_at,
                profile=_summary_response(p.profile),
            )
            for p in details.participants
        ],
        last_message=_message_response(details.last_message) if details.last_message else None,
        unread_count=details.unread_count,
    )


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[ConversationResponse],
    summary="List the caller's conversations",
)
async def list_conversations(
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    """List conversations the caller actively participates in, most recent first."""
    return [_conversation_response(d) for d in service.list_conversations(user_id)]


@router.post(
    "",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a conversation",
)
def create_conversation(
    body: CreateConversationRequest,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    """Create a 1:1 or group conversation.  An existing 1:1 is returned as-is."""
    details = service.create_conversation(
        user_id,
        body.participant_ids,
        name=body.name,
        is_group=body.is_group,
    )
    return _conversation_response(details)


@router.get(
    "/unread-count",
    response_model=UnreadCountResponse,
    summary="Total unread messages",
)
async def unread_count(
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    return UnreadCountResponse(count=service.total_unread_count(user_id))


@router.get(
    "/{conversation_id}",
    response_model=ConversationResponse,
    summary="Get a conversation",
)
async def get_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    details = service.get_conversation(conversation_id, user_id)
    if details is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )
    return _conversation_response(details)


@router.put(
    "/{conversation_id}",
    response_model=ConversationResponse,
    summary="Rename a group or toggle mute",
)
async def update_conversation(
    conversation_id: str,
    body: UpdateConversationRequest,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    details = service.update_conversation(
        conversation_id, user_id, name=body.name, is_muted=body.is_muted
    )
    return _conversation_response(details)


@router.delete(
    "/{conversation_id}",
    response_model=SuccessResponse,
    summary="Leave a conversation",
)
async def leave_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    service.leave_conversation(conversation_id, user_id)
    return SuccessResponse()


@router.post(
    "/{conversation_id}/read",
    response_model=SuccessResponse,
    summary="Mark a conversation as read",
)
async def mark_read(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    service.mark_read(conversation_id, user_id)
    return SuccessResponse()


@router.post(
    "/{conversation_id}/accept",
    response_model=ConversationResponse,
    summary="Accept a pending conversation request",
)
async def accept_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    return _conversation_response(service.accept_conversation(conversation_id, user_id))


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------


@router.post(
    "/{conversation_id}/participants",
    response_model=SuccessResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a participant to a group (admin only)",
)
async def add_participant(
    conversation_id: str,
    body: AddParticipantRequest,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    service.add_participant(conversation_id, user_id, body.user_id)
    return SuccessResponse()


@router.delete(
    "/{conversation_id}/participants/{participant_id}",
    response_model=SuccessResponse,
    summary="Remove a participant from a group (admin only)",
)
async def remove_participant(
    conversation_id: str,
    participant_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    service.remove_participant(conversation_id, user_id, participant_id)
    return SuccessResponse()


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@router.get(
    "/{conversation_id}/messages",
    response_model=MessagePageResponse,
    summary="List messages, newest first",
)
async def list_messages(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=100),
    before: Optional[str] = Query(None, description="Message id or ISO timestamp cursor"),
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    """Return one page of messages.  Pass ``next_before`` back as ``before``."""
    page = service.list_messages(conversation_id, user_id, limit=limit, before=before)
    has_more = len(page) == limit
    return MessagePageResponse(
        data=[_message_response(m) for m in page],
        next_before=page[-1].message.id if page and has_more else None,
        has_more=has_more,
    )


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
def send_message(
    conversation_id: str,
    body: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    return _message_response(service.send_message(conversation_id, user_id, body.content))


@router.put(
    "/{conversation_id}/messages/{message_id}",
    response_model=MessageResponse,
    summary="Edit a message (sender only)",
)
def edit_message(
    conversation_id: str,
    message_id: str,
    body: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    details = service.edit_message(
        message_id, user_id, body.content, conversation_id=conversation_id
    )
    return _message_response(details)


@router.delete(
    "/{conversation_id}/messages/{message_id}",
    response_model=SuccessResponse,
    summary="Delete a message (sender only)",
)
def delete_message(
    conversation_id: str,
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    service.delete_message(message_id, user_id, conversation_id=conversation_id)
    return SuccessResponse()
