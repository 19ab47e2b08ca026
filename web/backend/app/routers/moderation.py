"""Moderation and pre-flight router -- content checks and can-message lookups."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from parley.messaging.service import MessagingService
from web.backend.app.middleware.auth import get_current_user_id, get_service
from web.backend.app.models.api import (
    CanMessageResponse,
    ModerateRequest,
    ModerationResponse,
)

router = APIRouter(prefix="/api", tags=["moderation"])


@router.post(
    "/moderate/message",
    response_model=ModerationResponse,
    summary="Pre-flight moderation check for message content",
)
def moderate_message(
    body: ModerateRequest,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    """Run the message moderation policy without persisting anything."""
    result = service.moderation.moderate(body.content, fail_open=True)
    return ModerationResponse(
        approved=result.approved,
        reason=result.reason,
        categories=result.categories,
    )


@router.get(
    "/users/{recipient_id}/can-message",
    response_model=CanMessageResponse,
    summary="Can the caller start a conversation with this user",
)
async def can_message(
    recipient_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_service),
):
    permission = service.can_message_user(user_id, recipient_id)
    return CanMessageResponse(can_message=permission.can_message, reason=permission.reason)
