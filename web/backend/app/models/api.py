"""Pydantic models for API request/response serialization.

These models mirror the parley dataclasses and provide proper JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class UserSummaryResponse(BaseModel):
    """Mirrors parley.messaging.models.UserSummary."""

    id: str
    display_name: str = ""
    avatar_url: str = ""


class SuccessResponse(BaseModel):
    success: bool = True


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


class ParticipantResponse(BaseModel):
    """Mirrors parley.messaging.models.Participant plus the profile."""

    user_id: str
    role: str
    status: str
    joined_at: str
    left_at: Optional[str] = None
    is_muted: bool = False
    last_read_at: Optional[str] = None
    profile: Optional[UserSummaryResponse] = None


class MessageResponse(BaseModel):
    """Mirrors parley.messaging.models.Message plus the sender."""

    id: str
    conversation_id: str
    sender_id: str
    content: str
    created_at: str
    edited_at: Optional[str] = None
    deleted_at: Optional[str] = None
    is_edited: bool = False
    is_deleted: bool = False
    sender: Optional[UserSummaryResponse] = None


class ConversationResponse(BaseModel):
    """Mirrors parley.messaging.models.ConversationDetails."""

    id: str
    is_group: bool
    name: Optional[str] = None
    created_by: str
    created_at: str
    updated_at: str
    participants: list[ParticipantResponse] = Field(default_factory=list)
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0


class CreateConversationRequest(BaseModel):
    """Request body for creating a 1:1 or group conversation."""

    participant_ids: list[str]
    name: Optional[str] = None
    is_group: bool = False


class UpdateConversationRequest(BaseModel):
    """Request body for renaming a group or toggling mute."""

    name: Optional[str] = None
    is_muted: Optional[bool] = None


class AddParticipantRequest(BaseModel):
    user_id: str


class UnreadCountResponse(BaseModel):
    count: int = 0


class CanMessageResponse(BaseModel):
    """Mirrors parley.messaging.permissions.MessagingPermission."""

    can_message: bool
    reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class SendMessageRequest(BaseModel):
    """Request body for sending or editing a message."""

    content: str


class MessagePageResponse(BaseModel):
    """A newest-first page of messages plus the cursor for the next page."""

    data: list[MessageResponse] = Field(default_factory=list)
    next_before: Optional[str] = None
    has_more: bool = False


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------


class ModerateRequest(BaseModel):
    content: str


class ModerationResponse(BaseModel):
    """Mirrors parley.moderation.models.ModerationResult."""

    approved: bool
    reason: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
