"""Profile models consumed by the messaging core."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class ProfileVisibility(str, Enum):
    public = "public"
    friends = "friends"
    private = "private"


@dataclass
class Profile:
    """The slice of a user profile the messaging core needs."""

    id: str
    display_name: str = ""
    avatar_url: str = ""
    allow_friend_requests: bool = True
    profile_visibility: ProfileVisibility = ProfileVisibility.public
    allow_messages: bool = True
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = datetime.now(timezone.utc).isoformat()
        if isinstance(self.profile_visibility, str):
            self.profile_visibility = ProfileVisibility(self.profile_visibility)

    @property
    def requires_approval(self) -> bool:
        """New conversations from strangers start pending for gated profiles."""
        return (
            self.profile_visibility != ProfileVisibility.public
            or not self.allow_friend_requests
        )
