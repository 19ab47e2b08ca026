"""Local adapter for the Auth/Profile collaborator."""

from parley.directory.models import Profile, ProfileVisibility
from parley.directory.store import ProfileDirectory

__all__ = ["Profile", "ProfileDirectory", "ProfileVisibility"]
