"""File-based JSON storage for profiles and blocks.

Stands in for the platform's Auth/Profile service.  Storage path:
``<base_dir>/`` with:
- ``profiles.json`` -- list of profile dicts
- ``blocks.json`` -- list of ``{"blocker_id", "blocked_id", "created_at"}``
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from parley.directory.models import Profile, ProfileVisibility
from parley.storage import Database


class ProfileDirectory:
    """Profile lookups and the block list."""

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        if base_dir is None:
            base_dir = Path.home() / ".parley" / "directory"
        self._db = Database(base_dir)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _profile_from_dict(d: dict) -> Profile:
        visibility = d.get("profile_visibility", "public")
        try:
            visibility = ProfileVisibility(visibility)
        except ValueError:
            visibility = ProfileVisibility.public
        return Profile(
            id=d["id"],
            display_name=d.get("display_name", ""),
            avatar_url=d.get("avatar_url", ""),
            allow_friend_requests=d.get("allow_friend_requests", True),
            profile_visibility=visibility,
            allow_messages=d.get("allow_messages", True),
            created_at=d.get("created_at", ""),
        )

    @staticmethod
    def _profile_to_dict(p: Profile) -> dict:
        return {
            "id": p.id,
            "display_name": p.display_name,
            "avatar_url": p.avatar_url,
            "allow_friend_requests": p.allow_friend_requests,
            "profile_visibility": p.profile_visibility.value,
            "allow_messages": p.allow_messages,
            "created_at": p.created_at,
        }

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def upsert_profile(self, profile: Profile) -> Profile:
        with self._db.transaction():
            rows = [d for d in self._db.read("profiles") if d["id"] != profile.id]
            rows.append(self._profile_to_dict(profile))
            self._db.write("profiles", rows)
        return profile

    def get_profile(self, user_id: str) -> Optional[Profile]:
        for d in self._db.read("profiles"):
            if d["id"] == user_id:
                return self._profile_from_dict(d)
        return None

    def get_profiles(self, user_ids: list[str]) -> dict[str, Profile]:
        wanted = set(user_ids)
        return {
            d["id"]: self._profile_from_dict(d)
            for d in self._db.read("profiles")
            if d["id"] in wanted
        }

    def list_profiles(self) -> list[Profile]:
        return [self._profile_from_dict(d) for d in self._db.read("profiles")]

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def block(self, blocker_id: str, blocked_id: str) -> None:
        with self._db.transaction():
            rows = self._db.read("blocks")
            for d in rows:
                if d["blocker_id"] == blocker_id and d["blocked_id"] == blocked_id:
                    return
            rows.append({
                "blocker_id": blocker_id,
                "blocked_id": blocked_id,
                "created_at": datetime.now(timezone.utc).isoformat(),
            })
            self._db.write("blocks", rows)

    def unblock(self, blocker_id: str, blocked_id: str) -> bool:
        with self._db.transaction():
            rows = self._db.read("blocks")
            kept = [
                d for d in rows
                if not (d["blocker_id"] == blocker_id and d["blocked_id"] == blocked_id)
            ]
            if len(kept) < len(rows):
                self._db.write("blocks", kept)
                return True
            return False

    def is_blocked(self, user_a: str, user_b: str) -> bool:
        """True if either user has blocked the other."""
        for d in self._db.read("blocks"):
            if (d["blocker_id"], d["blocked_id"]) in {(user_a, user_b), (user_b, user_a)}:
                return True
        return False
