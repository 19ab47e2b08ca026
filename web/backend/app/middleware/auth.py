"""Auth middleware -- FastAPI dependencies for the service and the caller.

Authentication happens upstream: the platform's auth layer verifies the
session and forwards the caller's id in the ``X-User-Id`` header.  This
layer only checks that the id belongs to a known profile.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from parley.config import Settings, configure_logging
from parley.messaging.service import MessagingService

# Shared service instance
_service: Optional[MessagingService] = None


def get_service() -> MessagingService:
    """Return the singleton MessagingService built from configuration."""
    global _service
    if _service is None:
        settings = Settings.load()
        configure_logging(settings.log_level)
        _service = MessagingService.from_settings(settings)
    return _service


def close_service() -> None:
    """Shut down the singleton, if one was built."""
    global _service
    if _service is not None:
        _service.close()
        _service = None


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    service: MessagingService = Depends(get_service),
) -> str:
    """FastAPI dependency that returns the authenticated caller's user id.

    Raises ``401 Unauthorized`` if the header is missing or names an
    unknown user.
    """
    if x_user_id and service.directory.get_profile(x_user_id) is not None:
        return x_user_id

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
    )
