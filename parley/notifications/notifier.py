"""Notification collaborators.

``notify`` may raise; the messaging service treats notifications as
fire-and-forget and logs failures instead of aborting the operation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import httpx

from parley.errors import ServiceUnavailable

logger = logging.getLogger(__name__)

CONVERSATION_REQUEST = "conversation_request"


class Notifier(Protocol):
    def notify(self, user_id: str, type: str, payload: dict[str, Any]) -> None:
        ...


class LogNotifier:
    """Writes notifications to the log.  The default when no webhook is set."""

    def notify(self, user_id: str, type: str, payload: dict[str, Any]) -> None:
        logger.info("notify user=%s type=%s payload=%s", user_id, type, payload)


class WebhookNotifier:
    """POSTs notifications as JSON to an external notification service."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.url = url
        self._client = client or httpx.Client(timeout=timeout)

    def notify(self, user_id: str, type: str, payload: dict[str, Any]) -> None:
        body = {
            "user_id": user_id,
            "type": type,
            "payload": payload,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = self._client.post(self.url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ServiceUnavailable(f"Notification delivery failed: {exc}") from exc

    def close(self) -> None:
        self._client.close()
