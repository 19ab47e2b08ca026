"""Typed errors raised by the messaging core.

Every error carries a stable ``code`` and the HTTP ``status_code`` the web
layer maps it to.  Gates never raise these for expected negative outcomes;
stores raise them when a caller skipped a required check.
"""

from __future__ import annotations


class MessagingError(Exception):
    """Base class for all caller-facing messaging errors."""

    code = "messaging_error"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message())
        self.message = message or self.default_message()

    @classmethod
    def default_message(cls) -> str:
        return "Internal server error"

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(MessagingError):
    """Bad input: empty/too-long content, missing group name, wrong participant count."""

    code = "validation_error"
    status_code = 400

    @classmethod
    def default_message(cls) -> str:
        return "Invalid request"


class Forbidden(MessagingError):
    """The caller may not perform this operation.  Message stays generic."""

    code = "forbidden"
    status_code = 403

    @classmethod
    def default_message(cls) -> str:
        return "You do not have permission to perform this action"


class NotFound(MessagingError):
    code = "not_found"
    status_code = 404

    @classmethod
    def default_message(cls) -> str:
        return "Not found"


class Conflict(MessagingError):
    code = "conflict"
    status_code = 409

    @classmethod
    def default_message(cls) -> str:
        return "Conflict"


class ContentRejected(MessagingError):
    """Moderation declined the content.  Carries the reason for the UI."""

    code = "content_rejected"
    status_code = 422

    def __init__(self, reason: str = "", categories: list[str] | None = None) -> None:
        super().__init__(reason or "Message content violates community guidelines")
        self.reason = self.message
        self.categories = list(categories or [])

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        data["categories"] = self.categories
        return data


class ServiceUnavailable(MessagingError):
    """A collaborator (classifier, notifier) could not be reached."""

    code = "service_unavailable"
    status_code = 503

    @classmethod
    def default_message(cls) -> str:
        return "Service temporarily unavailable"
