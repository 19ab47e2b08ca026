"""Fire-and-forget notifications to users."""

from parley.notifications.notifier import LogNotifier, Notifier, WebhookNotifier

__all__ = ["LogNotifier", "Notifier", "WebhookNotifier"]
