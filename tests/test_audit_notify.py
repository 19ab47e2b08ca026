"""Tests for the audit trail and the notifiers."""

import json
import tempfile

import httpx
import pytest

from parley.audit import AuditLogger
from parley.audit.audit_log import snippet
from parley.errors import ServiceUnavailable
from parley.notifications import LogNotifier, WebhookNotifier


class TestAuditLogger:
    def test_log_and_filter(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            audit = AuditLogger(tmpdir)
            audit.log_event("alice", "message.edit", "message", "m1")
            audit.log_event("bob", "moderation.reject", "conversation", "c1",
                            details={"categories": ["hate"]}, success=False)
            audit.log_event("alice", "message.delete", "message", "m1")

            assert len(audit.get_events()) == 3
            alice = audit.get_events(actor="alice")
            assert [e.action for e in alice] == ["message.delete", "message.edit"]

            rejected = audit.get_events(action="moderation.reject")
            assert rejected[0].details == {"categories": ["hate"]}
            assert rejected[0].success is False

            assert len(audit.get_events(resource_id="m1", limit=1)) == 1

    def test_ignores_corrupt_lines(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            audit = AuditLogger(tmpdir)
            audit.log_event("alice", "message.edit", "message", "m1")
            with open(f"{tmpdir}/2000-01-01.jsonl", "w") as fh:
                fh.write("not json\n\n")
            assert len(audit.get_events()) == 1


def test_snippet():
    assert snippet("short") == "short"
    long = "x" * 150
    assert snippet(long) == "x" * 100 + "..."


class TestWebhookNotifier:
    def test_posts_notification(self):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(202)

        notifier = WebhookNotifier(
            "https://notify.test/hook", client=httpx.Client(transport=httpx.MockTransport(handler))
        )
        notifier.notify("bob", "conversation_request", {"conversation_id": "c1"})

        assert len(received) == 1
        body = received[0]
        assert body["user_id"] == "bob"
        assert body["type"] == "conversation_request"
        assert body["payload"] == {"conversation_id": "c1"}
        assert body["sent_at"]

    def test_failure_raises_service_unavailable(self):
        notifier = WebhookNotifier(
            "https://notify.test/hook",
            client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(503))),
        )
        with pytest.raises(ServiceUnavailable):
            notifier.notify("bob", "conversation_request", {})


def test_log_notifier(caplog):
    with caplog.at_level("INFO", logger="parley.notifications.notifier"):
        LogNotifier().notify("bob", "conversation_request", {"conversation_id": "c1"})
    assert "user=bob" in caplog.text
