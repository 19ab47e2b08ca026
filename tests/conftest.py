import time

import pytest
from fastapi.testclient import TestClient

from parley.audit import AuditLogger
from parley.config import Settings
from parley.directory import Profile, ProfileDirectory
from parley.errors import ServiceUnavailable
from parley.messaging.service import MessagingService
from parley.moderation.gate import ModerationGate
from parley.moderation.models import ClassifierVerdict
from parley.storage import Database


class StubClassifier:
    """Flags exact texts listed in *rules* with the given categories."""

    def __init__(self, rules=None, reason=None):
        self.rules = rules or {}
        self.reason = reason
        self.calls = []

    def classify(self, text):
        self.calls.append(text)
        if text in self.rules:
            return ClassifierVerdict(flagged=True, categories=self.rules[text], reason=self.reason)
        return ClassifierVerdict(flagged=False)


class BrokenClassifier:
    def classify(self, text):
        raise ServiceUnavailable("classifier down")


class SlowClassifier:
    def __init__(self, delay):
        self.delay = delay

    def classify(self, text):
        time.sleep(self.delay)
        return ClassifierVerdict(flagged=False)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, user_id, type, payload):
        self.sent.append((user_id, type, payload))


class FailingNotifier:
    def notify(self, user_id, type, payload):
        raise ServiceUnavailable("notification service down")


def build_service(base_dir, classifier=None, notifier=None, users=("alice", "bob", "carol", "dave")):
    settings = Settings(data_dir=str(base_dir))
    directory = ProfileDirectory(settings.directory_dir)
    for user_id in users:
        directory.upsert_profile(Profile(id=user_id, display_name=user_id.title()))
    return MessagingService(
        db=Database(settings.messaging_dir),
        directory=directory,
        moderation=ModerationGate(classifier or StubClassifier(), timeout=1.0),
        notifier=notifier or RecordingNotifier(),
        audit=AuditLogger(settings.audit_dir),
        settings=settings,
    )


@pytest.fixture
def classifier():
    return StubClassifier({"bad": ["harassment"]}, reason="X")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(tmp_path, classifier, notifier):
    return build_service(tmp_path, classifier=classifier, notifier=notifier)


@pytest.fixture
def client(service):
    from web.backend.app.main import app
    from web.backend.app.middleware.auth import get_service

    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()
