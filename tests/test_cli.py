"""Tests for the parley CLI."""

import pytest
from click.testing import CliRunner

from parley.cli import main
from parley.config import Settings
from parley.messaging.service import MessagingService


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.delenv("PARLEY_CONFIG", raising=False)
    monkeypatch.setenv("PARLEY_DATA_DIR", str(tmp_path))
    return tmp_path


def _run(*args):
    return CliRunner().invoke(main, list(args))


def test_profile_send_and_list(data_dir):
    assert _run("profile", "add", "alice", "--name", "Alice").exit_code == 0
    assert _run("profile", "add", "bob", "--name", "Bob").exit_code == 0

    service = MessagingService.from_settings(Settings(data_dir=str(data_dir)))
    conv = service.create_conversation("alice", ["bob"])

    sent = _run("send", conv.id, "alice", "see you at soundcheck")
    assert sent.exit_code == 0
    assert "Sent" in sent.output

    shown = _run("messages", conv.id, "bob")
    assert "see you at soundcheck" in shown.output

    assert "1" in _run("unread", "bob").output
    assert "Conversations for bob" in _run("conversations", "bob").output


def test_send_rejected(data_dir):
    _run("profile", "add", "alice")
    _run("profile", "add", "bob")
    service = MessagingService.from_settings(Settings(data_dir=str(data_dir)))
    conv = service.create_conversation("alice", ["bob"])

    result = _run("send", conv.id, "alice", "you loser")
    assert result.exit_code == 1
    assert "Rejected" in result.output

    audit = _run("audit", "--action", "moderation.reject")
    assert "alice" in audit.output


def test_moderate(data_dir):
    assert "Approved" in _run("moderate", "great set last night").output
    assert "Rejected" in _run("moderate", "my card is 4111 1111 1111 1111").output


def test_non_participant_cannot_read(data_dir):
    _run("profile", "add", "alice")
    _run("profile", "add", "bob")
    service = MessagingService.from_settings(Settings(data_dir=str(data_dir)))
    conv = service.create_conversation("alice", ["bob"])

    result = _run("messages", conv.id, "carol")
    assert result.exit_code == 1
