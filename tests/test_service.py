"""Tests for the messaging service: the caller-facing operations."""

import threading

import pytest

from conftest import BrokenClassifier, FailingNotifier, build_service
from parley.directory import Profile
from parley.errors import Conflict, ContentRejected, Forbidden, NotFound, ValidationError
from parley.messaging.models import TOMBSTONE, ParticipantRole, ParticipantStatus


def _direct(service, a="alice", b="bob"):
    return service.create_conversation(a, [b])


def _group(service, name="Trip"):
    return service.create_conversation("alice", ["bob", "carol"], name=name, is_group=True)


# --- Conversation creation ---


def test_direct_conversation_is_idempotent_in_either_order(service):
    first = _direct(service, "alice", "bob")
    second = _direct(service, "alice", "bob")
    reverse = _direct(service, "bob", "alice")

    assert first.id == second.id == reverse.id
    assert len(service.list_conversations("alice")) == 1


def test_direct_conversation_concurrent_creation_yields_one(service):
    ids = []
    errors = []

    def create(a, b):
        try:
            ids.append(service.create_conversation(a, [b]).id)
        except Exception as e:  # pragma: no cover - surfaced by the assert below
            errors.append(e)

    threads = [
        threading.Thread(target=create, args=(("alice", "bob") if i % 2 else ("bob", "alice")))
        for i in range(8)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors
    assert len(set(ids)) == 1
    assert len(service.list_conversations("bob")) == 1


def test_direct_conversation_creator_included_and_deduped(service):
    details = service.create_conversation("alice", ["bob", "bob", "alice"])
    members = {p.participant.user_id for p in details.participants}
    assert members == {"alice", "bob"}
    assert not details.conversation.is_group


def test_direct_conversation_requires_one_other_user(service):
    with pytest.raises(ValidationError):
        service.create_conversation("alice", ["bob", "carol"])
    with pytest.raises(ValidationError):
        service.create_conversation("alice", [])


def test_cannot_message_self(service):
    assert not service.can_message_user("alice", "alice").can_message
    with pytest.raises(ValidationError):
        service.create_conversation("alice", ["alice"])


def test_group_requires_three_participants(service):
    with pytest.raises(ValidationError):
        service.create_conversation("alice", ["bob"], name="Trip", is_group=True)


def test_group_requires_name(service):
    with pytest.raises(ValidationError):
        service.create_conversation("alice", ["bob", "carol"], name="", is_group=True)
    with pytest.raises(ValidationError):
        service.create_conversation("alice", ["bob", "carol"], name="   ", is_group=True)


def test_group_creation(service):
    details = _group(service)
    assert details.conversation.is_group
    assert details.conversation.name == "Trip"
    assert len(details.participants) == 3
    roles = {p.participant.user_id: p.participant.role for p in details.participants}
    assert roles["alice"] == ParticipantRole.admin
    assert roles["bob"] == ParticipantRole.member
    assert roles["carol"] == ParticipantRole.member


def test_groups_are_never_deduped(service):
    assert _group(service).id != _group(service).id


def test_blocked_user_cannot_start_conversation(service):
    service.directory.block("bob", "alice")
    with pytest.raises(Forbidden) as exc:
        _direct(service, "alice", "bob")
    assert exc.value.message == "Unable to message this user"
    assert service.list_conversations("alice") == []


def test_private_recipient_gets_pending_request(tmp_path):
    notifier = FailingNotifier()
    service = build_service(tmp_path, notifier=notifier)
    service.directory.upsert_profile(Profile(id="bob", profile_visibility="private"))

    details = _direct(service)

    assert details.participant_for("bob").status == ParticipantStatus.pending
    assert details.participant_for("alice").status == ParticipantStatus.accepted


def test_pending_request_notifies_recipient(service, notifier):
    service.directory.upsert_profile(Profile(id="bob", allow_friend_requests=False))

    details = _direct(service)

    assert notifier.sent == [
        ("bob", "conversation_request", {"conversation_id": details.id, "from_user_id": "alice"})
    ]
    # Returning the existing conversation does not notify again
    _direct(service)
    assert len(notifier.sent) == 1


def test_accept_conversation(service):
    service.directory.upsert_profile(Profile(id="bob", profile_visibility="friends"))
    details = _direct(service)

    accepted = service.accept_conversation(details.id, "bob")
    assert accepted.participant_for("bob").status == ParticipantStatus.accepted


def test_open_profile_is_accepted_without_notification(service, notifier):
    details = _direct(service)
    assert details.participant_for("bob").status == ParticipantStatus.accepted
    assert notifier.sent == []


# --- Sending ---


def test_message_length_boundary(service):
    conv = _direct(service)

    ok = service.send_message(conv.id, "alice", "x" * 5000)
    assert len(ok.message.content) == 5000

    with pytest.raises(ValidationError):
        service.send_message(conv.id, "alice", "x" * 5001)
    with pytest.raises(ValidationError):
        service.send_message(conv.id, "alice", "   ")


def test_content_is_trimmed(service):
    conv = _direct(service)
    sent = service.send_message(conv.id, "alice", "  hello  ")
    assert sent.message.content == "hello"
    assert sent.sender.display_name == "Alice"


def test_moderation_rejection_is_not_persisted(service):
    conv = _direct(service)

    with pytest.raises(ContentRejected) as exc:
        service.send_message(conv.id, "alice", "bad")

    assert exc.value.reason == "X"
    assert exc.value.categories == ["harassment"]
    assert service.list_messages(conv.id, "bob") == []
    events = service.audit.get_events(action="moderation.reject")
    assert len(events) == 1
    assert events[0].actor == "alice"


def test_moderation_outage_fails_open(tmp_path):
    service = build_service(tmp_path, classifier=BrokenClassifier())
    conv = _direct(service)

    sent = service.send_message(conv.id, "alice", "hello")
    assert service.list_messages(conv.id, "bob")[0].message.id == sent.message.id


def test_send_bumps_updated_at_and_reorders_list(service):
    older = _direct(service, "alice", "bob")
    newer = _direct(service, "alice", "carol")
    assert [c.id for c in service.list_conversations("alice")] == [newer.id, older.id]

    service.send_message(older.id, "bob", "ping")
    assert [c.id for c in service.list_conversations("alice")] == [older.id, newer.id]


# --- Authorization ---


def test_non_participant_is_refused_without_state_change(service):
    conv = _direct(service)
    msg = service.send_message(conv.id, "alice", "hi")

    with pytest.raises(Forbidden):
        service.send_message(conv.id, "carol", "let me in")
    with pytest.raises(Forbidden):
        service.list_messages(conv.id, "carol")
    with pytest.raises(NotFound):
        service.edit_message(msg.message.id, "carol", "changed")
    with pytest.raises(NotFound):
        service.delete_message(msg.message.id, "carol")
    with pytest.raises(Forbidden):
        service.leave_conversation(conv.id, "carol")

    assert service.get_conversation(conv.id, "carol") is None
    page = service.list_messages(conv.id, "bob")
    assert [m.message.content for m in page] == ["hi"]


def test_get_conversation_hides_missing_and_foreign(service):
    conv = _direct(service)
    assert service.get_conversation("missing", "alice") is None
    assert service.get_conversation(conv.id, "dave") is None
    assert service.get_conversation(conv.id, "alice").id == conv.id


# --- Edit / delete ---


def test_edit_and_delete_ownership(service):
    conv = _direct(service)
    sent = service.send_message(conv.id, "alice", "original")
    message_id = sent.message.id

    with pytest.raises(Forbidden):
        service.edit_message(message_id, "bob", "hijack")
    with pytest.raises(Forbidden):
        service.delete_message(message_id, "bob")

    edited = service.edit_message(message_id, "alice", "revised")
    assert edited.message.content == "revised"
    assert edited.message.edited_at is not None

    service.delete_message(message_id, "alice")
    page = service.list_messages(conv.id, "bob")
    assert page[0].message.content == TOMBSTONE
    assert page[0].message.is_deleted

    with pytest.raises(NotFound):
        service.edit_message(message_id, "alice", "again")
    with pytest.raises(NotFound):
        service.delete_message(message_id, "alice")


def test_edit_is_moderated(service):
    conv = _direct(service)
    sent = service.send_message(conv.id, "alice", "fine")

    with pytest.raises(ContentRejected):
        service.edit_message(sent.message.id, "alice", "bad")
    assert service.list_messages(conv.id, "alice")[0].message.content == "fine"


def test_edit_with_wrong_conversation_is_not_found(service):
    conv = _direct(service)
    other = _direct(service, "alice", "carol")
    sent = service.send_message(conv.id, "alice", "hi")
    with pytest.raises(NotFound):
        service.edit_message(sent.message.id, "alice", "moved", conversation_id=other.id)


def test_deleted_message_is_not_last_message(service):
    conv = _direct(service)
    service.send_message(conv.id, "alice", "first")
    second = service.send_message(conv.id, "alice", "second")
    service.delete_message(second.message.id, "alice")

    details = service.get_conversation(conv.id, "bob")
    assert details.last_message.message.content == "first"


# --- Pagination ---


def test_pagination_walks_every_message_once(service):
    conv = _direct(service)
    sent_ids = [service.send_message(conv.id, "alice", f"m{i}").message.id for i in range(120)]

    seen = []
    before = None
    for _ in range(3):
        page = service.list_messages(conv.id, "bob", limit=50, before=before)
        seen.extend(m.message.id for m in page)
        if page:
            before = page[-1].message.id

    assert len(seen) == 120
    assert len(set(seen)) == 120
    assert seen == list(reversed(sent_ids))
    assert service.list_messages(conv.id, "bob", limit=50, before=before) == []


def test_page_size_is_clamped(service):
    conv = _direct(service)
    for i in range(3):
        service.send_message(conv.id, "alice", f"m{i}")
    assert len(service.list_messages(conv.id, "alice", limit=0)) == 1
    assert len(service.list_messages(conv.id, "alice", limit=1000)) == 3


# --- Leave ---


def test_leave_semantics(service):
    conv = _group(service)
    service.send_message(conv.id, "bob", "before leaving")

    service.leave_conversation(conv.id, "bob")

    assert service.list_conversations("bob") == []
    assert service.get_conversation(conv.id, "bob") is None
    remaining = service.get_conversation(conv.id, "alice")
    assert {p.participant.user_id for p in remaining.participants} == {"alice", "carol"}
    assert [m.message.content for m in service.list_messages(conv.id, "carol")] == ["before leaving"]

    # Second leave is a no-op
    service.leave_conversation(conv.id, "bob")
    with pytest.raises(Forbidden):
        service.send_message(conv.id, "bob", "still here?")


def test_leaving_direct_allows_a_fresh_one(service):
    first = _direct(service)
    service.leave_conversation(first.id, "alice")

    second = _direct(service)
    assert second.id != first.id
    assert service.get_conversation(first.id, "bob") is not None


# --- Update / membership ---


def test_update_conversation_mute_and_rename(service):
    conv = _group(service)

    muted = service.update_conversation(conv.id, "bob", is_muted=True)
    assert muted.participant_for("bob").is_muted
    assert not muted.participant_for("alice").is_muted

    with pytest.raises(Forbidden):
        service.update_conversation(conv.id, "bob", name="Bob's trip")

    renamed = service.update_conversation(conv.id, "alice", name="  Road trip ")
    assert renamed.conversation.name == "Road trip"

    with pytest.raises(ValidationError):
        service.update_conversation(conv.id, "alice", name="  ")


def test_direct_conversation_cannot_be_renamed(service):
    conv = _direct(service)
    with pytest.raises(Forbidden):
        service.update_conversation(conv.id, "alice", name="Us")


def test_add_and_remove_participants(service):
    conv = _group(service)

    with pytest.raises(Forbidden):
        service.add_participant(conv.id, "bob", "dave")

    service.add_participant(conv.id, "alice", "dave")
    assert service.get_conversation(conv.id, "dave") is not None

    with pytest.raises(Conflict):
        service.add_participant(conv.id, "alice", "dave")

    with pytest.raises(ValidationError):
        service.remove_participant(conv.id, "alice", "alice")
    with pytest.raises(Forbidden):
        service.remove_participant(conv.id, "bob", "dave")

    service.remove_participant(conv.id, "alice", "dave")
    assert service.get_conversation(conv.id, "dave") is None

    # Re-adding reactivates the same membership
    service.add_participant(conv.id, "alice", "dave")
    assert service.get_conversation(conv.id, "dave") is not None


# --- Read state ---


def test_unread_counts(service):
    conv = _direct(service)
    service.send_message(conv.id, "alice", "one")
    service.send_message(conv.id, "alice", "two")
    service.send_message(conv.id, "bob", "mine")

    assert service.list_conversations("bob")[0].unread_count == 2
    assert service.list_conversations("alice")[0].unread_count == 1
    assert service.total_unread_count("bob") == 2

    service.mark_read(conv.id, "bob")
    assert service.list_conversations("bob")[0].unread_count == 0
    assert service.total_unread_count("bob") == 0

    service.send_message(conv.id, "alice", "three")
    assert service.total_unread_count("bob") == 1


def test_deleted_messages_do_not_count_as_unread(service):
    conv = _direct(service)
    sent = service.send_message(conv.id, "alice", "oops")
    service.delete_message(sent.message.id, "alice")
    assert service.total_unread_count("bob") == 0


def test_can_message_user_passthrough(service):
    assert service.can_message_user("alice", "bob").can_message
    service.directory.upsert_profile(Profile(id="bob", allow_messages=False))
    result = service.can_message_user("alice", "bob")
    assert not result.can_message
    assert result.reason == "This user has disabled direct messages"


def test_pagination_rejects_unknown_cursor(service):
    conv = _direct(service)
    other = _direct(service, "alice", "carol")
    for i in range(3):
        service.send_message(conv.id, "alice", f"m{i}")
    elsewhere = service.send_message(other.id, "alice", "elsewhere")

    with pytest.raises(ValidationError):
        service.list_messages(conv.id, "bob", before="f3b1c0de-0000-4000-8000-000000000000")
    with pytest.raises(ValidationError):
        service.list_messages(conv.id, "alice", before=elsewhere.message.id)


def test_concurrent_edit_and_delete(service):
    conv = _direct(service)
    sent = service.send_message(conv.id, "alice", "original")
    message_id = sent.message.id
    barrier = threading.Barrier(2)
    outcomes = {}

    def run(name, fn):
        barrier.wait()
        try:
            outcomes[name] = fn()
        except NotFound as e:
            outcomes[name] = e

    threads = [
        threading.Thread(target=run, args=("edit", lambda: service.edit_message(message_id, "alice", "changed"))),
        threading.Thread(target=run, args=("delete", lambda: service.delete_message(message_id, "alice"))),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not isinstance(outcomes["delete"], NotFound)
    assert service.messages.get(message_id).is_deleted
    assert service.list_messages(conv.id, "bob")[0].message.content == TOMBSTONE
    with pytest.raises(NotFound):
        service.edit_message(message_id, "alice", "after the fact")


def test_close_releases_moderation(service):
    conv = _direct(service)
    service.close()

    # A closed gate behaves like an outage: sends still fail open
    sent = service.send_message(conv.id, "alice", "still works")
    assert sent.message.content == "still works"
    assert not service.moderation.moderate("hello", fail_open=False).approved
