"""Tests for the conversation/message store sync."""

from conftest import MAILBOX, graph_message
from stayinbox.core.timeutil import as_utc
from stayinbox.domain.graph_message import parse_graph_messages
from stayinbox.domain.models.conversation import MessageDirection
from stayinbox.repositories.message_repository import MailMessageRepository
from stayinbox.services.store_sync import StoreSync


def _sync(db, payloads):
    return StoreSync(db).reconcile("t1", parse_graph_messages(payloads), mailbox=MAILBOX)


def test_new_thread_creates_conversation_and_messages(db):
    result = _sync(
        db,
        [
            graph_message("m1", "t1", subject="Stay in February", received="2026-01-20T09:00:00Z"),
            graph_message("m2", "t1", sender=MAILBOX, subject="RE: Stay in February", received="2026-01-20T10:00:00Z"),
        ],
    )

    conv = result.conversation
    assert result.created is True
    assert conv.subject == "Stay in February"
    assert conv.last_message_direction == MessageDirection.outbound
    assert as_utc(conv.first_message_at).hour == 9
    assert as_utc(conv.last_message_at).hour == 10
    assert set(conv.participants) == {"john@example.com", MAILBOX}

    stored = MailMessageRepository(db).list_for_conversation(conv.id)
    assert [m.provider_message_id for m in stored] == ["m1", "m2"]
    assert [m.direction for m in stored] == [MessageDirection.inbound, MessageDirection.outbound]


def test_resync_is_idempotent_and_keeps_subject(db):
    _sync(db, [graph_message("m1", "t1", subject="Original")])
    result = _sync(db, [graph_message("m1", "t1", subject="Changed")])

    assert result.created is False
    assert result.conversation.subject == "Original"
    assert len(MailMessageRepository(db).list_for_conversation(result.conversation.id)) == 1


def test_missing_subject_gets_placeholder(db):
    payload = graph_message("m1", "t1")
    payload["subject"] = None

    assert _sync(db, [payload]).conversation.subject == "(No Subject)"


def test_read_message_never_flips_back_to_unread(db):
    _sync(db, [graph_message("m1", "t1", is_read=False)])
    MailMessageRepository(db).mark_read(["m1"])
    db.commit()

    _sync(db, [graph_message("m1", "t1", is_read=False)])

    assert MailMessageRepository(db).get_by_provider_id("m1").is_read is True


def test_timestamps_only_widen(db):
    _sync(
        db,
        [
            graph_message("m1", "t1", received="2026-01-20T09:00:00Z"),
            graph_message("m2", "t1", received="2026-01-22T09:00:00Z"),
        ],
    )
    # a partial page containing only the middle message
    result = _sync(db, [graph_message("m3", "t1", received="2026-01-21T09:00:00Z")])

    conv = result.conversation
    assert as_utc(conv.first_message_at).day == 20
    assert as_utc(conv.last_message_at).day == 22


def test_local_fields_untouched(db):
    first = _sync(db, [graph_message("m1", "t1")]).conversation
    first.last_extraction_error = "boom"
    db.commit()

    again = _sync(db, [graph_message("m2", "t1", received="2026-01-21T09:00:00Z")]).conversation

    assert again.last_extraction_error == "boom"
    assert again.viewed_at is None
