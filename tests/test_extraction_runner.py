"""Tests for the per-conversation extraction runner."""

from datetime import date

from sqlalchemy.exc import OperationalError

from conftest import MAILBOX, FakeExtractor, graph_message
from stayinbox.core.errors import ExtractionParseError
from stayinbox.core.timeutil import as_utc
from stayinbox.domain.graph_message import parse_graph_messages
from stayinbox.domain.models.email_draft import EmailDraft
from stayinbox.domain.models.reservation import Reservation
from stayinbox.repositories.draft_repository import EmailDraftRepository
from stayinbox.repositories.message_repository import MailMessageRepository
from stayinbox.services.extraction_reconciler import ExtractionReconciler
from stayinbox.services.extraction_runner import ExtractionRunner, build_email_content
from stayinbox.services.store_sync import StoreSync


def _conversation(db, payloads):
    return StoreSync(db).reconcile("t1", parse_graph_messages(payloads), mailbox=MAILBOX).conversation


def test_build_email_content_strips_html(db):
    html = graph_message("m1", "t1", subject="Stay")
    html["body"] = {"contentType": "html", "content": "<p>Arrival&nbsp;10 Feb</p><p>2 adults</p>"}
    conv = _conversation(db, [html, graph_message("m2", "t1", body="Thanks", received="2026-01-21T09:00:00Z")])

    content = build_email_content(MailMessageRepository(db).list_for_conversation(conv.id))

    assert content.startswith("Message 1:\nSubject: Stay\nFrom: John Smith <john@example.com>\n")
    assert "Arrival\xa010 Feb\n2 adults" in content
    assert "<p>" not in content
    assert "Message 2:" in content
    assert content.endswith("---")


def test_build_email_content_drops_outlook_style_block(db):
    """Outlook bodies open with a <head><style> block; its CSS must not reach the extractor."""
    outlook = graph_message("m1", "t1", subject="Stay")
    outlook["body"] = {
        "contentType": "html",
        "content": (
            '<html><head><meta http-equiv="Content-Type" content="text/html; charset=utf-8">'
            '<style type="text/css" style="display:none"> P {margin-top:0;margin-bottom:0;} </style>'
            "</head><body><div><p>Arrival 10 Feb</p><script>track()</script><p>Departure 12 Feb</p></div></body></html>"
        ),
    }
    conv = _conversation(db, [outlook])

    content = build_email_content(MailMessageRepository(db).list_for_conversation(conv.id))

    assert "margin-top" not in content
    assert "track()" not in content
    assert "Body:\nArrival 10 Feb\nDeparture 12 Feb\n---" in content


def test_complete_reservation_is_skipped_without_calling_extractor(db, settings, complete_extraction):
    conv = _conversation(db, [graph_message("m1", "t1")])
    db.add(
        Reservation(
            conversation_id=conv.id,
            guest_name="John",
            guest_email="john@example.com",
            arrival_date=date(2026, 2, 10),
            departure_date=date(2026, 2, 12),
            adults=2,
            children=0,
        )
    )
    db.commit()
    extractor = FakeExtractor(complete_extraction)

    outcome = ExtractionRunner(db, settings, extractor).run_for_conversation(conv)

    assert outcome.status == "skipped"
    assert extractor.calls == []
    assert conv.last_extraction_attempted_at == conv.last_message_at
    assert conv.last_extracted_message_at is None


def test_empty_extraction_is_no_data(db, settings):
    conv = _conversation(db, [graph_message("m1", "t1")])

    outcome = ExtractionRunner(db, settings, FakeExtractor({})).run_for_conversation(conv)

    assert outcome.status == "no_data"
    assert db.query(Reservation).count() == 0
    assert conv.last_extraction_error is None


def test_parse_error_is_recorded(db, settings):
    conv = _conversation(db, [graph_message("m1", "t1")])

    outcome = ExtractionRunner(db, settings, FakeExtractor(error=ExtractionParseError("garbled"))).run_for_conversation(conv)

    assert outcome.status == "failed"
    assert conv.last_extraction_error == "ExtractionParseError: garbled"


def test_draft_write_failure_rolls_back_the_whole_run(db, settings, complete_extraction, monkeypatch):
    """A failed draft insert leaves no reservation behind and the watermark where it was."""
    conv = _conversation(db, [graph_message("m1", "t1")])

    def broken_add(self, draft):
        raise OperationalError("INSERT INTO email_drafts", {}, Exception("disk full"))

    monkeypatch.setattr(EmailDraftRepository, "add", broken_add)
    extractor = FakeExtractor({**complete_extraction, "departure_date": None})

    outcome = ExtractionRunner(db, settings, extractor).run_for_conversation(conv)

    assert outcome.status == "failed"
    assert outcome.error.startswith("ReconciliationWriteError")
    db.refresh(conv)
    assert conv.last_extracted_message_at is None
    assert conv.last_extraction_error.startswith("ReconciliationWriteError")
    assert conv.last_extraction_attempted_at is not None
    assert db.query(Reservation).count() == 0
    assert db.query(EmailDraft).count() == 0


def test_reservation_write_failure_keeps_previous_watermark(db, settings, complete_extraction, monkeypatch):
    conv = _conversation(db, [graph_message("m1", "t1")])
    runner = ExtractionRunner(db, settings, FakeExtractor({**complete_extraction, "departure_date": None}))
    assert runner.run_for_conversation(conv).status == "extracted"
    watermark = as_utc(conv.last_extracted_message_at)

    conv = _conversation(
        db,
        [graph_message("m1", "t1"), graph_message("m2", "t1", body="We leave on the 14th", received="2026-01-21T09:00:00Z")],
    )
    runner.extractor.data = {"departure_date": "2026-02-14"}

    def broken_fill(self, reservation, extracted, conversation):
        reservation.departure_date = extracted.departure_date
        raise OperationalError("UPDATE reservations", {}, Exception("database is locked"))

    monkeypatch.setattr(ExtractionReconciler, "_fill_missing", broken_fill)

    outcome = runner.run_for_conversation(conv)

    assert outcome.status == "failed"
    db.refresh(conv)
    assert as_utc(conv.last_extracted_message_at) == watermark
    assert as_utc(conv.last_message_at) > watermark
    assert conv.last_extraction_error.startswith("ReconciliationWriteError")
    (reservation,) = db.query(Reservation).all()
    assert reservation.departure_date is None
