"""Tests for the extraction gate."""

from datetime import date, datetime, timedelta, timezone

from stayinbox.domain.models.conversation import Conversation
from stayinbox.domain.models.reservation import Reservation
from stayinbox.services.extraction_gate import (
    has_new_messages,
    is_complete,
    missing_fields,
    needs_extraction,
    should_extract,
)

T0 = datetime(2026, 1, 20, 9, 0, tzinfo=timezone.utc)


def _reservation(**overrides) -> Reservation:
    values = dict(
        arrival_date=date(2026, 2, 10),
        departure_date=date(2026, 2, 12),
        guest_name="John Smith",
        guest_email="john@example.com",
        adults=2,
        children=0,
    )
    values.update(overrides)
    return Reservation(**values)


def test_complete_reservation_is_skipped():
    decision = should_extract(_reservation())

    assert decision.skip is True
    assert decision.missing_field_hints == []


def test_additional_info_is_not_required():
    assert is_complete(_reservation(additional_info=None))


def test_blank_string_counts_as_missing():
    r = _reservation(guest_name="  ")

    assert not is_complete(r)
    assert missing_fields(r) == ["guest_name"]


def test_missing_counts_are_hinted():
    decision = should_extract(_reservation(departure_date=None, children=None))

    assert decision.skip is False
    assert decision.missing_field_hints == ["departure_date", "child_count"]


def test_no_reservation_runs_without_hints():
    decision = should_extract(None)

    assert decision.skip is False
    assert decision.missing_field_hints == []


def test_watermark():
    conv = Conversation(thread_id="t1", last_message_at=T0)
    assert has_new_messages(conv)

    conv.last_extracted_message_at = T0
    assert not has_new_messages(conv)

    conv.last_message_at = T0 + timedelta(minutes=1)
    assert has_new_messages(conv)


def test_failed_thread_is_retried_next_pass():
    """The watermark only advances on success."""
    conv = Conversation(
        thread_id="t1",
        last_message_at=T0,
        last_extracted_message_at=None,
        last_extraction_attempted_at=T0,
        last_extraction_error="timeout",
    )

    assert needs_extraction(conv) is True


def test_retry_window_holds_back_failed_thread():
    conv = Conversation(
        thread_id="t1",
        last_message_at=T0,
        last_extraction_attempted_at=T0,
        last_extraction_error="timeout",
        extraction_retry_after=T0 + timedelta(minutes=10),
    )

    assert needs_extraction(conv, retry_enabled=True, now=T0 + timedelta(minutes=5)) is False
    assert needs_extraction(conv, retry_enabled=True, now=T0 + timedelta(minutes=11)) is True
    # the window is ignored when retries are not configured
    assert needs_extraction(conv, now=T0 + timedelta(minutes=5)) is True


def test_new_mail_ends_backoff_early():
    conv = Conversation(
        thread_id="t1",
        last_message_at=T0 + timedelta(minutes=2),
        last_extraction_attempted_at=T0,
        last_extraction_error="timeout",
        extraction_retry_after=T0 + timedelta(minutes=10),
    )

    assert needs_extraction(conv, retry_enabled=True, now=T0 + timedelta(minutes=5)) is True


def test_successful_incomplete_thread_waits_for_new_mail():
    conv = Conversation(thread_id="t1", last_message_at=T0, last_extracted_message_at=T0)

    assert needs_extraction(conv) is False
    assert needs_extraction(conv, retry_enabled=True) is False
