"""
Extraction gate

Two independent checks decide whether a conversation is sent to the extractor:

1. has_new_messages(): the thread's last_message_at is strictly newer than the
   last_extracted_message_at watermark. The watermark only moves on success,
   so a failed thread is tried again on the next pass, while an incomplete
   thread that was extracted successfully waits for new mail (cost control).
   When a retry window is configured, a failed thread with no mail newer than
   the failed attempt is held back until extraction_retry_after has passed.
2. should_extract(): the attached reservation is not yet complete.

Complete means arrival date, departure date and guest name are set, guest
email or guest name is present, and adult and child counts are set.
additional_info is not required. Blank strings count as missing.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from stayinbox.core.timeutil import as_utc, now_utc
from stayinbox.domain.models.conversation import Conversation
from stayinbox.domain.models.reservation import Reservation

# hint name -> reservation attribute, in prompt order
HINT_FIELDS: dict[str, str] = {
    "arrival_date": "arrival_date",
    "departure_date": "departure_date",
    "guest_name": "guest_name",
    "guest_email": "guest_email",
    "adult_count": "adults",
    "child_count": "children",
}


@dataclass(frozen=True)
class GateDecision:
    skip: bool
    missing_field_hints: list[str] = field(default_factory=list)


def _present(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def missing_fields(reservation: Optional[Reservation]) -> list[str]:
    if reservation is None:
        return list(HINT_FIELDS)
    return [hint for hint, attr in HINT_FIELDS.items() if not _present(getattr(reservation, attr))]


def is_complete(reservation: Optional[Reservation]) -> bool:
    if reservation is None:
        return False
    r = reservation
    return (
        _present(r.arrival_date)
        and _present(r.departure_date)
        and _present(r.guest_name)
        and (_present(r.guest_email) or _present(r.guest_name))
        and r.adults is not None
        and r.children is not None
    )


def should_extract(reservation: Optional[Reservation]) -> GateDecision:
    if is_complete(reservation):
        return GateDecision(skip=True)
    # without a record there is nothing to fill in
    hints = missing_fields(reservation) if reservation is not None else []
    return GateDecision(skip=False, missing_field_hints=hints)


def has_new_messages(conversation: Conversation) -> bool:
    last_at = as_utc(conversation.last_message_at)
    if last_at is None:
        return False
    watermark = as_utc(conversation.last_extracted_message_at)
    return watermark is None or last_at > watermark


def in_backoff(conversation: Conversation, *, now: Optional[datetime] = None) -> bool:
    """Failed attempt still inside its retry window, and nothing newer arrived since."""
    retry_after = as_utc(conversation.extraction_retry_after)
    if retry_after is None or conversation.last_extraction_error is None:
        return False
    if retry_after <= (now or now_utc()):
        return False
    attempted = as_utc(conversation.last_extraction_attempted_at)
    last_at = as_utc(conversation.last_message_at)
    return attempted is not None and last_at is not None and last_at <= attempted


def needs_extraction(conversation: Conversation, *, retry_enabled: bool = False, now: Optional[datetime] = None) -> bool:
    if not has_new_messages(conversation):
        return False
    return not (retry_enabled and in_backoff(conversation, now=now))
