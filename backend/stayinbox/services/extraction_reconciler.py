"""
Extraction reconciler

Merges an extracted partial record into the conversation's reservation.

Policy (preserve-existing):
- no reservation yet: create one seeded from the extraction, adult/child
  counts default to 0, status pending, currency from settings, guest email
  falls back to the first inbound sender
- reservation exists: only fields that are currently null or blank are
  filled; a value already on the record (staff edit or earlier extraction)
  is never overwritten

Bookkeeping on the conversation:
- success: attempted = watermark = last_message_at (watermark never moves
  back), error and retry window cleared
- benign no-data / skip: attempted only
- failure: attempted + error, watermark untouched, optional retry window
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stayinbox.core.config import Settings
from stayinbox.core.errors import ReconciliationWriteError
from stayinbox.core.timeutil import as_utc, now_utc
from stayinbox.domain.extraction import ExtractedReservation
from stayinbox.domain.models.conversation import Conversation
from stayinbox.domain.models.reservation import Reservation, ReservationStatus
from stayinbox.repositories.message_repository import MailMessageRepository
from stayinbox.repositories.reservation_repository import ReservationRepository

logger = logging.getLogger(__name__)

# extracted field -> reservation attribute
FIELD_MAP: dict[str, str] = {
    "arrival_date": "arrival_date",
    "departure_date": "departure_date",
    "guest_name": "guest_name",
    "guest_email": "guest_email",
    "guest_phone": "guest_phone",
    "adult_count": "adults",
    "child_count": "children",
    "room_count": "room_count",
    "additional_info": "additional_info",
}


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass
class ReconcileOutcome:
    reservation: Reservation
    created: bool
    filled_fields: list[str] = field(default_factory=list)


@dataclass
class ExtractionReconciler:
    db: Session
    settings: Settings

    # ---------------------------------------------------------
    # Merge
    # ---------------------------------------------------------
    def reconcile(
        self,
        reservation: Optional[Reservation],
        extracted: ExtractedReservation,
        conversation: Conversation,
    ) -> ReconcileOutcome:
        """Writes are flushed, not committed; see commit()."""
        try:
            if reservation is None:
                outcome = self._create(extracted, conversation)
            else:
                outcome = self._fill_missing(reservation, extracted, conversation)
            self.db.flush()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise ReconciliationWriteError(str(exc)) from exc
        return outcome

    def _create(self, extracted: ExtractedReservation, conversation: Conversation) -> ReconcileOutcome:
        guest_email = extracted.guest_email or self._first_inbound_sender(conversation)
        reservation = Reservation(
            conversation_id=conversation.id,
            guest_name=extracted.guest_name,
            guest_email=guest_email,
            guest_phone=extracted.guest_phone,
            arrival_date=extracted.arrival_date,
            departure_date=extracted.departure_date,
            adults=extracted.adult_count if extracted.adult_count is not None else 0,
            children=extracted.child_count if extracted.child_count is not None else 0,
            room_count=extracted.room_count,
            room_details=[],
            nightly_rate_currency=self.settings.DEFAULT_RATE_CURRENCY,
            additional_info=extracted.additional_info,
            status=ReservationStatus.pending,
            archived=False,
        )
        ReservationRepository(self.db).add(reservation)
        filled = [attr for attr in FIELD_MAP.values() if not _is_blank(getattr(reservation, attr))]
        logger.info("created reservation for thread %s (%s)", conversation.thread_id, ", ".join(filled) or "empty")
        return ReconcileOutcome(reservation=reservation, created=True, filled_fields=filled)

    def _fill_missing(
        self,
        reservation: Reservation,
        extracted: ExtractedReservation,
        conversation: Conversation,
    ) -> ReconcileOutcome:
        filled: list[str] = []
        for source, attr in FIELD_MAP.items():
            value = getattr(extracted, source)
            if value is None or not _is_blank(getattr(reservation, attr)):
                continue
            setattr(reservation, attr, value)
            filled.append(attr)

        if _is_blank(reservation.guest_email):
            inferred = self._first_inbound_sender(conversation)
            if inferred:
                reservation.guest_email = inferred
                filled.append("guest_email")

        self.db.add(reservation)
        if filled:
            logger.info("filled %s on reservation %s", ", ".join(filled), reservation.id)
        return ReconcileOutcome(reservation=reservation, created=False, filled_fields=filled)

    def _first_inbound_sender(self, conversation: Conversation) -> Optional[str]:
        return MailMessageRepository(self.db).first_inbound_sender(conversation.id)

    # ---------------------------------------------------------
    # Bookkeeping
    # ---------------------------------------------------------
    def record_success(self, conversation: Conversation, reservation: Reservation) -> None:
        at = conversation.last_message_at
        conversation.last_extraction_attempted_at = at
        watermark = as_utc(conversation.last_extracted_message_at)
        if at is not None and (watermark is None or as_utc(at) > watermark):
            conversation.last_extracted_message_at = at
        conversation.last_extraction_error = None
        conversation.extraction_retry_after = None

        now = now_utc()
        reservation.last_extraction_attempted_at = now
        reservation.last_extracted_at = now
        reservation.last_extraction_error = None
        reservation.extractor_version = self.settings.EXTRACTOR_VERSION
        self.db.add_all([conversation, reservation])

    def record_no_data(self, conversation: Conversation, reservation: Optional[Reservation] = None) -> None:
        conversation.last_extraction_attempted_at = conversation.last_message_at
        conversation.extraction_retry_after = None
        self.db.add(conversation)
        if reservation is not None:
            reservation.last_extraction_attempted_at = now_utc()
            self.db.add(reservation)

    def record_failure(
        self,
        conversation: Conversation,
        error: str,
        reservation: Optional[Reservation] = None,
    ) -> None:
        conversation.last_extraction_attempted_at = conversation.last_message_at
        conversation.last_extraction_error = error[:2000]
        retry_seconds = self.settings.EXTRACTION_RETRY_AFTER_SECONDS
        conversation.extraction_retry_after = (
            now_utc() + timedelta(seconds=retry_seconds) if retry_seconds > 0 else None
        )
        self.db.add(conversation)
        if reservation is not None:
            reservation.last_extraction_attempted_at = now_utc()
            reservation.last_extraction_error = error[:2000]
            self.db.add(reservation)

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise ReconciliationWriteError(str(exc)) from exc
