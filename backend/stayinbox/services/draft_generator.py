"""
Missing-details draft generator

After reconciliation, an incomplete reservation gets one automated
"please send us the missing details" draft:
- complete reservation -> nothing
- a pending draft already exists -> nothing (at most one automated draft in flight)
- otherwise render the configured template (must be active) or the built-in text
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from html import escape
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stayinbox.core.config import Settings
from stayinbox.core.errors import ReconciliationWriteError
from stayinbox.domain.models.email_draft import DraftOrigin, DraftStatus, EmailDraft
from stayinbox.domain.models.email_template import EmailTemplate
from stayinbox.domain.models.reservation import Reservation
from stayinbox.repositories.draft_repository import EmailDraftRepository
from stayinbox.repositories.message_repository import MailMessageRepository
from stayinbox.repositories.template_repository import EmailTemplateRepository
from stayinbox.services.extraction_gate import is_complete

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")

MISSING_DETAIL_LABELS: list[tuple[str, str]] = [
    ("arrival_date", "Check-in date"),
    ("departure_date", "Check-out date"),
    ("guest_name", "Guest name"),
    ("guest_email", "Contact email"),
    ("adults", "Number of adults"),
    ("children", "Number of children"),
]

DEFAULT_SUBJECT = "Reservation Inquiry"


def missing_detail_labels(reservation: Reservation) -> list[str]:
    labels = []
    for attr, label in MISSING_DETAIL_LABELS:
        value = getattr(reservation, attr)
        if value is None or (isinstance(value, str) and not value.strip()):
            labels.append(label)
    return labels


def render_template(template: str, values: dict[str, str]) -> str:
    """Replace {{key}} placeholders; unknown keys render as empty text."""
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), ""), template or "")


def placeholder_values(
    reservation: Reservation,
    *,
    fallback_email: Optional[str] = None,
    html: bool = False,
) -> dict[str, str]:
    guest_email = (reservation.guest_email or fallback_email or "").strip()
    guest_name = (reservation.guest_name or "").strip() or (guest_email.split("@")[0] if guest_email else "") or "Guest"

    labels = missing_detail_labels(reservation)
    if html:
        # guest-supplied values end up inside markup
        guest_name, guest_email = escape(guest_name), escape(guest_email)
        labels = [escape(label) for label in labels]
    separator = "<br>" if html else "\n"
    missing = separator.join(f"- {label}" for label in labels) if labels else "N/A"

    adults = str(reservation.adults if reservation.adults is not None else 0)
    children = str(reservation.children if reservation.children is not None else 0)

    return {
        "guest_name": guest_name,
        "guest_email": guest_email,
        "arrival_date": reservation.arrival_date.isoformat() if reservation.arrival_date else "Not provided",
        "departure_date": reservation.departure_date.isoformat() if reservation.departure_date else "Not provided",
        "adults": adults,
        "adult_count": adults,
        "children": children,
        "child_count": children,
        "missing_fields_list": missing,
        "missing_details": missing,
    }


def fallback_body(reservation: Reservation) -> str:
    bullets = "".join(f"- {label}\n" for label in missing_detail_labels(reservation))
    return (
        "Thank you for your inquiry. To assist you better, we need some additional information:\n\n"
        f"{bullets}"
        "\nPlease provide these details so we can prepare your personalized offer."
    )


@dataclass
class DraftGenerator:
    db: Session
    settings: Settings

    def maybe_create_missing_details_draft(self, reservation: Reservation) -> Optional[EmailDraft]:
        """Flushes the new draft; the caller commits it together with the extraction bookkeeping."""
        if is_complete(reservation):
            return None

        drafts = EmailDraftRepository(self.db)
        if drafts.get_pending_for_reservation(reservation.id) is not None:
            logger.debug("reservation %s already has a pending draft", reservation.id)
            return None

        first_subject: Optional[str] = None
        inbound_sender: Optional[str] = None
        if reservation.conversation_id is not None:
            messages = MailMessageRepository(self.db)
            thread = messages.list_for_conversation(reservation.conversation_id)
            if thread:
                first_subject = thread[0].subject
            inbound_sender = messages.first_inbound_sender(reservation.conversation_id)

        subject = f"Re: {first_subject or DEFAULT_SUBJECT}"
        body_text: Optional[str] = None
        body_html: Optional[str] = None

        template = self._resolve_template()
        if template is not None:
            if template.subject_template and template.subject_template.strip():
                subject = render_template(
                    template.subject_template,
                    placeholder_values(reservation, fallback_email=inbound_sender),
                )
            if template.html_body_template:
                body_html = render_template(
                    template.html_body_template,
                    placeholder_values(reservation, fallback_email=inbound_sender, html=True),
                )
            elif template.body_template:
                body_text = render_template(
                    template.body_template,
                    placeholder_values(reservation, fallback_email=inbound_sender),
                )

        if not body_text and not body_html:
            body_text = fallback_body(reservation)

        to_email = (reservation.guest_email or inbound_sender or "").strip()
        draft = EmailDraft(
            reservation_id=reservation.id,
            conversation_id=reservation.conversation_id,
            template_id=template.id if template is not None else None,
            to_recipients=[to_email] if to_email else [],
            cc_recipients=[],
            subject=subject,
            body_text=body_text or None,
            body_html=body_html,
            status=DraftStatus.pending,
            attempt_count=0,
            created_by=DraftOrigin.auto,
        )

        try:
            drafts.add(draft)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise ReconciliationWriteError(f"failed to insert email draft: {exc}") from exc

        logger.info(
            "missing-details draft %s created for reservation %s (to=%s)",
            draft.id,
            reservation.id,
            to_email or "-",
        )
        return draft

    def _resolve_template(self) -> Optional[EmailTemplate]:
        raw_id = self.settings.MISSING_DETAILS_TEMPLATE_ID
        if not raw_id:
            return None
        try:
            template_id = uuid.UUID(raw_id)
        except ValueError:
            logger.warning("MISSING_DETAILS_TEMPLATE_ID is not a UUID: %s", raw_id)
            return None

        template = EmailTemplateRepository(self.db).get_active(template_id)
        if template is None:
            logger.warning("missing-details template %s not found or inactive, using built-in text", raw_id)
        return template
