"""
Extraction runner

Per conversation: watermark check -> gate -> ExtractionTask -> reconcile ->
missing-details draft -> bookkeeping, all in one commit.

The extractor call is wrapped in an ExtractionTask executed inline. Its
timeout is enforced by the extractor client; a slow or failing call only
affects its own conversation, which is recorded as failed.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence
import uuid

from bs4 import BeautifulSoup
from sqlalchemy.orm import Session

from stayinbox.adapters.extraction_client import ExtractionRequest, ReservationExtractor
from stayinbox.core.config import Settings
from stayinbox.core.errors import ExtractionParseError, ExtractionUnavailable, ReconciliationWriteError
from stayinbox.domain.extraction import ExtractionResult
from stayinbox.domain.models.conversation import Conversation
from stayinbox.domain.models.mail_message import MailMessage
from stayinbox.domain.models.reservation import Reservation
from stayinbox.repositories.message_repository import MailMessageRepository
from stayinbox.repositories.reservation_repository import ReservationRepository
from stayinbox.services.draft_generator import DraftGenerator
from stayinbox.services.extraction_gate import GateDecision, needs_extraction, should_extract
from stayinbox.services.extraction_reconciler import ExtractionReconciler

logger = logging.getLogger(__name__)


def _html_to_text(body: str) -> str:
    soup = BeautifulSoup(body, "html.parser")
    for tag in soup.find_all(["script", "style", "head"]):
        tag.decompose()
    return soup.get_text(separator="\n", strip=True)


def build_email_content(messages: Sequence[MailMessage]) -> str:
    """Thread rendered oldest first, one block per message."""
    blocks = []
    for idx, m in enumerate(messages, 1):
        body = m.body_content or m.body_preview or ""
        if (m.body_content_type or "").lower() == "html":
            body = _html_to_text(body)
        blocks.append(
            f"Message {idx}:\n"
            f"Subject: {m.subject or ''}\n"
            f"From: {m.from_name or ''} <{m.from_email or ''}>\n"
            f"Date: {m.received_at.isoformat() if m.received_at else ''}\n"
            f"Body:\n{body}\n"
            "---"
        )
    return "\n\n".join(blocks)


@dataclass
class ExtractionTask:
    conversation_id: uuid.UUID
    thread_id: str
    request: ExtractionRequest


@dataclass
class ExtractionOutcome:
    """status: up_to_date | skipped | no_data | extracted | failed"""

    thread_id: str
    status: str
    reservation_id: Optional[uuid.UUID] = None
    draft_id: Optional[uuid.UUID] = None
    filled_fields: list[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ExtractionRunner:
    db: Session
    settings: Settings
    extractor: ReservationExtractor

    def run_for_conversation(self, conversation: Conversation, *, force: bool = False) -> ExtractionOutcome:
        """
        force=True bypasses the message watermark (targeted refresh of one
        thread); the completeness gate still applies.
        """
        retry_enabled = self.settings.EXTRACTION_RETRY_AFTER_SECONDS > 0
        if not force and not needs_extraction(conversation, retry_enabled=retry_enabled):
            return ExtractionOutcome(thread_id=conversation.thread_id, status="up_to_date")

        reconciler = ExtractionReconciler(self.db, self.settings)
        reservation = ReservationRepository(self.db).get_by_conversation_id(conversation.id)

        decision = should_extract(reservation)
        if decision.skip:
            reconciler.record_no_data(conversation, reservation)
            reconciler.commit()
            logger.debug("thread %s: reservation complete, extraction skipped", conversation.thread_id)
            return ExtractionOutcome(
                thread_id=conversation.thread_id,
                status="skipped",
                reservation_id=reservation.id if reservation else None,
            )

        task = self.build_task(conversation, reservation, decision)
        try:
            result = self.execute(task)
            if not result.has_data:
                reconciler.record_no_data(conversation, reservation)
                reconciler.commit()
                return ExtractionOutcome(
                    thread_id=conversation.thread_id,
                    status="no_data",
                    reservation_id=reservation.id if reservation else None,
                )

            merged = reconciler.reconcile(reservation, result.data, conversation)
            draft = DraftGenerator(self.db, self.settings).maybe_create_missing_details_draft(merged.reservation)
            reconciler.record_success(conversation, merged.reservation)
            reconciler.commit()
        except (ExtractionUnavailable, ExtractionParseError, ReconciliationWriteError) as exc:
            self.db.rollback()
            error = f"{type(exc).__name__}: {exc}"
            logger.warning("thread %s: extraction failed: %s", conversation.thread_id, error)
            reconciler.record_failure(conversation, error, reservation)
            reconciler.commit()
            return ExtractionOutcome(thread_id=conversation.thread_id, status="failed", error=error)

        return ExtractionOutcome(
            thread_id=conversation.thread_id,
            status="extracted",
            reservation_id=merged.reservation.id,
            draft_id=draft.id if draft is not None else None,
            filled_fields=merged.filled_fields,
        )

    def build_task(
        self,
        conversation: Conversation,
        reservation: Optional[Reservation],
        decision: GateDecision,
    ) -> ExtractionTask:
        messages = MailMessageRepository(self.db).list_for_conversation(conversation.id)
        return ExtractionTask(
            conversation_id=conversation.id,
            thread_id=conversation.thread_id,
            request=ExtractionRequest(
                email_content=build_email_content(messages),
                reservation_id=str(reservation.id) if reservation else None,
                missing_fields=decision.missing_field_hints,
            ),
        )

    def execute(self, task: ExtractionTask) -> ExtractionResult:
        started = time.monotonic()
        result = self.extractor.extract(task.request)
        logger.info(
            "thread %s: extraction finished in %.1fs (data=%s, hints=%s)",
            task.thread_id,
            time.monotonic() - started,
            result.has_data,
            ",".join(task.request.missing_fields) or "-",
        )
        return result
