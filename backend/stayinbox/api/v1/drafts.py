from __future__ import annotations

from typing import List
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from stayinbox.api.deps import get_app_settings, get_http_client
from stayinbox.api.v1.schemas.email import EmailDraftDTO
from stayinbox.core.config import Settings
from stayinbox.core.errors import NotFound
from stayinbox.db.session import get_db
from stayinbox.domain.models.email_draft import EmailDraft
from stayinbox.repositories.draft_repository import EmailDraftRepository
from stayinbox.repositories.reservation_repository import ReservationRepository
from stayinbox.services.send_orchestrator import SendOrchestrator

router = APIRouter(tags=["drafts"])


def _draft_to_dto(d: EmailDraft) -> EmailDraftDTO:
    return EmailDraftDTO(
        id=d.id,
        reservation_id=d.reservation_id,
        conversation_id=d.conversation_id,
        template_id=d.template_id,
        to_recipients=list(d.to_recipients or []),
        cc_recipients=list(d.cc_recipients or []),
        subject=d.subject,
        body_html=d.body_html,
        body_text=d.body_text,
        status=d.status.value,
        error_message=d.error_message,
        attempt_count=d.attempt_count,
        created_by=d.created_by.value,
        sent_at=d.sent_at,
        created_at=d.created_at,
    )


@router.get("/reservations/{reservation_id}/drafts", response_model=List[EmailDraftDTO])
def list_drafts(reservation_id: UUID, db: Session = Depends(get_db)):
    if ReservationRepository(db).get(reservation_id) is None:
        raise NotFound(f"reservation {reservation_id} not found")
    return [_draft_to_dto(d) for d in EmailDraftRepository(db).list_for_reservation(reservation_id)]


@router.post("/drafts/{draft_id}/send", response_model=EmailDraftDTO)
def send_draft(
    draft_id: UUID,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    http: httpx.Client = Depends(get_http_client),
):
    return _draft_to_dto(SendOrchestrator(db, settings, http=http).send_draft(draft_id))


@router.delete("/drafts/{draft_id}", status_code=204)
def discard_draft(
    draft_id: UUID,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    SendOrchestrator(db, settings).discard_draft(draft_id)
    return Response(status_code=204)
