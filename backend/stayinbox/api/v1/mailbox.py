from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stayinbox.adapters.extraction_client import ReservationExtractor
from stayinbox.api.deps import get_app_settings, get_extractor, get_http_client
from stayinbox.api.v1.schemas.mailbox import (
    ExtractionOutcomeDTO,
    MailMessageDTO,
    SyncConversationRequest,
    SyncRequest,
    SyncResponse,
)
from stayinbox.core.config import Settings
from stayinbox.db.session import get_db
from stayinbox.domain.models.mail_message import MailMessage
from stayinbox.services.mailbox_sync_service import MailboxSyncService, SyncResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mailbox", tags=["mailbox"])


def message_to_dto(m: MailMessage) -> MailMessageDTO:
    return MailMessageDTO(
        id=m.id,
        provider_message_id=m.provider_message_id,
        conversation_id=m.conversation_id,
        thread_id=m.thread_id,
        subject=m.subject,
        from_name=m.from_name,
        from_email=m.from_email,
        to_emails=list(m.to_emails or []),
        cc_emails=list(m.cc_emails or []),
        body_preview=m.body_preview,
        body_content=m.body_content,
        body_content_type=m.body_content_type,
        received_at=m.received_at,
        direction=m.direction.value,
        is_read=m.is_read,
        has_attachments=m.has_attachments,
    )


def _to_response(result: SyncResult) -> SyncResponse:
    return SyncResponse(
        mailbox_address=result.mailbox,
        synced_count=result.synced_count,
        conversation_count=result.conversation_count,
        messages=[message_to_dto(m) for m in result.messages],
        extraction=[
            ExtractionOutcomeDTO(
                thread_id=o.thread_id,
                status=o.status,
                reservation_id=o.reservation_id,
                draft_id=o.draft_id,
                filled_fields=o.filled_fields,
                error=o.error,
            )
            for o in result.extraction
        ],
        errors=result.errors,
    )


@router.post("/sync", response_model=SyncResponse)
def sync_mailbox(
    body: SyncRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    extractor: ReservationExtractor = Depends(get_extractor),
    http: httpx.Client = Depends(get_http_client),
):
    """
    Full sync pass: recent Inbox + Sent Items -> conversations -> extraction.
    """
    service = MailboxSyncService(db, settings, extractor=extractor, http=http)
    return _to_response(service.sync(body.mailbox_address))


@router.post("/sync-conversation", response_model=SyncResponse)
def sync_conversation(
    body: SyncConversationRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    extractor: ReservationExtractor = Depends(get_extractor),
    http: httpx.Client = Depends(get_http_client),
):
    """
    Targeted refresh of one thread; re-runs extraction even without new mail.
    """
    service = MailboxSyncService(db, settings, extractor=extractor, http=http)
    return _to_response(service.sync_conversation(body.mailbox_address, body.conversation_id))
