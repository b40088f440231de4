from __future__ import annotations

from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stayinbox.api.deps import get_app_settings, get_http_client
from stayinbox.api.v1.mailbox import message_to_dto
from stayinbox.api.v1.reservations import reservation_to_dto
from stayinbox.api.v1.schemas.conversation import (
    ConversationListItemDTO,
    ConversationListResponse,
    OpenConversationResponse,
)
from stayinbox.api.v1.schemas.mailbox import MailMessageDTO
from stayinbox.core.config import Settings
from stayinbox.db.session import get_db
from stayinbox.services.conversation_service import ConversationService, ConversationSummary

router = APIRouter(prefix="/conversations", tags=["conversations"])


def _summary_to_dto(s: ConversationSummary) -> ConversationListItemDTO:
    conv = s.conversation
    reservation = reservation_to_dto(s.reservation, s.proposal_count) if s.reservation is not None else None
    return ConversationListItemDTO(
        id=conv.id,
        thread_id=conv.thread_id,
        mailbox_address=conv.mailbox_address,
        subject=conv.subject,
        participants=list(conv.participants or []),
        first_message_at=conv.first_message_at,
        last_message_at=conv.last_message_at,
        last_message_direction=conv.last_message_direction.value if conv.last_message_direction else None,
        is_new=s.is_new,
        unread_count=s.unread_count,
        last_extraction_error=conv.last_extraction_error,
        reservation=reservation,
    )


@router.get("", response_model=ConversationListResponse)
def list_conversations(
    mailbox_address: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    summaries = ConversationService(db, settings).list_conversations(mailbox=mailbox_address, limit=limit)
    return ConversationListResponse(items=[_summary_to_dto(s) for s in summaries])


@router.get("/{conversation_ref}/messages", response_model=List[MailMessageDTO])
def list_messages(
    conversation_ref: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """conversation_ref: local UUID or provider thread id. Oldest first."""
    return [message_to_dto(m) for m in ConversationService(db, settings).list_messages(conversation_ref)]


@router.post("/{conversation_ref}/open", response_model=OpenConversationResponse)
def open_conversation(
    conversation_ref: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    http: httpx.Client = Depends(get_http_client),
):
    result = ConversationService(db, settings, http=http).open_conversation(conversation_ref)
    return OpenConversationResponse(
        id=result.conversation.id,
        thread_id=result.conversation.thread_id,
        viewed_at=result.conversation.viewed_at,
        marked_read=result.marked_read,
        provider_errors=result.provider_errors,
    )
