from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class SyncRequest(BaseModel):
    mailbox_address: Optional[str] = None


class SyncConversationRequest(BaseModel):
    mailbox_address: Optional[str] = None
    # provider thread id
    conversation_id: str


class MailMessageDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider_message_id: str
    conversation_id: UUID
    thread_id: str
    subject: Optional[str] = None
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    to_emails: List[str] = []
    cc_emails: List[str] = []
    body_preview: Optional[str] = None
    body_content: Optional[str] = None
    body_content_type: Optional[str] = None
    received_at: datetime
    direction: str
    is_read: bool
    has_attachments: bool


class ExtractionOutcomeDTO(BaseModel):
    thread_id: str
    status: str
    reservation_id: Optional[UUID] = None
    draft_id: Optional[UUID] = None
    filled_fields: List[str] = []
    error: Optional[str] = None


class SyncResponse(BaseModel):
    success: bool = True
    mailbox_address: str
    synced_count: int
    conversation_count: int
    messages: List[MailMessageDTO]
    extraction: List[ExtractionOutcomeDTO] = []
    errors: List[str] = []
