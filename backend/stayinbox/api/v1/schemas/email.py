from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SendEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: List[str] = Field(default_factory=list)
    cc: List[str] = Field(default_factory=list)
    subject: str = ""
    body_html: Optional[str] = Field(default=None, alias="bodyHtml")
    body_text: Optional[str] = Field(default=None, alias="bodyText")
    reservation_id: Optional[UUID] = Field(default=None, alias="reservationId")
    # local conversation UUID or provider thread id
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    template_id: Optional[UUID] = Field(default=None, alias="templateId")
    attachment_ids: List[UUID] = Field(default_factory=list, alias="attachmentIds")
    mailbox_address: Optional[str] = Field(default=None, alias="mailboxAddress")


class SendEmailResponse(BaseModel):
    success: bool = True
    mode: str
    replied_to: Optional[str] = None
    attachments_sent: List[UUID] = []
    attachments_skipped: List[UUID] = []


class CheckTextRequest(BaseModel):
    emailText: str


class CheckTextResponse(BaseModel):
    correctedText: str


class EmailDraftDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reservation_id: UUID
    conversation_id: Optional[UUID] = None
    template_id: Optional[UUID] = None
    to_recipients: List[str] = []
    cc_recipients: List[str] = []
    subject: str
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    status: str
    error_message: Optional[str] = None
    attempt_count: int = 0
    created_by: str
    sent_at: Optional[datetime] = None
    created_at: datetime
