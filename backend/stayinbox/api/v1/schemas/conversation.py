from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class ReservationSummaryDTO(BaseModel):
    id: UUID
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    arrival_date: Optional[date] = None
    departure_date: Optional[date] = None
    adults: Optional[int] = None
    children: Optional[int] = None
    status: str
    archived: bool
    is_complete: bool
    proposal_count: int = 0


class ConversationListItemDTO(BaseModel):
    id: UUID
    thread_id: str
    mailbox_address: Optional[str] = None
    subject: str
    participants: List[str] = []
    first_message_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    last_message_direction: Optional[str] = None
    is_new: bool
    unread_count: int = 0
    last_extraction_error: Optional[str] = None
    reservation: Optional[ReservationSummaryDTO] = None


class ConversationListResponse(BaseModel):
    items: List[ConversationListItemDTO]


class OpenConversationResponse(BaseModel):
    id: UUID
    thread_id: str
    viewed_at: Optional[datetime] = None
    marked_read: int
    provider_errors: List[str] = []
