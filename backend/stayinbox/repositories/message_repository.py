from __future__ import annotations

from typing import Optional, Sequence
import uuid

from sqlalchemy import asc, desc, select, update
from sqlalchemy.orm import Session

from stayinbox.domain.models.conversation import MessageDirection
from stayinbox.domain.models.mail_message import MailMessage


class MailMessageRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_provider_id(self, provider_message_id: str) -> Optional[MailMessage]:
        stmt = select(MailMessage).where(MailMessage.provider_message_id == provider_message_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_conversation(self, conversation_id: uuid.UUID) -> Sequence[MailMessage]:
        """Oldest first."""
        stmt = (
            select(MailMessage)
            .where(MailMessage.conversation_id == conversation_id)
            .order_by(asc(MailMessage.received_at), asc(MailMessage.created_at))
        )
        return self.db.execute(stmt).scalars().all()

    def latest_for_conversation(self, conversation_id: uuid.UUID) -> Optional[MailMessage]:
        stmt = (
            select(MailMessage)
            .where(MailMessage.conversation_id == conversation_id)
            .order_by(desc(MailMessage.received_at))
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def first_inbound_sender(self, conversation_id: uuid.UUID) -> Optional[str]:
        stmt = (
            select(MailMessage.from_email)
            .where(
                MailMessage.conversation_id == conversation_id,
                MailMessage.direction == MessageDirection.inbound,
                MailMessage.from_email.is_not(None),
            )
            .order_by(asc(MailMessage.received_at))
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def list_unread_provider_ids(self, conversation_id: uuid.UUID) -> list[str]:
        stmt = select(MailMessage.provider_message_id).where(
            MailMessage.conversation_id == conversation_id,
            MailMessage.is_read.is_(False),
        )
        return list(self.db.execute(stmt).scalars().all())

    def mark_read(self, provider_message_ids: list[str]) -> int:
        if not provider_message_ids:
            return 0
        stmt = (
            update(MailMessage)
            .where(MailMessage.provider_message_id.in_(provider_message_ids))
            .values(is_read=True)
            .execution_options(synchronize_session="fetch")
        )
        return self.db.execute(stmt).rowcount or 0
