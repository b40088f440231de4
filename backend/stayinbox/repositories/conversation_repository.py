from __future__ import annotations

from typing import Optional, Sequence
import uuid

from sqlalchemy import desc, func, or_, select
from sqlalchemy.orm import Session

from stayinbox.domain.models.conversation import Conversation
from stayinbox.domain.models.mail_message import MailMessage


class ConversationRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, conversation_id: uuid.UUID) -> Optional[Conversation]:
        return self.db.get(Conversation, conversation_id)

    def get_by_thread_id(self, thread_id: str) -> Optional[Conversation]:
        stmt = select(Conversation).where(Conversation.thread_id == thread_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def create(self, *, thread_id: str, mailbox_address: str, subject: Optional[str]) -> Conversation:
        conv = Conversation(
            thread_id=thread_id,
            mailbox_address=mailbox_address.lower(),
            subject=subject or "(No Subject)",
            participants=[],
        )
        self.db.add(conv)
        self.db.flush()
        return conv

    def list_recent(
        self,
        *,
        mailbox_address: Optional[str] = None,
        limit: int = 50,
    ) -> Sequence[Conversation]:
        stmt = select(Conversation)
        if mailbox_address:
            stmt = stmt.where(
                or_(Conversation.mailbox_address == mailbox_address.lower(), Conversation.mailbox_address.is_(None))
            )
        stmt = stmt.order_by(desc(Conversation.last_message_at), desc(Conversation.created_at)).limit(limit)
        return self.db.execute(stmt).scalars().all()

    def unread_counts(self, conversation_ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
        if not conversation_ids:
            return {}
        stmt = (
            select(MailMessage.conversation_id, func.count(MailMessage.id))
            .where(
                MailMessage.conversation_id.in_(conversation_ids),
                MailMessage.is_read.is_(False),
            )
            .group_by(MailMessage.conversation_id)
        )
        return {cid: count for cid, count in self.db.execute(stmt).all()}
