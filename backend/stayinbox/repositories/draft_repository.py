from __future__ import annotations

from typing import Optional, Sequence
import uuid

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from stayinbox.domain.models.email_draft import DraftStatus, EmailDraft


class EmailDraftRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, draft_id: uuid.UUID) -> Optional[EmailDraft]:
        return self.db.get(EmailDraft, draft_id)

    def get_pending_for_reservation(self, reservation_id: uuid.UUID) -> Optional[EmailDraft]:
        stmt = (
            select(EmailDraft)
            .where(
                EmailDraft.reservation_id == reservation_id,
                EmailDraft.status == DraftStatus.pending,
            )
            .order_by(desc(EmailDraft.created_at))
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def list_for_reservation(self, reservation_id: uuid.UUID) -> Sequence[EmailDraft]:
        stmt = (
            select(EmailDraft)
            .where(EmailDraft.reservation_id == reservation_id)
            .order_by(desc(EmailDraft.created_at))
        )
        return self.db.execute(stmt).scalars().all()

    def add(self, draft: EmailDraft) -> EmailDraft:
        self.db.add(draft)
        self.db.flush()
        return draft

    def delete(self, draft: EmailDraft) -> None:
        self.db.delete(draft)
        self.db.flush()
