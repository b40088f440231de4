from __future__ import annotations

from typing import Optional, Sequence
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from stayinbox.domain.models.email_template import EmailTemplate, TemplateAttachment
from stayinbox.domain.models.message_attachment import MessageAttachment


class EmailTemplateRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_active(self, template_id: uuid.UUID) -> Optional[EmailTemplate]:
        """Template by id, only when it is active."""
        stmt = select(EmailTemplate).where(
            EmailTemplate.id == template_id,
            EmailTemplate.is_active.is_(True),
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_attachments(self, attachment_ids: list[uuid.UUID]) -> Sequence[TemplateAttachment]:
        """Attachments in the order the ids were given; unknown ids are dropped."""
        if not attachment_ids:
            return []
        stmt = select(TemplateAttachment).where(TemplateAttachment.id.in_(attachment_ids))
        by_id = {a.id: a for a in self.db.execute(stmt).scalars().all()}
        return [by_id[i] for i in attachment_ids if i in by_id]

    def record_usage(self, *, reservation_id: uuid.UUID, attachment_ids: list[uuid.UUID]) -> None:
        for attachment_id in attachment_ids:
            self.db.add(
                MessageAttachment(
                    reservation_id=reservation_id,
                    attachment_id=attachment_id,
                    message_type="outbound",
                )
            )
        self.db.flush()
