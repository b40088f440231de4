from __future__ import annotations

from datetime import datetime
import uuid

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from stayinbox.core.timeutil import now_utc
from stayinbox.db.base import Base


class MessageAttachment(Base):
    """Audit row: which template attachment went out with an email for a reservation."""

    __tablename__ = "message_attachments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attachment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("template_attachments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message_type: Mapped[str] = mapped_column(String(32), nullable=False, default="outbound")
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
