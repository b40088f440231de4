from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
import uuid

from sqlalchemy import JSON, DateTime, Enum as SAEnum, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from stayinbox.core.timeutil import now_utc
from stayinbox.db.base import Base
from stayinbox.domain.models.conversation import _enum_values


class DraftStatus(str, Enum):
    pending = "pending"
    sending = "sending"
    sent = "sent"
    failed = "failed"


class DraftOrigin(str, Enum):
    auto = "auto"
    staff = "staff"


class EmailDraft(Base):
    """
    Staff-reviewable reply that has not been sent yet.

    This is a local record, unrelated to provider-side mail drafts.
    Status flow: pending -> sending -> sent | failed (failed can be retried).
    """

    __tablename__ = "email_drafts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    conversation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("email_templates.id", ondelete="SET NULL"), nullable=True
    )

    to_recipients: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    cc_recipients: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    subject: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[DraftStatus] = mapped_column(
        SAEnum(DraftStatus, name="email_draft_status", values_callable=_enum_values, native_enum=False),
        nullable=False,
        default=DraftStatus.pending,
        index=True,
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[DraftOrigin] = mapped_column(
        SAEnum(DraftOrigin, name="email_draft_origin", values_callable=_enum_values, native_enum=False),
        nullable=False,
        default=DraftOrigin.staff,
    )

    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc
    )
