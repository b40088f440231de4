from __future__ import annotations

from datetime import datetime
from typing import Any
import uuid

from sqlalchemy import JSON, Boolean, DateTime, Enum as SAEnum, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from stayinbox.core.timeutil import now_utc
from stayinbox.db.base import Base
from stayinbox.domain.models.conversation import MessageDirection, _enum_values


class MailMessage(Base):
    """
    One provider email, upserted by provider_message_id.

    received_at holds the effective timestamp (received, falling back to sent).
    raw_payload keeps the provider JSON as delivered.
    """

    __tablename__ = "mail_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_message_id: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True, index=True)

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    thread_id: Mapped[str] = mapped_column(String(512), nullable=False, index=True)

    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    from_email: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)
    to_emails: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    cc_emails: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    body_preview: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_content_type: Mapped[str | None] = mapped_column(String(16), nullable=True)

    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    direction: Mapped[MessageDirection] = mapped_column(
        SAEnum(
            MessageDirection,
            name="mail_message_direction",
            values_callable=_enum_values,
            native_enum=False,
        ),
        nullable=False,
        default=MessageDirection.inbound,
    )

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_attachments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    importance: Mapped[str | None] = mapped_column(String(16), nullable=True)

    raw_payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc
    )
