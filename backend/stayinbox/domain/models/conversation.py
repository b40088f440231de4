from __future__ import annotations

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import JSON, DateTime, Enum as SAEnum, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from stayinbox.core.timeutil import now_utc
from stayinbox.db.base import Base


def _enum_values(enum_cls):
    # store Enum.value ('inbound'), not the member name
    return [e.value for e in enum_cls]


class MessageDirection(str, Enum):
    inbound = "inbound"
    outbound = "outbound"


class Conversation(Base):
    """
    One provider thread (Graph conversationId).

    Extraction bookkeeping lives here:
    - last_extracted_message_at: watermark, advanced only by a successful extraction
    - last_extraction_attempted_at / last_extraction_error: last run outcome
    - extraction_retry_after: optional retry window after a failure
    """

    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    thread_id: Mapped[str] = mapped_column(String(512), nullable=False, unique=True, index=True)
    mailbox_address: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)

    subject: Mapped[str] = mapped_column(Text, nullable=False, default="(No Subject)")
    participants: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    first_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    last_message_direction: Mapped[MessageDirection | None] = mapped_column(
        SAEnum(
            MessageDirection,
            name="message_direction",
            values_callable=_enum_values,
            native_enum=False,
        ),
        nullable=True,
    )

    # null until staff open the thread (drives the NEW badge)
    viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    last_extracted_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_extraction_attempted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_extraction_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    extraction_retry_after: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc
    )
