from __future__ import annotations

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stayinbox.core.timeutil import now_utc
from stayinbox.db.base import Base


class EmailTemplate(Base):
    """
    Reply template with {{placeholder}} substitution.

    Only active templates are used by the draft generator.
    """

    __tablename__ = "email_templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    tone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    subject_template: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body_template: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    html_body_template: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc
    )

    attachments: Mapped[list["TemplateAttachment"]] = relationship(
        "TemplateAttachment",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="TemplateAttachment.created_at",
    )


class TemplateAttachment(Base):
    __tablename__ = "template_attachments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("email_templates.id", ondelete="CASCADE"), nullable=True, index=True
    )

    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False, default="application/octet-stream")
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # data: URL, or a path relative to ATTACHMENT_STORAGE_DIR
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)

    template: Mapped[Optional[EmailTemplate]] = relationship("EmailTemplate", back_populates="attachments")
