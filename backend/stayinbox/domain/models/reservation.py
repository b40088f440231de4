"""
Reservation: the structured booking enquiry derived from one conversation.

- at most one reservation per conversation (conversation_id unique)
- filled by extraction reconciliation or by staff edits
- archived instead of deleted
- completeness is derived (see services.extraction_gate), never stored
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stayinbox.core.timeutil import now_utc
from stayinbox.db.base import Base
from stayinbox.domain.models.conversation import _enum_values


class ReservationStatus(str, Enum):
    pending = "pending"
    quoted = "quoted"
    confirmed = "confirmed"
    cancelled = "cancelled"


class Reservation(Base):
    __tablename__ = "reservations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    conversation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="SET NULL"), nullable=True, unique=True, index=True
    )

    # guest
    guest_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    guest_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, index=True)
    guest_phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # stay
    arrival_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    departure_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    adults: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    children: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    room_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # [{code, name, quantity, nightly_rate}]
    room_details: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    nightly_rate_currency: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    nightly_rate_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    additional_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[ReservationStatus] = mapped_column(
        SAEnum(
            ReservationStatus,
            name="reservation_status",
            values_callable=_enum_values,
            native_enum=False,
        ),
        nullable=False,
        default=ReservationStatus.pending,
        index=True,
    )
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    last_email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # extraction bookkeeping
    last_extraction_attempted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_extracted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_extraction_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extractor_version: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc
    )

    room_proposals: Mapped[list["RoomProposal"]] = relationship(
        "RoomProposal",
        back_populates="reservation",
        cascade="all, delete-orphan",
        order_by="RoomProposal.display_order",
    )


class RoomProposal(Base):
    """Named bundle of room lines offered to the guest as one pricing option."""

    __tablename__ = "room_proposals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )

    proposal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    rooms: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    # advisory, not enforced unique
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc
    )

    reservation: Mapped[Reservation] = relationship("Reservation", back_populates="room_proposals")
