"""
Reservation Repository

- one reservation per conversation, looked up by conversation_id
- writes only flush; the calling service owns the commit
"""
from __future__ import annotations

from typing import Optional
import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stayinbox.domain.models.reservation import Reservation, RoomProposal


class ReservationRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, reservation_id: uuid.UUID) -> Optional[Reservation]:
        return self.db.get(Reservation, reservation_id)

    def get_by_conversation_id(self, conversation_id: uuid.UUID) -> Optional[Reservation]:
        stmt = select(Reservation).where(Reservation.conversation_id == conversation_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def add(self, reservation: Reservation) -> Reservation:
        self.db.add(reservation)
        self.db.flush()
        return reservation

    def set_archived(self, reservation: Reservation, archived: bool) -> Reservation:
        reservation.archived = archived
        self.db.add(reservation)
        self.db.flush()
        return reservation

    def proposal_counts(self, reservation_ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
        if not reservation_ids:
            return {}
        stmt = (
            select(RoomProposal.reservation_id, func.count(RoomProposal.id))
            .where(RoomProposal.reservation_id.in_(reservation_ids))
            .group_by(RoomProposal.reservation_id)
        )
        return {rid: count for rid, count in self.db.execute(stmt).all()}
