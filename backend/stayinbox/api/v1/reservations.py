from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from stayinbox.api.v1.schemas.conversation import ReservationSummaryDTO
from stayinbox.core.errors import NotFound
from stayinbox.db.session import get_db
from stayinbox.domain.models.reservation import Reservation
from stayinbox.repositories.reservation_repository import ReservationRepository
from stayinbox.services.extraction_gate import is_complete

router = APIRouter(prefix="/reservations", tags=["reservations"])


class ArchiveRequest(BaseModel):
    archived: bool


def reservation_to_dto(r: Reservation, proposal_count: int) -> ReservationSummaryDTO:
    return ReservationSummaryDTO(
        id=r.id,
        guest_name=r.guest_name,
        guest_email=r.guest_email,
        arrival_date=r.arrival_date,
        departure_date=r.departure_date,
        adults=r.adults,
        children=r.children,
        status=r.status.value,
        archived=r.archived,
        is_complete=is_complete(r),
        proposal_count=proposal_count,
    )


def _get_or_404(repo: ReservationRepository, reservation_id: UUID) -> Reservation:
    reservation = repo.get(reservation_id)
    if reservation is None:
        raise NotFound(f"reservation {reservation_id} not found")
    return reservation


@router.get("/{reservation_id}", response_model=ReservationSummaryDTO)
def get_reservation(reservation_id: UUID, db: Session = Depends(get_db)):
    repo = ReservationRepository(db)
    reservation = _get_or_404(repo, reservation_id)
    return reservation_to_dto(reservation, repo.proposal_counts([reservation.id]).get(reservation.id, 0))


@router.patch("/{reservation_id}/archive", response_model=ReservationSummaryDTO)
def set_archived(reservation_id: UUID, body: ArchiveRequest, db: Session = Depends(get_db)):
    """Reservations are archived instead of deleted."""
    repo = ReservationRepository(db)
    reservation = repo.set_archived(_get_or_404(repo, reservation_id), body.archived)
    db.commit()
    return reservation_to_dto(reservation, repo.proposal_counts([reservation.id]).get(reservation.id, 0))
