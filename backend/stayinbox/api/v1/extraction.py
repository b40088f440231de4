"""
Stand-alone extraction endpoint.

Same contract the sync pipeline uses internally:
  {emailContent, reservationId?, missingFields?} -> {data, skipped?, reason?}

When reservationId points at a reservation whose key fields are already
present, the extractor is not called and the stored values are returned.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stayinbox.adapters.extraction_client import ExtractionRequest, ReservationExtractor
from stayinbox.api.deps import get_extractor
from stayinbox.api.v1.schemas.extraction import ExtractReservationRequest, ExtractReservationResponse
from stayinbox.db.session import get_db
from stayinbox.domain.models.reservation import Reservation
from stayinbox.repositories.reservation_repository import ReservationRepository
from stayinbox.services.extraction_gate import is_complete

logger = logging.getLogger(__name__)

router = APIRouter(tags=["extraction"])


def _stored_values(r: Reservation) -> Dict[str, Any]:
    return {
        "arrival_date": r.arrival_date.isoformat() if r.arrival_date else None,
        "departure_date": r.departure_date.isoformat() if r.departure_date else None,
        "guest_name": r.guest_name,
        "guest_email": r.guest_email,
        "guest_phone": r.guest_phone,
        "adult_count": r.adults,
        "child_count": r.children,
        "room_count": r.room_count,
        "additional_info": r.additional_info,
    }


@router.post("/extract-reservation", response_model=ExtractReservationResponse)
def extract_reservation(
    body: ExtractReservationRequest,
    db: Session = Depends(get_db),
    extractor: ReservationExtractor = Depends(get_extractor),
):
    if body.reservationId:
        try:
            reservation_id = uuid.UUID(body.reservationId)
        except ValueError:
            reservation_id = None
        reservation = ReservationRepository(db).get(reservation_id) if reservation_id else None
        if reservation is not None and is_complete(reservation):
            logger.info("reservation %s already has its key fields, extraction skipped", reservation.id)
            return ExtractReservationResponse(
                data=_stored_values(reservation),
                skipped=True,
                reason="Reservation key fields already present",
            )

    result = extractor.extract(
        ExtractionRequest(
            email_content=body.emailContent,
            reservation_id=body.reservationId,
            missing_fields=body.missingFields,
        )
    )
    data = result.data.model_dump(mode="json") if result.data is not None else None
    return ExtractReservationResponse(data=data, skipped=result.skipped, reason=result.reason)
