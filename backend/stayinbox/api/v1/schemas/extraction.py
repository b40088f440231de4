from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExtractReservationRequest(BaseModel):
    emailContent: str = Field(min_length=1)
    reservationId: Optional[str] = None
    missingFields: List[str] = Field(default_factory=list)


class ExtractReservationResponse(BaseModel):
    data: Optional[Dict[str, Any]] = None
    skipped: bool = False
    reason: Optional[str] = None
