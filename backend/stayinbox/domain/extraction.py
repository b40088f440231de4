"""
Typed view of what the extraction capability returns.

The extractor answers with any subset of the reservation fields. Values of
the wrong type are coerced to None field by field; a missing or garbled
field is never a hard failure. Only a payload that is not an object at all
raises ExtractionParseError.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from stayinbox.core.errors import ExtractionParseError


class ExtractedReservation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    arrival_date: Optional[date] = None
    departure_date: Optional[date] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    adult_count: Optional[int] = None
    child_count: Optional[int] = None
    room_count: Optional[int] = None
    additional_info: Optional[str] = None

    @field_validator("arrival_date", "departure_date", mode="before")
    @classmethod
    def _date_or_none(cls, v):
        if isinstance(v, date):
            return v
        if not isinstance(v, str) or not v.strip():
            return None
        try:
            return date.fromisoformat(v.strip()[:10])
        except ValueError:
            return None

    @field_validator("adult_count", "child_count", "room_count", mode="before")
    @classmethod
    def _int_or_none(cls, v):
        if isinstance(v, bool):
            return None
        if isinstance(v, float) and not math.isfinite(v):
            return None
        if isinstance(v, (int, float)):
            n = int(v)
        elif isinstance(v, str) and v.strip().isdecimal():
            n = int(v.strip())
        else:
            return None
        return n if n >= 0 else None

    @field_validator("guest_name", "guest_email", "guest_phone", "additional_info", mode="before")
    @classmethod
    def _str_or_none(cls, v):
        if not isinstance(v, str):
            return None
        return v.strip() or None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


@dataclass
class ExtractionResult:
    """Outcome of one call to the extraction capability."""

    data: Optional[ExtractedReservation]
    skipped: bool = False
    reason: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return self.data is not None and not self.data.is_empty()


def parse_extraction_data(data: Any) -> Optional[ExtractedReservation]:
    if data is None:
        return None
    if not isinstance(data, Mapping):
        raise ExtractionParseError(f"extraction data must be an object, got {type(data).__name__}")
    try:
        return ExtractedReservation.model_validate(dict(data))
    except ValidationError as exc:
        raise ExtractionParseError(f"extraction data failed validation: {exc.error_count()} error(s)") from exc
