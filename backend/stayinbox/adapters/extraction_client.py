"""
Extraction capability clients.

Both implementations answer "given email text and hinted missing fields,
return a best-effort partial reservation or nothing":
- HttpExtractionClient: remote extraction endpoint over HTTP
- LLMExtractionClient: in-process OpenAI call
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import httpx

from stayinbox.adapters.llm_client import LLMClient
from stayinbox.core.config import Settings
from stayinbox.core.errors import ExtractionParseError, ExtractionUnavailable
from stayinbox.domain.extraction import ExtractionResult, parse_extraction_data

logger = logging.getLogger(__name__)


@dataclass
class ExtractionRequest:
    email_content: str
    reservation_id: Optional[str] = None
    missing_fields: list[str] = field(default_factory=list)


class ReservationExtractor(Protocol):
    def extract(self, request: ExtractionRequest) -> ExtractionResult: ...


class HttpExtractionClient:
    def __init__(
        self,
        *,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._http = http or httpx.Client(timeout=timeout)
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
            self._headers["apikey"] = api_key

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        payload = {"emailContent": request.email_content, "missingFields": request.missing_fields}
        if request.reservation_id:
            payload["reservationId"] = request.reservation_id

        try:
            resp = self._http.post(self._url, json=payload, headers=self._headers, timeout=self._timeout)
        except httpx.TimeoutException as exc:
            raise ExtractionUnavailable(f"extraction timed out after {self._timeout:.0f}s") from exc
        except httpx.HTTPError as exc:
            raise ExtractionUnavailable(f"extraction endpoint unreachable: {exc}") from exc

        try:
            body = resp.json()
        except ValueError as exc:
            raise ExtractionParseError(f"extraction returned non-JSON ({resp.status_code}): {resp.text[:200]}") from exc

        if resp.status_code >= 400 or (isinstance(body, dict) and body.get("error")):
            error = body.get("error") if isinstance(body, dict) else None
            raise ExtractionUnavailable(f"extraction failed ({resp.status_code}): {error or resp.text[:200]}")
        if not isinstance(body, dict):
            raise ExtractionParseError("extraction response is not an object")

        return ExtractionResult(
            data=parse_extraction_data(body.get("data")),
            skipped=bool(body.get("skipped")),
            reason=body.get("reason"),
        )


class LLMExtractionClient:
    def __init__(self, llm: LLMClient) -> None:
        self._llm = llm

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        data = self._llm.extract_reservation(request.email_content, request.missing_fields)
        return ExtractionResult(data=parse_extraction_data(data))


def build_extractor(settings: Settings, *, http: Optional[httpx.Client] = None) -> ReservationExtractor:
    """Remote endpoint when EXTRACTION_URL is set, otherwise the in-process LLM."""
    if settings.EXTRACTION_URL:
        return HttpExtractionClient(
            url=settings.EXTRACTION_URL,
            api_key=settings.EXTRACTION_API_KEY or None,
            timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
            http=http,
        )
    if settings.OPENAI_API_KEY:
        return LLMExtractionClient(
            LLMClient(
                api_key=settings.OPENAI_API_KEY,
                model=settings.LLM_MODEL,
                proofread_model=settings.PROOFREAD_MODEL,
                timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
            )
        )
    return UnconfiguredExtractor()


class UnconfiguredExtractor:
    """Stands in when neither EXTRACTION_URL nor OPENAI_API_KEY is set; every call is recorded as a failure."""

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        raise ExtractionUnavailable("no extractor configured (set EXTRACTION_URL or OPENAI_API_KEY)")
