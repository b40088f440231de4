from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Optional

from openai import APIError, OpenAI

from stayinbox.core.config import get_settings
from stayinbox.core.errors import ExtractionParseError, ExtractionUnavailable, MissingConfiguration

logger = logging.getLogger(__name__)

EXTRACTION_KEYS = [
    "arrival_date",
    "departure_date",
    "guest_name",
    "guest_email",
    "adult_count",
    "child_count",
    "room_count",
    "additional_info",
]

EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "arrival_date": {"type": ["string", "null"]},
        "departure_date": {"type": ["string", "null"]},
        "guest_name": {"type": ["string", "null"]},
        "guest_email": {"type": ["string", "null"]},
        "adult_count": {"type": ["integer", "null"]},
        "child_count": {"type": ["integer", "null"]},
        "room_count": {"type": ["integer", "null"]},
        "additional_info": {"type": ["string", "null"]},
    },
    "required": EXTRACTION_KEYS,
}


class LLMClient:
    """
    OpenAI chat-completions wrapper.

    - extract_reservation(): enquiry text -> dict of reservation fields (strict JSON schema)
    - proofread(): spelling/grammar fix of an outbound email body
    - self.enabled == False when no API key is configured
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        proofread_model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.proofread_model = proofread_model or model
        self._client: Optional[OpenAI] = None

        if api_key:
            self._client = OpenAI(api_key=api_key, timeout=timeout) if timeout else OpenAI(api_key=api_key)

    @property
    def enabled(self) -> bool:
        return self._client is not None and bool(self.model)

    # --- extraction ---

    def extract_reservation(self, email_content: str, missing_fields: Optional[list[str]] = None) -> dict[str, Any]:
        if not self.enabled:
            raise ExtractionUnavailable("OPENAI_API_KEY is not configured")
        assert self._client is not None

        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._build_extraction_prompt(missing_fields or [])},
                    {"role": "user", "content": email_content},
                ],
                temperature=0.1,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "reservation_enquiry_extract",
                        "strict": True,
                        "schema": EXTRACTION_SCHEMA,
                    },
                },
            )
        except APIError as exc:
            raise ExtractionUnavailable(f"LLM call failed: {exc}") from exc

        raw = (completion.choices[0].message.content or "").strip()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ExtractionParseError(f"LLM returned non-JSON output: {raw[:200]}") from exc
        if not isinstance(data, dict):
            raise ExtractionParseError("LLM returned JSON that is not an object")
        return {key: data.get(key) for key in EXTRACTION_KEYS}

    # --- proofreading ---

    def proofread(self, text: str) -> str:
        """
        Fix spelling/grammar only. On an API error the text is returned unchanged
        so staff can still send what they wrote.
        """
        if not self.enabled:
            raise MissingConfiguration("OPENAI_API_KEY")
        assert self._client is not None

        try:
            completion = self._client.chat.completions.create(
                model=self.proofread_model,
                messages=[{"role": "user", "content": self._build_proofread_prompt(text)}],
                temperature=0.3,
            )
        except APIError as exc:
            logger.warning("proofread failed, returning original text: %s", exc)
            return text

        corrected = (completion.choices[0].message.content or "").strip()
        return corrected or text

    # --- prompts ---

    def _build_extraction_prompt(self, missing_fields: list[str]) -> str:
        lines = [
            "You are a hotel reservation assistant.",
            "Read the reservation enquiry email thread and return ONE JSON object, nothing else.",
            f"Keys (exactly these): {', '.join(EXTRACTION_KEYS)}.",
            "",
            "- arrival_date / departure_date: YYYY-MM-DD. First date is arrival, second is departure.",
            "  If the month is written once it applies to both; if the year is missing use the next future date.",
            "- guest_name: primary guest or first named occupant.",
            "- guest_email: guest or sender email if present.",
            "- adult_count: explicit count, else number of named occupants.",
            "- child_count: number of children (ignore ages).",
            "- room_count: rooms requested ('2 rooms', 'two doubles') or number of room lines.",
            "- additional_info: 1-3 sentence summary of board basis, purpose, payment and special requests.",
            "",
            "Never guess: anything unknown is null. Written numbers become integers.",
            "Explicit numbers win over room lines, room lines win over name counts.",
        ]
        if missing_fields:
            lines += [
                "",
                "This extraction is a re-run because some fields are still missing.",
                f"Prioritize finding these fields if present: {', '.join(missing_fields)}.",
            ]
        return "\n".join(lines)

    def _build_proofread_prompt(self, text: str) -> str:
        return (
            "You are a careful copy editor for outbound guest emails.\n"
            "- Correct spelling, grammar, punctuation and obvious typos only.\n"
            "- Keep meaning, tone, formality and structure (line breaks, bullets, greeting, signature).\n"
            "- Keep names, dates, prices and reference numbers exactly as written.\n"
            "- If the text is already correct, return it unchanged.\n"
            "Return ONLY the corrected email text, no notes or quotes.\n\n"
            f"Email to correct:\n---\n{text}\n---"
        )


@lru_cache()
def get_llm_client() -> LLMClient:
    settings = get_settings()
    return LLMClient(
        api_key=settings.OPENAI_API_KEY or None,
        model=settings.LLM_MODEL,
        proofread_model=settings.PROOFREAD_MODEL,
    )
