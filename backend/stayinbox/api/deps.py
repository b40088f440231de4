"""
Shared FastAPI dependencies.

Tests override get_http_client (httpx.MockTransport) and get_extractor
(in-memory fake) through app.dependency_overrides.
"""
from __future__ import annotations

from typing import Iterator, Optional

import httpx
from fastapi import Depends

from stayinbox.adapters.extraction_client import ReservationExtractor, build_extractor
from stayinbox.adapters.llm_client import LLMClient, get_llm_client
from stayinbox.core.config import Settings, get_settings


def get_app_settings() -> Settings:
    return get_settings()


def get_http_client() -> Iterator[httpx.Client]:
    client = httpx.Client(timeout=30.0)
    try:
        yield client
    finally:
        client.close()


def get_extractor(
    settings: Settings = Depends(get_app_settings),
    http: httpx.Client = Depends(get_http_client),
) -> ReservationExtractor:
    return build_extractor(settings, http=http)


def get_llm() -> LLMClient:
    return get_llm_client()


def mailbox_or_default(mailbox: Optional[str], settings: Settings) -> Optional[str]:
    return (mailbox or "").strip() or settings.MAILBOX_ADDRESS or None
