"""Shared fixtures: in-memory database, isolated settings, stubbed Graph/token endpoints."""

from __future__ import annotations

import os

# must be set before stayinbox.db.session builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import timedelta
from typing import Any, Callable, Optional, Union

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stayinbox.adapters.extraction_client import ExtractionRequest
from stayinbox.core.config import Settings
from stayinbox.core.timeutil import now_utc
from stayinbox.db.session import init_db
from stayinbox.domain.extraction import ExtractedReservation, ExtractionResult
from stayinbox.repositories.oauth_token_repository import upsert_oauth_token

MAILBOX = "reservations@lodge.example"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        env={
            "DATABASE_URL": "sqlite://",
            "MAILBOX_ADDRESS": MAILBOX,
            "MSGRAPH_CLIENT_ID": "client-id",
            "MSGRAPH_CLIENT_SECRET": "client-secret",
            "MSGRAPH_TENANT_ID": "tenant-id",
            "MSGRAPH_BASE_URL": "https://graph.test/v1.0",
            "MSGRAPH_LOGIN_BASE_URL": "https://login.test",
            "ATTACHMENT_STORAGE_DIR": str(tmp_path),
        }
    )


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def valid_token(db):
    return upsert_oauth_token(
        db,
        mailbox=MAILBOX,
        access_token="access-1",
        refresh_token="refresh-1",
        expires_at=now_utc() + timedelta(hours=1),
    )


# ---------------------------------------------------------
# HTTP stub
# ---------------------------------------------------------
Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class StubServer:
    """
    httpx.MockTransport backend for Graph and the token endpoint.

    Routes match on method + path suffix, first registered wins.
    Every request is recorded in `requests`.
    """

    def __init__(self) -> None:
        self.routes: list[tuple[str, str, Responder]] = []
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path_suffix: str, responder: Responder) -> "StubServer":
        self.routes.append((method.upper(), path_suffix, responder))
        return self

    def json(self, method: str, path_suffix: str, body: Any = None, status: int = 200) -> "StubServer":
        return self.on(method, path_suffix, httpx.Response(status, json=body if body is not None else {}))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, suffix, responder in self.routes:
            if request.method == method and request.url.path.endswith(suffix):
                return responder(request) if callable(responder) else responder
        return httpx.Response(404, json={"error": {"code": "NotStubbed", "message": request.url.path}})

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handle))

    def calls(self, method: Optional[str] = None, path_suffix: str = "") -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method) and r.url.path.endswith(path_suffix)
        ]


@pytest.fixture
def stub() -> StubServer:
    return StubServer()


def graph_message(
    message_id: str,
    thread_id: str,
    *,
    sender: str = "john@example.com",
    sender_name: str = "John Smith",
    received: str = "2026-01-20T09:00:00Z",
    subject: str = "Booking enquiry",
    body: str = "Hello",
    is_read: bool = False,
    to: Optional[list[str]] = None,
) -> dict[str, Any]:
    return {
        "id": message_id,
        "conversationId": thread_id,
        "subject": subject,
        "bodyPreview": body[:50],
        "body": {"contentType": "text", "content": body},
        "from": {"emailAddress": {"name": sender_name, "address": sender}},
        "toRecipients": [{"emailAddress": {"address": a}} for a in (to or [MAILBOX])],
        "ccRecipients": [],
        "receivedDateTime": received,
        "sentDateTime": received,
        "isRead": is_read,
        "hasAttachments": False,
        "importance": "normal",
    }


# ---------------------------------------------------------
# Extraction fake
# ---------------------------------------------------------
class FakeExtractor:
    def __init__(
        self,
        data: Optional[dict[str, Any]] = None,
        *,
        error: Optional[Exception] = None,
    ) -> None:
        self.data = data
        self.error = error
        self.calls: list[ExtractionRequest] = []

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        data = ExtractedReservation.model_validate(self.data) if self.data is not None else None
        return ExtractionResult(data=data)


@pytest.fixture
def complete_extraction() -> dict[str, Any]:
    return {
        "arrival_date": "2026-02-10",
        "departure_date": "2026-02-12",
        "guest_name": "John Smith",
        "guest_email": "john@example.com",
        "adult_count": 2,
        "child_count": None,
        "room_count": 1,
        "additional_info": None,
    }
