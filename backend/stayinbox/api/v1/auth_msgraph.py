from __future__ import annotations

import html
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from stayinbox.api.deps import get_app_settings, get_http_client, mailbox_or_default
from stayinbox.api.v1.schemas.auth import AuthStatusResponse
from stayinbox.core.config import Settings
from stayinbox.core.errors import InvalidRequest
from stayinbox.db.session import get_db
from stayinbox.services.token_provider import TokenProvider

router = APIRouter(prefix="/auth/msgraph", tags=["msgraph-oauth"])


@router.get("/initiate")
def msgraph_initiate(
    mailbox_address: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    mailbox = mailbox_or_default(mailbox_address, settings)
    if not mailbox:
        raise InvalidRequest("mailbox_address is required")
    url = TokenProvider(db, settings).build_authorize_url(mailbox)
    return RedirectResponse(url)


@router.get("/callback", response_class=HTMLResponse)
def msgraph_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    http: httpx.Client = Depends(get_http_client),
):
    if error:
        raise InvalidRequest(f"authorization denied: {error_description or error}")
    if not code:
        raise InvalidRequest("authorization code missing")

    mailbox = mailbox_or_default(state, settings)
    if not mailbox:
        raise InvalidRequest("state (mailbox address) missing")

    token = TokenProvider(db, settings, http=http).exchange_code(code, mailbox)
    return HTMLResponse(
        f"""
        <html>
          <body>
            <h3>Mailbox connected</h3>
            <p>{html.escape(token.mailbox_address)} is now linked. You can close this window.</p>
          </body>
        </html>
        """
    )


@router.get("/status", response_model=AuthStatusResponse)
def msgraph_status(
    mailbox_address: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    status = TokenProvider(db, settings).auth_status(mailbox_or_default(mailbox_address, settings))
    return AuthStatusResponse(
        authenticated=status.authenticated,
        mailbox_address=status.mailbox_address,
        expires_at=status.expires_at,
        is_expired=status.is_expired,
        needs_refresh=status.needs_refresh,
        message=status.message,
    )
