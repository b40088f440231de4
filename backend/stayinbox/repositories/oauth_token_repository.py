# backend/stayinbox/repositories/oauth_token_repository.py

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from stayinbox.domain.models.oauth_token import OAuthToken


def normalize_mailbox(mailbox: str) -> str:
    return mailbox.strip().lower()


def get_oauth_token(db: Session, mailbox: str) -> OAuthToken | None:
    """Stored token for a mailbox address (case-insensitive)."""
    stmt = select(OAuthToken).where(OAuthToken.mailbox_address == normalize_mailbox(mailbox))
    return db.scalar(stmt)


def upsert_oauth_token(
    db: Session,
    *,
    mailbox: str,
    access_token: str,
    refresh_token: str | None,
    expires_at: datetime | None,
    token_type: str = "Bearer",
    scope: str | None = None,
) -> OAuthToken:
    """
    Upsert the token keyed by mailbox address.
    - existing row: update, keeping the old refresh token when the provider did not rotate it
    - no row: create
    """
    token = get_oauth_token(db, mailbox)

    if token:
        token.access_token = access_token
        if refresh_token:
            token.refresh_token = refresh_token
        token.token_type = token_type
        if scope is not None:
            token.scope = scope
        token.expires_at = expires_at
        db.add(token)
        db.commit()
        db.refresh(token)
        return token

    new_token = OAuthToken(
        mailbox_address=normalize_mailbox(mailbox),
        access_token=access_token,
        refresh_token=refresh_token,
        token_type=token_type,
        scope=scope,
        expires_at=expires_at,
    )
    db.add(new_token)
    db.commit()
    db.refresh(new_token)
    return new_token
