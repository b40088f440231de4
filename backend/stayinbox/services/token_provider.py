from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from stayinbox.adapters.graph_client import GraphClient
from stayinbox.core.config import Settings
from stayinbox.core.errors import AuthenticationError, NotAuthenticated, ProviderError
from stayinbox.core.timeutil import as_utc, now_utc
from stayinbox.domain.models.oauth_token import OAuthToken
from stayinbox.repositories.oauth_token_repository import (
    get_oauth_token,
    normalize_mailbox,
    upsert_oauth_token,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# Microsoft identity platform
# ---------------------------------------------------------
GRAPH_SCOPES = " ".join(
    [
        "https://graph.microsoft.com/Mail.Read",
        "https://graph.microsoft.com/Mail.Send",
        "https://graph.microsoft.com/Mail.ReadWrite",
        "offline_access",
    ]
)

# a token this close to expiry is refreshed up front
EXPIRY_SKEW = timedelta(seconds=60)

_refresh_locks: dict[str, threading.Lock] = {}
_refresh_locks_guard = threading.Lock()


def _refresh_lock(mailbox: str) -> threading.Lock:
    key = normalize_mailbox(mailbox)
    with _refresh_locks_guard:
        lock = _refresh_locks.get(key)
        if lock is None:
            lock = _refresh_locks[key] = threading.Lock()
        return lock


@dataclass
class TokenGrant:
    access_token: str
    refresh_token: Optional[str]
    expires_at: datetime
    scope: Optional[str] = None


@dataclass
class AuthStatus:
    authenticated: bool
    mailbox_address: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_expired: bool = False
    needs_refresh: bool = False
    message: Optional[str] = None


class TokenProvider:
    """
    Hands out a valid Graph bearer token per mailbox.

    1. no stored token -> NotAuthenticated
    2. unexpired token -> returned as is
    3. expired token -> refresh_token grant, persisted once, new token returned
       (refresh rejected, or no refresh token on file -> AuthenticationError)

    Refreshes for one mailbox are serialized; a waiter that finds a fresh
    token after acquiring the lock returns it without refreshing again.
    """

    def __init__(self, db: Session, settings: Settings, http: Optional[httpx.Client] = None) -> None:
        self.db = db
        self.settings = settings
        self._http = http
        self._owns_http = False

    @property
    def http(self) -> httpx.Client:
        # authorize url and status never touch the network
        if self._http is None:
            self._http = httpx.Client(timeout=30.0)
            self._owns_http = True
        return self._http

    def close(self) -> None:
        if self._owns_http and self._http is not None:
            self._http.close()

    # --- urls ---

    def _identity_url(self, endpoint: str) -> str:
        tenant = self.settings.require("MSGRAPH_TENANT_ID")
        return f"{self.settings.MSGRAPH_LOGIN_BASE_URL.rstrip('/')}/{tenant}/oauth2/v2.0/{endpoint}"

    def build_authorize_url(self, mailbox: str) -> str:
        params = {
            "client_id": self.settings.require("MSGRAPH_CLIENT_ID"),
            "response_type": "code",
            "redirect_uri": self.settings.MSGRAPH_REDIRECT_URI,
            "response_mode": "query",
            "scope": GRAPH_SCOPES,
            "state": mailbox,
            "prompt": "select_account",
            "login_hint": mailbox,
        }
        return f"{self._identity_url('authorize')}?{urlencode(params)}"

    # --- token lifecycle ---

    def get_access_token(self, mailbox: str) -> str:
        token = get_oauth_token(self.db, mailbox)
        if token is None:
            raise NotAuthenticated(mailbox)
        if not self._is_expired(token):
            return token.access_token

        with _refresh_lock(mailbox):
            # another caller may have refreshed while we waited
            self.db.refresh(token)
            if not self._is_expired(token):
                return token.access_token

            if not token.refresh_token:
                raise AuthenticationError(mailbox, "access token expired and no refresh token on file")

            grant = self._request_token(
                mailbox,
                {
                    "grant_type": "refresh_token",
                    "refresh_token": token.refresh_token,
                },
            )
            token = upsert_oauth_token(
                self.db,
                mailbox=mailbox,
                access_token=grant.access_token,
                refresh_token=grant.refresh_token,
                expires_at=grant.expires_at,
                scope=grant.scope,
            )
            logger.info("refreshed Graph access token for %s (expires %s)", mailbox, token.expires_at)
            return token.access_token

    def exchange_code(self, code: str, mailbox: str) -> OAuthToken:
        """
        OAuth callback: authorization code -> tokens.

        The stored mailbox is the one Graph reports for the signed-in user
        (mail, then userPrincipalName), falling back to the `state` mailbox.
        """
        grant = self._request_token(
            mailbox,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.settings.MSGRAPH_REDIRECT_URI,
            },
        )

        actual_mailbox = mailbox
        graph = GraphClient(
            mailbox=mailbox,
            access_token=grant.access_token,
            base_url=self.settings.MSGRAPH_BASE_URL,
            http=self.http,
        )
        try:
            profile = graph.get_me()
            actual_mailbox = profile.get("mail") or profile.get("userPrincipalName") or mailbox
        except ProviderError as exc:
            logger.warning("profile lookup failed after code exchange, keeping %s: %s", mailbox, exc)

        return upsert_oauth_token(
            self.db,
            mailbox=actual_mailbox,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=grant.expires_at,
            scope=grant.scope,
        )

    def auth_status(self, mailbox: Optional[str]) -> AuthStatus:
        if not mailbox:
            return AuthStatus(authenticated=False, message="No mailbox address configured")

        token = get_oauth_token(self.db, mailbox)
        if token is None:
            return AuthStatus(
                authenticated=False,
                mailbox_address=mailbox,
                message="No OAuth tokens found. Please authenticate.",
            )

        expires_at = as_utc(token.expires_at)
        expired = expires_at is None or expires_at < now_utc()
        return AuthStatus(
            authenticated=True,
            mailbox_address=token.mailbox_address,
            expires_at=expires_at,
            is_expired=expired,
            needs_refresh=expired,
        )

    # --- helpers ---

    @staticmethod
    def _is_expired(token: OAuthToken) -> bool:
        expires_at = as_utc(token.expires_at)
        return expires_at is None or expires_at - EXPIRY_SKEW <= now_utc()

    def _request_token(self, mailbox: str, form: dict[str, str]) -> TokenGrant:
        data = {
            "client_id": self.settings.require("MSGRAPH_CLIENT_ID"),
            "client_secret": self.settings.require("MSGRAPH_CLIENT_SECRET"),
            **form,
        }
        try:
            resp = self.http.post(self._identity_url("token"), data=data)
        except httpx.HTTPError as exc:
            raise AuthenticationError(mailbox, str(exc)) from exc

        if resp.status_code >= 400:
            logger.warning("token endpoint rejected %s for %s (%s)", form["grant_type"], mailbox, resp.status_code)
            raise AuthenticationError(mailbox, resp.text[:500])

        payload = resp.json()
        access_token = payload.get("access_token")
        if not access_token:
            raise AuthenticationError(mailbox, "token response without access_token")

        expires_in = int(payload.get("expires_in") or 3600)
        return TokenGrant(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            expires_at=now_utc() + timedelta(seconds=expires_in),
            scope=payload.get("scope"),
        )
