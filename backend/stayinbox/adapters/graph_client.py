# backend/stayinbox/adapters/graph_client.py
from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from stayinbox.core.errors import ProviderError, ProviderFetchError

logger = logging.getLogger(__name__)

MESSAGE_SELECT_FIELDS = ",".join(
    [
        "id",
        "conversationId",
        "subject",
        "bodyPreview",
        "body",
        "from",
        "toRecipients",
        "ccRecipients",
        "receivedDateTime",
        "sentDateTime",
        "isRead",
        "hasAttachments",
        "importance",
    ]
)


class GraphClient:
    """
    Thin Microsoft Graph mail client for one mailbox.

    - the bearer token is obtained beforehand (TokenProvider) and injected
    - `http` is injectable so tests can plug in httpx.MockTransport
    - non-2xx responses raise ProviderError (ProviderFetchError for list calls)
      with the raw status and body attached
    """

    def __init__(
        self,
        *,
        mailbox: str,
        access_token: str,
        base_url: str = "https://graph.microsoft.com/v1.0",
        http: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ) -> None:
        self._mailbox = mailbox
        self._base_url = base_url.rstrip("/")
        self._http = http or httpx.Client(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    @property
    def mailbox(self) -> str:
        return self._mailbox

    def _url(self, path: str) -> str:
        return f"{self._base_url}/users/{quote(self._mailbox)}{path}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        error_cls: type[ProviderError] = ProviderError,
    ) -> httpx.Response:
        try:
            resp = self._http.request(method, self._url(path), headers=self._headers, params=params, json=json)
        except httpx.HTTPError as exc:
            raise error_cls(None, str(exc), operation) from exc
        if resp.status_code >= 400:
            raise error_cls(resp.status_code, resp.text, operation)
        return resp

    # ---------------------------------------------------------
    # Read
    # ---------------------------------------------------------
    def list_folder_messages(self, folder: str, *, top: int, order_by: str) -> list[dict[str, Any]]:
        """Newest-first page of a well-known folder (Inbox, SentItems)."""
        resp = self._request(
            "GET",
            f"/mailFolders/{folder}/messages",
            operation=f"list {folder}",
            params={"$top": top, "$orderby": f"{order_by} desc", "$select": MESSAGE_SELECT_FIELDS},
            error_cls=ProviderFetchError,
        )
        return list(resp.json().get("value") or [])

    def list_conversation_messages(self, thread_id: str, *, folder: Optional[str] = None) -> list[dict[str, Any]]:
        escaped = thread_id.replace("'", "''")
        path = f"/mailFolders/{folder}/messages" if folder else "/messages"
        resp = self._request(
            "GET",
            path,
            operation=f"list conversation {folder or 'all'}",
            params={"$filter": f"conversationId eq '{escaped}'", "$select": MESSAGE_SELECT_FIELDS},
            error_cls=ProviderFetchError,
        )
        return list(resp.json().get("value") or [])

    def get_me(self) -> dict[str, Any]:
        try:
            resp = self._http.get(f"{self._base_url}/me", headers=self._headers)
        except httpx.HTTPError as exc:
            raise ProviderError(None, str(exc), "get profile") from exc
        if resp.status_code >= 400:
            raise ProviderError(resp.status_code, resp.text, "get profile")
        return resp.json()

    # ---------------------------------------------------------
    # Write
    # ---------------------------------------------------------
    def mark_read(self, message_id: str) -> None:
        self._request("PATCH", f"/messages/{message_id}", operation="mark read", json={"isRead": True})

    def create_reply(self, message_id: str) -> dict[str, Any]:
        """Creates a provider-side reply draft; subject and threading come from the original."""
        resp = self._request("POST", f"/messages/{message_id}/createReply", operation="create reply")
        return resp.json()

    def update_message(self, message_id: str, patch: dict[str, Any]) -> None:
        self._request("PATCH", f"/messages/{message_id}", operation="update reply", json=patch)

    def add_attachment(self, message_id: str, attachment: dict[str, Any]) -> None:
        self._request("POST", f"/messages/{message_id}/attachments", operation="add attachment", json=attachment)

    def send_message(self, message_id: str) -> None:
        self._request("POST", f"/messages/{message_id}/send", operation="send reply")

    def delete_message(self, message_id: str) -> None:
        self._request("DELETE", f"/messages/{message_id}", operation="delete draft")

    def send_mail(self, message: dict[str, Any], *, save_to_sent_items: bool = True) -> None:
        self._request(
            "POST",
            "/sendMail",
            operation="send mail",
            json={"message": message, "saveToSentItems": save_to_sent_items},
        )


def recipients_payload(addresses: list[str]) -> list[dict[str, Any]]:
    return [{"emailAddress": {"address": a}} for a in addresses]


def body_payload(*, html: Optional[str], text: Optional[str]) -> dict[str, str]:
    if html:
        return {"contentType": "HTML", "content": html}
    return {"contentType": "Text", "content": text or ""}
