"""
Parsing boundary for Microsoft Graph message payloads.

Raw Graph JSON is converted into GraphMessage exactly once, right after it
is fetched. Everything downstream (grouping, store sync, extraction) works
on typed attributes. A payload without id, conversationId or any timestamp
is rejected with ProviderPayloadError.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, field_validator, model_validator

from stayinbox.core.errors import ProviderPayloadError


class GraphEmailAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    address: Optional[str] = None


class GraphRecipient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    email_address: GraphEmailAddress = Field(default_factory=GraphEmailAddress, alias="emailAddress")


class GraphBody(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    content_type: Optional[str] = Field(default=None, alias="contentType")
    content: Optional[str] = None


class GraphMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(min_length=1)
    conversation_id: str = Field(alias="conversationId", min_length=1)
    subject: Optional[str] = None
    body_preview: Optional[str] = Field(default=None, alias="bodyPreview")
    body: Optional[GraphBody] = None
    sender: Optional[GraphRecipient] = Field(default=None, alias="from")
    to_recipients: list[GraphRecipient] = Field(default_factory=list, alias="toRecipients")
    cc_recipients: list[GraphRecipient] = Field(default_factory=list, alias="ccRecipients")
    received_at: Optional[datetime] = Field(default=None, alias="receivedDateTime")
    sent_at: Optional[datetime] = Field(default=None, alias="sentDateTime")
    is_read: bool = Field(default=False, alias="isRead")
    has_attachments: bool = Field(default=False, alias="hasAttachments")
    importance: Optional[str] = None

    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    @field_validator("to_recipients", "cc_recipients", mode="before")
    @classmethod
    def _none_as_empty(cls, v):
        return [] if v is None else v

    @field_validator("is_read", "has_attachments", mode="before")
    @classmethod
    def _none_as_false(cls, v):
        return False if v is None else v

    @model_validator(mode="after")
    def _require_timestamp(self) -> "GraphMessage":
        if self.received_at is None and self.sent_at is None:
            raise ValueError("message has neither receivedDateTime nor sentDateTime")
        return self

    # --- derived views ---

    @property
    def effective_at(self) -> datetime:
        return self.received_at or self.sent_at  # type: ignore[return-value]

    @property
    def from_email(self) -> Optional[str]:
        return self.sender.email_address.address if self.sender else None

    @property
    def from_name(self) -> Optional[str]:
        return self.sender.email_address.name if self.sender else None

    @property
    def to_emails(self) -> list[str]:
        return [r.email_address.address for r in self.to_recipients if r.email_address.address]

    @property
    def cc_emails(self) -> list[str]:
        return [r.email_address.address for r in self.cc_recipients if r.email_address.address]

    @property
    def raw_payload(self) -> dict[str, Any]:
        return self._raw


def parse_graph_message(payload: Mapping[str, Any]) -> GraphMessage:
    if not isinstance(payload, Mapping):
        raise ProviderPayloadError(f"expected a JSON object, got {type(payload).__name__}")
    try:
        msg = GraphMessage.model_validate(payload)
    except ValidationError as exc:
        raise ProviderPayloadError(str(exc)) from exc
    msg._raw = dict(payload)
    return msg


def parse_graph_messages(payloads: list[Mapping[str, Any]]) -> list[GraphMessage]:
    return [parse_graph_message(p) for p in payloads]
