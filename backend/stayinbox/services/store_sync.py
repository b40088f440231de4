"""
Conversation/Message store sync

Upserts one provider thread into the local store:
- conversation keyed by thread_id, subject set only when the row is created
- first/last message timestamps only widen; direction follows the latest message
- participants accumulate (lower-cased, deduplicated)
- messages keyed by provider_message_id; the provider read flag is taken at
  insert, afterwards a locally read message never goes back to unread
- local-only fields (viewed_at, extraction bookkeeping) are never touched
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.orm import Session

from stayinbox.core.timeutil import as_utc
from stayinbox.domain.graph_message import GraphMessage
from stayinbox.domain.models.conversation import Conversation
from stayinbox.domain.models.mail_message import MailMessage
from stayinbox.repositories.conversation_repository import ConversationRepository
from stayinbox.repositories.message_repository import MailMessageRepository
from stayinbox.services.conversation_grouper import classify_direction, summarize_thread

logger = logging.getLogger(__name__)


@dataclass
class ThreadSyncResult:
    conversation: Conversation
    written_messages: list[MailMessage]
    created: bool

    @property
    def conversation_id(self):
        return self.conversation.id


def _merge_participants(existing: Iterable[str], messages: Iterable[GraphMessage]) -> list[str]:
    merged: list[str] = []
    seen: set[str] = set()

    def add(address: str | None) -> None:
        if not address:
            return
        key = address.strip().lower()
        if key and key not in seen:
            seen.add(key)
            merged.append(key)

    for address in existing:
        add(address)
    for msg in messages:
        add(msg.from_email)
        for address in msg.to_emails:
            add(address)
        for address in msg.cc_emails:
            add(address)
    return merged


@dataclass
class StoreSync:
    db: Session

    def reconcile(self, thread_id: str, messages: list[GraphMessage], *, mailbox: str) -> ThreadSyncResult:
        """`messages` is one bucket from group_by_thread (oldest first). Commits."""
        summary = summarize_thread(messages, mailbox)
        conversations = ConversationRepository(self.db)

        conv = conversations.get_by_thread_id(thread_id)
        created = conv is None
        if conv is None:
            conv = conversations.create(
                thread_id=thread_id,
                mailbox_address=mailbox,
                subject=summary.first_message.subject,
            )

        first_at = as_utc(conv.first_message_at)
        if first_at is None or summary.first_message_at < first_at:
            conv.first_message_at = summary.first_message_at

        last_at = as_utc(conv.last_message_at)
        if last_at is None or summary.last_message_at >= last_at:
            conv.last_message_at = summary.last_message_at
            conv.last_message_direction = summary.last_message_direction

        conv.participants = _merge_participants(conv.participants or [], messages)
        self.db.add(conv)

        written = [self._upsert_message(conv, msg, mailbox) for msg in messages]

        self.db.commit()
        logger.debug(
            "thread %s: %s conversation, %d messages written",
            thread_id,
            "created" if created else "updated",
            len(written),
        )
        return ThreadSyncResult(conversation=conv, written_messages=written, created=created)

    def _upsert_message(self, conv: Conversation, msg: GraphMessage, mailbox: str) -> MailMessage:
        repo = MailMessageRepository(self.db)
        row = repo.get_by_provider_id(msg.id)

        fields = dict(
            conversation_id=conv.id,
            thread_id=conv.thread_id,
            subject=msg.subject,
            from_name=msg.from_name,
            from_email=msg.from_email,
            to_emails=msg.to_emails,
            cc_emails=msg.cc_emails,
            body_preview=msg.body_preview,
            body_content=msg.body.content if msg.body else None,
            body_content_type=msg.body.content_type if msg.body else None,
            received_at=msg.effective_at,
            direction=classify_direction(msg.from_email, mailbox),
            has_attachments=msg.has_attachments,
            importance=msg.importance,
            raw_payload=msg.raw_payload,
        )

        if row is None:
            row = MailMessage(provider_message_id=msg.id, is_read=msg.is_read, **fields)
        else:
            for key, value in fields.items():
                setattr(row, key, value)
            # provider lag must not flip a read message back to unread
            row.is_read = bool(row.is_read) or msg.is_read

        self.db.add(row)
        self.db.flush()
        return row
