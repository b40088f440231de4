"""
Mailbox sync

sync(mailbox):
  token -> fetch inbox + sent -> group by thread -> per thread:
  store sync (commit) -> extraction runner (own commit)

sync_conversation(mailbox, thread_id):
  same pipeline for one thread, extraction watermark bypassed

Failure policy:
- token errors and inbox fetch errors abort the pass (threads committed so far stay)
- anything failing inside one thread is logged and recorded, the pass continues

Passes for the same mailbox are serialized with a process-local lock so two
overlapping triggers cannot interleave watermark updates.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stayinbox.adapters.extraction_client import ReservationExtractor, build_extractor
from stayinbox.adapters.graph_client import GraphClient
from stayinbox.core.config import Settings
from stayinbox.core.errors import StayInboxError
from stayinbox.domain.graph_message import GraphMessage
from stayinbox.domain.models.mail_message import MailMessage
from stayinbox.repositories.oauth_token_repository import normalize_mailbox
from stayinbox.services.conversation_grouper import group_by_thread
from stayinbox.services.extraction_runner import ExtractionOutcome, ExtractionRunner
from stayinbox.services.message_fetcher import fetch_conversation_messages, fetch_recent_messages
from stayinbox.services.store_sync import StoreSync
from stayinbox.services.token_provider import TokenProvider

logger = logging.getLogger(__name__)

_sync_locks: dict[str, threading.Lock] = {}
_sync_locks_guard = threading.Lock()


def _sync_lock(mailbox: str) -> threading.Lock:
    key = normalize_mailbox(mailbox)
    with _sync_locks_guard:
        lock = _sync_locks.get(key)
        if lock is None:
            lock = _sync_locks[key] = threading.Lock()
        return lock


@dataclass
class SyncResult:
    mailbox: str
    synced_count: int = 0
    messages: list[MailMessage] = field(default_factory=list)
    conversation_count: int = 0
    extraction: list[ExtractionOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class MailboxSyncService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        *,
        extractor: Optional[ReservationExtractor] = None,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self.db = db
        self.settings = settings
        self._owns_http = http is None
        self.http = http or httpx.Client(timeout=30.0)
        self.extractor = extractor or build_extractor(settings, http=self.http)

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    def resolve_mailbox(self, mailbox: Optional[str]) -> str:
        return (mailbox or "").strip() or self.settings.require("MAILBOX_ADDRESS")

    def graph_client(self, mailbox: str) -> GraphClient:
        token = TokenProvider(self.db, self.settings, http=self.http).get_access_token(mailbox)
        return GraphClient(
            mailbox=mailbox,
            access_token=token,
            base_url=self.settings.MSGRAPH_BASE_URL,
            http=self.http,
        )

    # ---------------------------------------------------------
    # Public surface
    # ---------------------------------------------------------
    def sync(self, mailbox: Optional[str] = None) -> SyncResult:
        mailbox = self.resolve_mailbox(mailbox)
        with _sync_lock(mailbox):
            graph = self.graph_client(mailbox)
            fetched = fetch_recent_messages(graph, page_size=self.settings.SYNC_PAGE_SIZE)
            logger.info(
                "sync %s: fetched %d inbox / %d sent messages",
                mailbox,
                len(fetched.inbound),
                len(fetched.sent),
            )
            return self._process(mailbox, fetched.all(), force_extraction=False)

    def sync_conversation(self, mailbox: Optional[str], thread_id: str) -> SyncResult:
        mailbox = self.resolve_mailbox(mailbox)
        with _sync_lock(mailbox):
            graph = self.graph_client(mailbox)
            messages = fetch_conversation_messages(graph, thread_id)
            logger.info("sync %s: fetched %d messages for thread %s", mailbox, len(messages), thread_id)
            return self._process(mailbox, messages, force_extraction=True)

    # ---------------------------------------------------------
    # Pipeline
    # ---------------------------------------------------------
    def _process(self, mailbox: str, messages: list[GraphMessage], *, force_extraction: bool) -> SyncResult:
        result = SyncResult(mailbox=mailbox)
        store = StoreSync(self.db)
        runner = ExtractionRunner(self.db, self.settings, self.extractor)

        for thread_id, bucket in group_by_thread(messages).items():
            try:
                synced = store.reconcile(thread_id, bucket, mailbox=mailbox)
            except (StayInboxError, SQLAlchemyError) as exc:
                self.db.rollback()
                logger.exception("sync %s: storing thread %s failed", mailbox, thread_id)
                result.errors.append(f"{thread_id}: {exc}")
                continue

            result.conversation_count += 1
            result.messages.extend(synced.written_messages)

            try:
                result.extraction.append(runner.run_for_conversation(synced.conversation, force=force_extraction))
            except (StayInboxError, SQLAlchemyError) as exc:
                self.db.rollback()
                logger.exception("sync %s: extraction bookkeeping for thread %s failed", mailbox, thread_id)
                result.errors.append(f"{thread_id}: {exc}")

        result.synced_count = len(result.messages)
        extracted = sum(1 for o in result.extraction if o.status == "extracted")
        failed = sum(1 for o in result.extraction if o.status == "failed")
        logger.info(
            "sync %s: %d messages in %d conversations, %d extracted, %d extraction failures, %d errors",
            mailbox,
            result.synced_count,
            result.conversation_count,
            extracted,
            failed,
            len(result.errors),
        )
        return result
