"""
Outbound send orchestrator

Reply path (conversation known and it has at least one stored message):
  createReply on the latest message -> PATCH body/to/cc (never subject)
  -> one POST per attachment -> send
  Attachments are best-effort: a file that fails to load or attach is logged
  and skipped, the send still completes with the rest.
  If PATCH or send fails, the provider-side reply draft is deleted
  (best-effort) and SendFailure is raised.

New-thread path (no conversation): sendMail with subject and inline attachments.

On success the attachments actually sent are recorded and the reservation's
last_email_sent_at is stamped. The sent message is not inserted locally; the
next sync picks it up from Sent Items with its final provider id.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stayinbox.adapters.attachment_store import AttachmentStore
from stayinbox.adapters.graph_client import GraphClient, body_payload, recipients_payload
from stayinbox.core.config import Settings
from stayinbox.core.errors import InvalidRequest, NotFound, ProviderError, SendFailure, StayInboxError
from stayinbox.core.timeutil import now_utc
from stayinbox.domain.models.conversation import Conversation
from stayinbox.domain.models.email_draft import DraftStatus, EmailDraft
from stayinbox.domain.models.mail_message import MailMessage
from stayinbox.repositories.conversation_repository import ConversationRepository
from stayinbox.repositories.draft_repository import EmailDraftRepository
from stayinbox.repositories.message_repository import MailMessageRepository
from stayinbox.repositories.reservation_repository import ReservationRepository
from stayinbox.repositories.template_repository import EmailTemplateRepository
from stayinbox.services.token_provider import TokenProvider

logger = logging.getLogger(__name__)


@dataclass
class SendRequest:
    to_recipients: list[str]
    subject: str = ""
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    cc_recipients: list[str] = field(default_factory=list)
    reservation_id: Optional[uuid.UUID] = None
    # local conversation UUID or provider thread id
    conversation_id: Optional[str] = None
    template_id: Optional[uuid.UUID] = None
    attachment_ids: list[uuid.UUID] = field(default_factory=list)


@dataclass
class SendReceipt:
    mode: str  # "reply" | "new"
    replied_to: Optional[str] = None
    attachments_sent: list[uuid.UUID] = field(default_factory=list)
    attachments_skipped: list[uuid.UUID] = field(default_factory=list)


def _clean(addresses: list[str]) -> list[str]:
    return [a.strip() for a in addresses if a and a.strip()]


class SendOrchestrator:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        *,
        graph: Optional[GraphClient] = None,
        http: Optional[httpx.Client] = None,
        attachment_store: Optional[AttachmentStore] = None,
    ) -> None:
        self.db = db
        self.settings = settings
        self._graph = graph
        self.http = http
        self.attachments = attachment_store or AttachmentStore(settings.ATTACHMENT_STORAGE_DIR)

    def graph_client(self, mailbox: Optional[str] = None) -> GraphClient:
        if self._graph is not None:
            return self._graph
        mailbox = (mailbox or "").strip() or self.settings.require("MAILBOX_ADDRESS")
        http = self.http or httpx.Client(timeout=30.0)
        token = TokenProvider(self.db, self.settings, http=http).get_access_token(mailbox)
        self._graph = GraphClient(
            mailbox=mailbox,
            access_token=token,
            base_url=self.settings.MSGRAPH_BASE_URL,
            http=http,
        )
        return self._graph

    # ---------------------------------------------------------
    # Send
    # ---------------------------------------------------------
    def send(self, req: SendRequest, *, mailbox: Optional[str] = None) -> SendReceipt:
        receipt = self._deliver(req, mailbox=mailbox)
        self._record_success(req.reservation_id, receipt.attachments_sent)
        return receipt

    def _deliver(self, req: SendRequest, *, mailbox: Optional[str] = None) -> SendReceipt:
        """Provider side only; returns once the provider accepted the message."""
        to = _clean(req.to_recipients)
        if not to:
            raise InvalidRequest("at least one recipient is required")
        cc = _clean(req.cc_recipients)

        graph = self.graph_client(mailbox)
        payloads, skipped = self._load_attachments(req.attachment_ids)

        latest = self._latest_message(req.conversation_id)
        if latest is not None:
            receipt = self._send_reply(graph, latest, req, to, cc, payloads)
        else:
            receipt = self._send_new(graph, req, to, cc, payloads)
        receipt.attachments_skipped = skipped + receipt.attachments_skipped

        logger.info(
            "sent %s email to %s (%d attachments, %d skipped)",
            receipt.mode,
            ", ".join(to),
            len(receipt.attachments_sent),
            len(receipt.attachments_skipped),
        )
        return receipt

    def _send_reply(
        self,
        graph: GraphClient,
        latest: MailMessage,
        req: SendRequest,
        to: list[str],
        cc: list[str],
        payloads: list[tuple[uuid.UUID, dict[str, Any]]],
    ) -> SendReceipt:
        try:
            reply = graph.create_reply(latest.provider_message_id)
        except ProviderError as exc:
            raise SendFailure(f"failed to create reply: {exc}") from exc
        draft_id = reply.get("id")
        if not draft_id:
            raise SendFailure("createReply returned no draft id")

        receipt = SendReceipt(mode="reply", replied_to=latest.provider_message_id)
        try:
            patch: dict[str, Any] = {
                "body": body_payload(html=req.body_html, text=req.body_text),
                "toRecipients": recipients_payload(to),
            }
            if cc:
                patch["ccRecipients"] = recipients_payload(cc)
            graph.update_message(draft_id, patch)

            for attachment_id, payload in payloads:
                try:
                    graph.add_attachment(draft_id, payload)
                    receipt.attachments_sent.append(attachment_id)
                except ProviderError as exc:
                    logger.warning("attachment %s could not be added, sending without it: %s", attachment_id, exc)
                    receipt.attachments_skipped.append(attachment_id)

            graph.send_message(draft_id)
        except ProviderError as exc:
            self._discard_provider_draft(graph, draft_id)
            raise SendFailure(f"failed to send reply: {exc}") from exc
        return receipt

    def _send_new(
        self,
        graph: GraphClient,
        req: SendRequest,
        to: list[str],
        cc: list[str],
        payloads: list[tuple[uuid.UUID, dict[str, Any]]],
    ) -> SendReceipt:
        message: dict[str, Any] = {
            "subject": req.subject,
            "body": body_payload(html=req.body_html, text=req.body_text),
            "toRecipients": recipients_payload(to),
        }
        if cc:
            message["ccRecipients"] = recipients_payload(cc)
        if payloads:
            message["attachments"] = [payload for _, payload in payloads]

        try:
            graph.send_mail(message, save_to_sent_items=True)
        except ProviderError as exc:
            raise SendFailure(f"failed to send email: {exc}") from exc
        return SendReceipt(mode="new", attachments_sent=[attachment_id for attachment_id, _ in payloads])

    def _discard_provider_draft(self, graph: GraphClient, draft_id: str) -> None:
        try:
            graph.delete_message(draft_id)
        except ProviderError as exc:
            logger.warning("orphaned reply draft %s could not be deleted: %s", draft_id, exc)

    # ---------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------
    def _resolve_conversation(self, conversation_id: Optional[str]) -> Optional[Conversation]:
        if not conversation_id:
            return None
        repo = ConversationRepository(self.db)
        try:
            conv = repo.get(uuid.UUID(str(conversation_id)))
        except ValueError:
            conv = None
        return conv or repo.get_by_thread_id(str(conversation_id))

    def _latest_message(self, conversation_id: Optional[str]) -> Optional[MailMessage]:
        conv = self._resolve_conversation(conversation_id)
        if conv is None:
            return None
        return MailMessageRepository(self.db).latest_for_conversation(conv.id)

    def _load_attachments(
        self, attachment_ids: list[uuid.UUID]
    ) -> tuple[list[tuple[uuid.UUID, dict[str, Any]]], list[uuid.UUID]]:
        if not attachment_ids:
            return [], []
        found = EmailTemplateRepository(self.db).get_attachments(attachment_ids)
        found_ids = {a.id for a in found}
        skipped = [i for i in attachment_ids if i not in found_ids]
        for missing in skipped:
            logger.warning("attachment %s not found, skipping", missing)

        payloads: list[tuple[uuid.UUID, dict[str, Any]]] = []
        for attachment in found:
            try:
                payloads.append((attachment.id, self.attachments.graph_payload(attachment)))
            except (InvalidRequest, OSError) as exc:
                logger.warning("attachment %s (%s) could not be loaded: %s", attachment.id, attachment.filename, exc)
                skipped.append(attachment.id)
        return payloads, skipped

    def _record_success(self, reservation_id: Optional[uuid.UUID], attachment_ids: list[uuid.UUID]) -> None:
        """Audit rows and last_email_sent_at. Best-effort: the mail is already out."""
        try:
            self._write_success(reservation_id, attachment_ids)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("email sent but bookkeeping for reservation %s failed: %s", reservation_id, exc)

    def _write_success(self, reservation_id: Optional[uuid.UUID], attachment_ids: list[uuid.UUID]) -> None:
        if reservation_id is None:
            return
        reservation = ReservationRepository(self.db).get(reservation_id)
        if reservation is None:
            logger.warning("sent email references unknown reservation %s", reservation_id)
            return
        if attachment_ids:
            EmailTemplateRepository(self.db).record_usage(reservation_id=reservation.id, attachment_ids=attachment_ids)
        reservation.last_email_sent_at = now_utc()
        self.db.add(reservation)
        self.db.commit()

    # ---------------------------------------------------------
    # Draft lifecycle
    # ---------------------------------------------------------
    def send_draft(self, draft_id: uuid.UUID, *, mailbox: Optional[str] = None) -> EmailDraft:
        """pending|failed -> sending -> sent | failed (attempt_count + 1, error kept)."""
        drafts = EmailDraftRepository(self.db)
        draft = drafts.get(draft_id)
        if draft is None:
            raise NotFound(f"draft {draft_id} not found")
        if draft.status not in (DraftStatus.pending, DraftStatus.failed):
            raise InvalidRequest(f"draft {draft_id} is {draft.status.value}")
        if not _clean(draft.to_recipients or []):
            raise InvalidRequest("draft has no recipients")

        attachment_ids: list[uuid.UUID] = []
        if draft.template_id is not None:
            template = EmailTemplateRepository(self.db).get_active(draft.template_id)
            if template is not None:
                attachment_ids = [a.id for a in template.attachments]

        draft.status = DraftStatus.sending
        self.db.add(draft)
        self.db.commit()

        request = SendRequest(
            to_recipients=list(draft.to_recipients),
            cc_recipients=list(draft.cc_recipients or []),
            subject=draft.subject,
            body_html=draft.body_html,
            body_text=draft.body_text,
            reservation_id=draft.reservation_id,
            conversation_id=str(draft.conversation_id) if draft.conversation_id else None,
            template_id=draft.template_id,
            attachment_ids=attachment_ids,
        )
        try:
            receipt = self._deliver(request, mailbox=mailbox)
        except Exception as exc:
            # anything short of provider acceptance leaves the draft retryable
            self.db.rollback()
            draft.status = DraftStatus.failed
            draft.error_message = str(exc) if isinstance(exc, StayInboxError) else f"{type(exc).__name__}: {exc}"
            draft.attempt_count = (draft.attempt_count or 0) + 1
            self.db.add(draft)
            self.db.commit()
            raise

        draft.status = DraftStatus.sent
        draft.sent_at = now_utc()
        draft.error_message = None
        self.db.add(draft)
        self.db.commit()

        self._record_success(request.reservation_id, receipt.attachments_sent)
        return draft

    def discard_draft(self, draft_id: uuid.UUID) -> None:
        drafts = EmailDraftRepository(self.db)
        draft = drafts.get(draft_id)
        if draft is None:
            raise NotFound(f"draft {draft_id} not found")
        drafts.delete(draft)
        self.db.commit()
