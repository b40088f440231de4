from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Sequence

import httpx
from sqlalchemy.orm import Session

from stayinbox.adapters.graph_client import GraphClient
from stayinbox.core.config import Settings
from stayinbox.core.errors import AuthenticationError, MissingConfiguration, NotAuthenticated, NotFound, ProviderError
from stayinbox.core.timeutil import now_utc
from stayinbox.domain.models.conversation import Conversation
from stayinbox.domain.models.mail_message import MailMessage
from stayinbox.domain.models.reservation import Reservation
from stayinbox.repositories.conversation_repository import ConversationRepository
from stayinbox.repositories.message_repository import MailMessageRepository
from stayinbox.repositories.reservation_repository import ReservationRepository
from stayinbox.services.token_provider import TokenProvider

logger = logging.getLogger(__name__)


@dataclass
class ConversationSummary:
    conversation: Conversation
    unread_count: int
    reservation: Optional[Reservation]
    proposal_count: int = 0

    @property
    def is_new(self) -> bool:
        return self.conversation.viewed_at is None


@dataclass
class OpenResult:
    conversation: Conversation
    marked_read: int
    provider_errors: list[str] = field(default_factory=list)


class ConversationService:
    """Inbox-side reads plus the 'staff opened this thread' side effects."""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        *,
        graph: Optional[GraphClient] = None,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self.db = db
        self.settings = settings
        self._graph = graph
        self.http = http

    def resolve(self, conversation_ref: str) -> Conversation:
        repo = ConversationRepository(self.db)
        try:
            local_id: Optional[uuid.UUID] = uuid.UUID(conversation_ref)
        except ValueError:
            local_id = None
        conv = repo.get(local_id) if local_id else None
        conv = conv or repo.get_by_thread_id(conversation_ref)
        if conv is None:
            raise NotFound(f"conversation {conversation_ref} not found")
        return conv

    def list_conversations(self, *, mailbox: Optional[str] = None, limit: int = 50) -> list[ConversationSummary]:
        conversations = ConversationRepository(self.db)
        reservations = ReservationRepository(self.db)

        rows = conversations.list_recent(mailbox_address=mailbox, limit=limit)
        unread = conversations.unread_counts([c.id for c in rows])

        summaries = []
        for conv in rows:
            summaries.append(
                ConversationSummary(
                    conversation=conv,
                    unread_count=unread.get(conv.id, 0),
                    reservation=reservations.get_by_conversation_id(conv.id),
                )
            )
        counts = reservations.proposal_counts([s.reservation.id for s in summaries if s.reservation])
        for s in summaries:
            if s.reservation is not None:
                s.proposal_count = counts.get(s.reservation.id, 0)
        return summaries

    def list_messages(self, conversation_ref: str) -> Sequence[MailMessage]:
        conv = self.resolve(conversation_ref)
        return MailMessageRepository(self.db).list_for_conversation(conv.id)

    def open_conversation(self, conversation_ref: str, *, mailbox: Optional[str] = None) -> OpenResult:
        """
        Staff opened the thread:
        - viewed_at is stamped once (clears the NEW badge)
        - unread messages are marked read locally and on the provider
          (provider failures are logged, local state is still updated)
        """
        conv = self.resolve(conversation_ref)
        if conv.viewed_at is None:
            conv.viewed_at = now_utc()
            self.db.add(conv)

        messages = MailMessageRepository(self.db)
        unread = messages.list_unread_provider_ids(conv.id)
        errors: list[str] = []

        if unread:
            try:
                graph = self._graph_client(mailbox or conv.mailbox_address)
            except (NotAuthenticated, AuthenticationError, MissingConfiguration) as exc:
                logger.warning("cannot propagate read state for %s: %s", conv.thread_id, exc)
                errors.append(str(exc))
                graph = None

            if graph is not None:
                for provider_id in unread:
                    try:
                        graph.mark_read(provider_id)
                    except ProviderError as exc:
                        logger.warning("mark-read failed for message %s: %s", provider_id, exc)
                        errors.append(str(exc))

            messages.mark_read(unread)

        self.db.commit()
        return OpenResult(conversation=conv, marked_read=len(unread), provider_errors=errors)

    def _graph_client(self, mailbox: Optional[str]) -> GraphClient:
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
