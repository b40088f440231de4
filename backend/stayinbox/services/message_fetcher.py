from __future__ import annotations

import logging
from dataclasses import dataclass, field

from stayinbox.adapters.graph_client import GraphClient
from stayinbox.core.errors import ProviderFetchError, ProviderPayloadError
from stayinbox.domain.graph_message import GraphMessage, parse_graph_messages

logger = logging.getLogger(__name__)


@dataclass
class FetchedMessages:
    inbound: list[GraphMessage] = field(default_factory=list)
    sent: list[GraphMessage] = field(default_factory=list)

    def all(self) -> list[GraphMessage]:
        return [*self.inbound, *self.sent]


def fetch_recent_messages(graph: GraphClient, *, page_size: int = 50) -> FetchedMessages:
    """
    Most recent `page_size` inbox and sent messages, newest first.

    - inbox failure -> ProviderFetchError (the inbox is the primary signal)
    - sent-items failure -> logged, empty sent list
    """
    inbound = parse_graph_messages(
        graph.list_folder_messages("Inbox", top=page_size, order_by="receivedDateTime")
    )

    try:
        sent_payloads = graph.list_folder_messages("SentItems", top=page_size, order_by="sentDateTime")
    except ProviderFetchError as exc:
        logger.warning("sent items fetch failed for %s, continuing with inbox only: %s", graph.mailbox, exc)
        sent_payloads = []

    try:
        sent = parse_graph_messages(sent_payloads)
    except ProviderPayloadError as exc:
        logger.warning("sent items payload rejected for %s: %s", graph.mailbox, exc)
        sent = []

    return FetchedMessages(inbound=inbound, sent=sent)


def fetch_conversation_messages(graph: GraphClient, thread_id: str) -> list[GraphMessage]:
    """All messages of one thread (mailbox-wide plus Sent Items), deduplicated by id."""
    messages = parse_graph_messages(graph.list_conversation_messages(thread_id))

    try:
        sent = parse_graph_messages(graph.list_conversation_messages(thread_id, folder="SentItems"))
    except ProviderFetchError as exc:
        logger.warning("sent items fetch failed for thread %s: %s", thread_id, exc)
        sent = []

    seen = {m.id for m in messages}
    messages.extend(m for m in sent if m.id not in seen)
    return messages
