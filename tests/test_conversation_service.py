"""Tests for inbox reads and the open-conversation side effects."""

import json

import httpx
import pytest

from conftest import MAILBOX, graph_message
from stayinbox.adapters.graph_client import GraphClient
from stayinbox.core.errors import NotFound
from stayinbox.domain.graph_message import parse_graph_messages
from stayinbox.domain.models.reservation import Reservation, RoomProposal
from stayinbox.repositories.message_repository import MailMessageRepository
from stayinbox.services.conversation_service import ConversationService
from stayinbox.services.store_sync import StoreSync


@pytest.fixture
def conversation(db):
    return StoreSync(db).reconcile(
        "t1",
        parse_graph_messages(
            [
                graph_message("m1", "t1", is_read=True, received="2026-01-20T09:00:00Z"),
                graph_message("m2", "t1", received="2026-01-20T10:00:00Z"),
                graph_message("m3", "t1", received="2026-01-20T11:00:00Z"),
            ]
        ),
        mailbox=MAILBOX,
    ).conversation


def test_list_conversations_with_counts(db, settings, conversation):
    reservation = Reservation(conversation_id=conversation.id, guest_name="John Smith")
    reservation.room_proposals = [RoomProposal(proposal_name="Option A", rooms=[]), RoomProposal(proposal_name="Option B", rooms=[])]
    db.add(reservation)
    db.commit()

    (summary,) = ConversationService(db, settings).list_conversations(mailbox=MAILBOX)

    assert summary.is_new is True
    assert summary.unread_count == 2
    assert summary.reservation.id == reservation.id
    assert summary.proposal_count == 2


def test_resolve_by_uuid_or_thread_id(db, settings, conversation):
    service = ConversationService(db, settings)

    assert service.resolve(str(conversation.id)) is conversation
    assert service.resolve("t1") is conversation
    with pytest.raises(NotFound):
        service.resolve("unknown-thread")


def test_list_messages_oldest_first(db, settings, conversation):
    messages = ConversationService(db, settings).list_messages("t1")

    assert [m.provider_message_id for m in messages] == ["m1", "m2", "m3"]


def test_open_marks_read_locally_and_remotely(db, settings, stub, conversation):
    stub.json("PATCH", "/messages/m2", {})
    stub.on("PATCH", "/messages/m3", httpx.Response(500, text="boom"))
    graph = GraphClient(mailbox=MAILBOX, access_token="t", base_url=settings.MSGRAPH_BASE_URL, http=stub.client())

    result = ConversationService(db, settings, graph=graph).open_conversation("t1")

    assert result.marked_read == 2
    assert len(result.provider_errors) == 1
    assert all(json.loads(r.content) == {"isRead": True} for r in stub.requests)
    assert MailMessageRepository(db).list_unread_provider_ids(conversation.id) == []
    assert conversation.viewed_at is not None


def test_open_twice_keeps_first_viewed_at(db, settings, stub, conversation):
    stub.json("PATCH", "/messages/m2", {})
    stub.json("PATCH", "/messages/m3", {})
    graph = GraphClient(mailbox=MAILBOX, access_token="t", base_url=settings.MSGRAPH_BASE_URL, http=stub.client())
    service = ConversationService(db, settings, graph=graph)

    first = service.open_conversation("t1").conversation.viewed_at
    again = service.open_conversation("t1")

    assert again.conversation.viewed_at == first
    assert again.marked_read == 0


def test_open_without_token_still_updates_locally(db, settings, stub, conversation):
    result = ConversationService(db, settings, http=stub.client()).open_conversation("t1")

    assert result.marked_read == 2
    assert "not authenticated" in result.provider_errors[0]
    assert stub.requests == []
