"""Tests for the outbound send orchestrator (reply, new thread, draft lifecycle)."""

import base64
import json

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from conftest import MAILBOX, graph_message
from stayinbox.adapters.graph_client import GraphClient
from stayinbox.core.errors import InvalidRequest, NotFound, SendFailure
from stayinbox.domain.graph_message import parse_graph_messages
from stayinbox.domain.models.email_draft import DraftStatus, EmailDraft
from stayinbox.domain.models.email_template import EmailTemplate, TemplateAttachment
from stayinbox.domain.models.message_attachment import MessageAttachment
from stayinbox.domain.models.reservation import Reservation
from stayinbox.services.send_orchestrator import SendOrchestrator, SendRequest
from stayinbox.services.store_sync import StoreSync


def _data_url(content: bytes, mime="application/pdf") -> str:
    return f"data:{mime};base64,{base64.b64encode(content).decode()}"


@pytest.fixture
def thread(db):
    conv = StoreSync(db).reconcile(
        "t1",
        parse_graph_messages(
            [
                graph_message("m1", "t1", received="2026-01-20T09:00:00Z"),
                graph_message("m2", "t1", received="2026-01-20T10:00:00Z"),
            ]
        ),
        mailbox=MAILBOX,
    ).conversation
    reservation = Reservation(conversation_id=conv.id, guest_name="John Smith", guest_email="john@example.com")
    db.add(reservation)
    db.commit()
    return conv, reservation


@pytest.fixture
def attachments(db):
    template = EmailTemplate(name="Quote", subject_template="Quote", body_template="...", is_active=True)
    template.attachments = [
        TemplateAttachment(filename="rates.pdf", content_type="application/pdf", storage_path=_data_url(b"rates")),
        TemplateAttachment(filename="map.pdf", content_type="application/pdf", storage_path=_data_url(b"map")),
    ]
    db.add(template)
    db.commit()
    return template


def _orchestrator(db, settings, stub):
    graph = GraphClient(mailbox=MAILBOX, access_token="t", base_url=settings.MSGRAPH_BASE_URL, http=stub.client())
    return SendOrchestrator(db, settings, graph=graph)


def _reply_routes(stub, *, attach_failures=0, send_status=202):
    state = {"attach_calls": 0}

    def attach(request):
        state["attach_calls"] += 1
        if state["attach_calls"] <= attach_failures:
            return httpx.Response(413, text="too large")
        return httpx.Response(201, json={"id": f"att-{state['attach_calls']}"})

    stub.json("POST", "/messages/m2/createReply", {"id": "draft-1"}, status=201)
    stub.json("PATCH", "/messages/draft-1", {"id": "draft-1"})
    stub.on("POST", "/messages/draft-1/attachments", attach)
    stub.on("POST", "/messages/draft-1/send", httpx.Response(send_status))
    stub.on("DELETE", "/messages/draft-1", httpx.Response(204))
    return state


def test_reply_with_two_attachments_one_failing(db, settings, stub, thread, attachments):
    """createReply -> PATCH -> one POST per attachment -> send; a failed attachment is skipped."""
    conv, reservation = thread
    _reply_routes(stub, attach_failures=1)
    ids = [a.id for a in attachments.attachments]

    receipt = _orchestrator(db, settings, stub).send(
        SendRequest(
            to_recipients=["john@example.com"],
            cc_recipients=["sales@lodge.example"],
            subject="ignored on replies",
            body_html="<p>Please find our rates attached.</p>",
            reservation_id=reservation.id,
            conversation_id=conv.thread_id,
            attachment_ids=ids,
        )
    )

    assert [(r.method, r.url.path.rsplit("/", 1)[-1]) for r in stub.requests] == [
        ("POST", "createReply"),
        ("PATCH", "draft-1"),
        ("POST", "attachments"),
        ("POST", "attachments"),
        ("POST", "send"),
    ]
    patch = json.loads(stub.requests[1].content)
    assert "subject" not in patch
    assert patch["body"] == {"contentType": "HTML", "content": "<p>Please find our rates attached.</p>"}
    assert patch["toRecipients"] == [{"emailAddress": {"address": "john@example.com"}}]
    assert patch["ccRecipients"] == [{"emailAddress": {"address": "sales@lodge.example"}}]

    first_attachment = json.loads(stub.requests[2].content)
    assert first_attachment["@odata.type"] == "#microsoft.graph.fileAttachment"
    assert base64.b64decode(first_attachment["contentBytes"]) == b"rates"

    assert receipt.mode == "reply"
    assert receipt.replied_to == "m2"
    assert receipt.attachments_sent == [ids[1]]
    assert receipt.attachments_skipped == [ids[0]]

    used = db.query(MessageAttachment).all()
    assert [u.attachment_id for u in used] == [ids[1]]
    assert reservation.last_email_sent_at is not None


def test_unloadable_attachment_is_skipped_before_sending(db, settings, stub, thread, attachments):
    conv, _ = thread
    _reply_routes(stub)
    broken = attachments.attachments[0]
    broken.storage_path = "../outside.pdf"
    db.commit()

    receipt = _orchestrator(db, settings, stub).send(
        SendRequest(
            to_recipients=["john@example.com"],
            body_text="hi",
            conversation_id=str(conv.id),
            attachment_ids=[a.id for a in attachments.attachments],
        )
    )

    assert len(stub.calls("POST", "/attachments")) == 1
    assert receipt.attachments_skipped == [broken.id]


def test_failed_send_deletes_reply_draft(db, settings, stub, thread):
    conv, reservation = thread
    _reply_routes(stub, send_status=500)

    with pytest.raises(SendFailure):
        _orchestrator(db, settings, stub).send(
            SendRequest(
                to_recipients=["john@example.com"],
                body_text="hi",
                reservation_id=reservation.id,
                conversation_id=conv.thread_id,
            )
        )

    assert len(stub.calls("DELETE", "/messages/draft-1")) == 1
    assert reservation.last_email_sent_at is None


def test_new_thread_uses_send_mail(db, settings, stub, attachments):
    stub.on("POST", "/sendMail", httpx.Response(202))
    ids = [a.id for a in attachments.attachments]

    receipt = _orchestrator(db, settings, stub).send(
        SendRequest(to_recipients=[" guest@example.com ", ""], subject="Your quote", body_text="Hello", attachment_ids=ids)
    )

    (request,) = stub.requests
    payload = json.loads(request.content)
    assert payload["saveToSentItems"] is True
    assert payload["message"]["subject"] == "Your quote"
    assert payload["message"]["toRecipients"] == [{"emailAddress": {"address": "guest@example.com"}}]
    assert len(payload["message"]["attachments"]) == 2
    assert receipt.mode == "new"
    assert receipt.attachments_sent == ids


def test_recipients_required(db, settings, stub):
    with pytest.raises(InvalidRequest):
        _orchestrator(db, settings, stub).send(SendRequest(to_recipients=["  "], body_text="x"))
    assert stub.requests == []


def _draft(db, conv, reservation, template=None):
    draft = EmailDraft(
        reservation_id=reservation.id,
        conversation_id=conv.id,
        template_id=template.id if template is not None else None,
        to_recipients=["john@example.com"],
        cc_recipients=[],
        subject="Re: Booking enquiry",
        body_text="Please send the missing details.",
    )
    db.add(draft)
    db.commit()
    return draft


def test_send_draft_lifecycle(db, settings, stub, thread, attachments):
    conv, reservation = thread
    draft = _draft(db, conv, reservation, attachments)
    _reply_routes(stub)

    sent = _orchestrator(db, settings, stub).send_draft(draft.id)

    assert sent.status == DraftStatus.sent
    assert sent.sent_at is not None
    # template attachments go out with the draft
    assert len(stub.calls("POST", "/attachments")) == 2


def test_failed_draft_can_be_retried(db, settings, stub, thread):
    conv, reservation = thread
    draft = _draft(db, conv, reservation)
    _reply_routes(stub, send_status=500)
    orchestrator = _orchestrator(db, settings, stub)

    with pytest.raises(SendFailure):
        orchestrator.send_draft(draft.id)
    assert draft.status == DraftStatus.failed
    assert draft.attempt_count == 1
    assert "send reply" in draft.error_message

    stub.routes.clear()
    _reply_routes(stub)
    assert orchestrator.send_draft(draft.id).status == DraftStatus.sent
    assert draft.error_message is None

    with pytest.raises(InvalidRequest):
        orchestrator.send_draft(draft.id)


def test_draft_is_sent_even_if_bookkeeping_fails(db, settings, stub, thread, monkeypatch):
    """Once the provider accepted the mail the draft is final; audit rows are best-effort."""
    conv, reservation = thread
    draft = _draft(db, conv, reservation)
    _reply_routes(stub)

    def broken_write(self, reservation_id, attachment_ids):
        raise OperationalError("UPDATE reservations", {}, Exception("database is locked"))

    monkeypatch.setattr(SendOrchestrator, "_write_success", broken_write)

    sent = _orchestrator(db, settings, stub).send_draft(draft.id)

    db.refresh(sent)
    assert sent.status == DraftStatus.sent
    assert len(stub.calls("POST", "/send")) == 1
    db.refresh(reservation)
    assert reservation.last_email_sent_at is None


def test_unexpected_error_before_send_leaves_draft_retryable(db, settings, stub, thread, monkeypatch):
    conv, reservation = thread
    draft = _draft(db, conv, reservation)
    _reply_routes(stub)

    def explode(self, conversation_id):
        raise RuntimeError("lookup crashed")

    monkeypatch.setattr(SendOrchestrator, "_latest_message", explode)

    with pytest.raises(RuntimeError):
        _orchestrator(db, settings, stub).send_draft(draft.id)

    db.refresh(draft)
    assert draft.status == DraftStatus.failed
    assert draft.error_message == "RuntimeError: lookup crashed"
    assert stub.calls("POST", "/send") == []


def test_discard_draft(db, settings, stub, thread):
    conv, reservation = thread
    draft = _draft(db, conv, reservation)
    orchestrator = _orchestrator(db, settings, stub)

    orchestrator.discard_draft(draft.id)

    assert db.get(EmailDraft, draft.id) is None
    with pytest.raises(NotFound):
        orchestrator.discard_draft(draft.id)
