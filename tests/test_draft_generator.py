"""Tests for the missing-details draft generator."""

from datetime import date

from conftest import MAILBOX, graph_message
from stayinbox.core.config import Settings
from stayinbox.domain.graph_message import parse_graph_messages
from stayinbox.domain.models.email_draft import DraftOrigin, DraftStatus
from stayinbox.domain.models.email_template import EmailTemplate
from stayinbox.domain.models.reservation import Reservation
from stayinbox.services.draft_generator import DraftGenerator, placeholder_values, render_template
from stayinbox.services.store_sync import StoreSync


def _reservation(db, **overrides):
    conv = StoreSync(db).reconcile(
        "t1",
        parse_graph_messages([graph_message("m1", "t1", subject="Family trip", sender="ann@example.com")]),
        mailbox=MAILBOX,
    ).conversation
    values = dict(
        conversation_id=conv.id,
        guest_name="Ann Lee",
        guest_email=None,
        arrival_date=date(2026, 2, 10),
        departure_date=None,
        adults=2,
        children=0,
    )
    values.update(overrides)
    reservation = Reservation(**values)
    db.add(reservation)
    db.flush()
    return reservation


def test_render_template_blanks_unknown_keys():
    assert render_template("Hi {{ guest_name }}{{unknown}}!", {"guest_name": "Ann"}) == "Hi Ann!"


def test_placeholder_values_lists_missing_details():
    r = Reservation(guest_name=None, guest_email="ann@example.com", adults=None, children=0)

    values = placeholder_values(r)

    assert values["guest_name"] == "ann"
    assert values["arrival_date"] == "Not provided"
    assert "- Check-in date" in values["missing_fields_list"]
    assert "- Number of adults" in values["missing_fields_list"]
    assert "<br>" in placeholder_values(r, html=True)["missing_fields_list"]


def test_fallback_draft_for_incomplete_reservation(db, settings):
    reservation = _reservation(db)

    draft = DraftGenerator(db, settings).maybe_create_missing_details_draft(reservation)

    assert draft is not None
    assert draft.status == DraftStatus.pending
    assert draft.created_by == DraftOrigin.auto
    assert draft.subject == "Re: Family trip"
    # guest email missing on the record: first inbound sender is addressed
    assert draft.to_recipients == ["ann@example.com"]
    assert "- Check-out date" in draft.body_text
    assert draft.template_id is None


def test_at_most_one_pending_draft(db, settings):
    reservation = _reservation(db)
    generator = DraftGenerator(db, settings)

    assert generator.maybe_create_missing_details_draft(reservation) is not None
    assert generator.maybe_create_missing_details_draft(reservation) is None


def test_complete_reservation_gets_no_draft(db, settings):
    reservation = _reservation(db, departure_date=date(2026, 2, 12), guest_email="ann@example.com")

    assert DraftGenerator(db, settings).maybe_create_missing_details_draft(reservation) is None


def test_configured_template_is_rendered(db):
    template = EmailTemplate(
        name="Missing details",
        subject_template="Your stay from {{arrival_date}}",
        html_body_template="<p>Dear {{guest_name}},</p><p>{{missing_fields_list}}</p>",
        is_active=True,
    )
    db.add(template)
    db.flush()
    settings = Settings(env={"MISSING_DETAILS_TEMPLATE_ID": str(template.id)})
    reservation = _reservation(db)

    draft = DraftGenerator(db, settings).maybe_create_missing_details_draft(reservation)

    assert draft.template_id == template.id
    assert draft.subject == "Your stay from 2026-02-10"
    assert draft.body_html.startswith("<p>Dear Ann Lee,</p>")
    assert "- Check-out date" in draft.body_html
    assert draft.body_text is None


def test_guest_values_are_escaped_in_html_templates():
    r = Reservation(guest_name='<b onclick="x()">Ann</b> & co', guest_email="ann@example.com", adults=2, children=0)

    html_values = placeholder_values(r, html=True)
    text_values = placeholder_values(r)

    assert html_values["guest_name"] == "&lt;b onclick=&quot;x()&quot;&gt;Ann&lt;/b&gt; &amp; co"
    assert "<br>" in html_values["missing_fields_list"]
    assert text_values["guest_name"] == '<b onclick="x()">Ann</b> & co'


def test_html_draft_does_not_inject_guest_markup(db):
    template = EmailTemplate(
        name="Missing details",
        subject_template="",
        html_body_template="<p>Dear {{guest_name}},</p>",
        is_active=True,
    )
    db.add(template)
    db.flush()
    settings = Settings(env={"MISSING_DETAILS_TEMPLATE_ID": str(template.id)})
    reservation = _reservation(db, guest_name="<script>alert(1)</script>")

    draft = DraftGenerator(db, settings).maybe_create_missing_details_draft(reservation)

    assert "<script>" not in draft.body_html
    assert draft.body_html == "<p>Dear &lt;script&gt;alert(1)&lt;/script&gt;,</p>"


def test_inactive_template_falls_back(db):
    template = EmailTemplate(name="Old", subject_template="x", body_template="y", is_active=False)
    db.add(template)
    db.flush()
    settings = Settings(env={"MISSING_DETAILS_TEMPLATE_ID": str(template.id)})

    draft = DraftGenerator(db, settings).maybe_create_missing_details_draft(_reservation(db))

    assert draft.template_id is None
    assert draft.body_text.startswith("Thank you for your inquiry.")
