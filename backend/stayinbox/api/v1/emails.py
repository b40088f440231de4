from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stayinbox.adapters.llm_client import LLMClient
from stayinbox.api.deps import get_app_settings, get_http_client, get_llm
from stayinbox.api.v1.schemas.email import (
    CheckTextRequest,
    CheckTextResponse,
    SendEmailRequest,
    SendEmailResponse,
)
from stayinbox.core.config import Settings
from stayinbox.core.errors import InvalidRequest
from stayinbox.db.session import get_db
from stayinbox.services.send_orchestrator import SendOrchestrator, SendRequest

router = APIRouter(prefix="/emails", tags=["emails"])


@router.post("/send", response_model=SendEmailResponse)
def send_email(
    body: SendEmailRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    http: httpx.Client = Depends(get_http_client),
):
    """
    Reply in-thread when conversationId resolves to a stored conversation,
    otherwise send a new message.
    """
    if not (body.body_html or body.body_text):
        raise InvalidRequest("bodyHtml or bodyText is required")

    receipt = SendOrchestrator(db, settings, http=http).send(
        SendRequest(
            to_recipients=body.to,
            cc_recipients=body.cc,
            subject=body.subject,
            body_html=body.body_html,
            body_text=body.body_text,
            reservation_id=body.reservation_id,
            conversation_id=body.conversation_id,
            template_id=body.template_id,
            attachment_ids=body.attachment_ids,
        ),
        mailbox=body.mailbox_address,
    )
    return SendEmailResponse(
        mode=receipt.mode,
        replied_to=receipt.replied_to,
        attachments_sent=receipt.attachments_sent,
        attachments_skipped=receipt.attachments_skipped,
    )


@router.post("/check-text", response_model=CheckTextResponse)
def check_text(body: CheckTextRequest, llm: LLMClient = Depends(get_llm)):
    if not body.emailText.strip():
        raise InvalidRequest("emailText is required")
    return CheckTextResponse(correctedText=llm.proofread(body.emailText))
