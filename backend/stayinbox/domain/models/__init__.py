# backend/stayinbox/domain/models/__init__.py

from stayinbox.db.base import Base

from .oauth_token import OAuthToken
from .conversation import Conversation, MessageDirection
from .mail_message import MailMessage
from .reservation import Reservation, ReservationStatus, RoomProposal
from .email_template import EmailTemplate, TemplateAttachment
from .email_draft import DraftOrigin, DraftStatus, EmailDraft
from .message_attachment import MessageAttachment

__all__ = [
    "Base",
    "OAuthToken",
    "Conversation",
    "MessageDirection",
    "MailMessage",
    "Reservation",
    "ReservationStatus",
    "RoomProposal",
    "EmailTemplate",
    "TemplateAttachment",
    "EmailDraft",
    "DraftStatus",
    "DraftOrigin",
    "MessageAttachment",
]
