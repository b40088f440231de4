# backend/stayinbox/api/v1/api.py
"""
StayInbox API router (mounted under /api/v1).
OAuth routes live outside the prefix, see main.py.
"""

from fastapi import APIRouter

from stayinbox.api.v1 import (
    conversations,
    drafts,
    emails,
    extraction,
    mailbox,
    reservations,
)

api_router = APIRouter()

# Mailbox sync (Inbox + Sent -> conversations -> extraction)
api_router.include_router(mailbox.router)

# Conversation inbox
api_router.include_router(conversations.router)

# Reservations + their drafts
api_router.include_router(reservations.router)
api_router.include_router(drafts.router)

# Outbound mail + proofreading
api_router.include_router(emails.router)

# Stand-alone extraction
api_router.include_router(extraction.router)
