from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AuthStatusResponse(BaseModel):
    authenticated: bool
    mailbox_address: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_expired: bool = False
    needs_refresh: bool = False
    message: Optional[str] = None
