from __future__ import annotations

import base64
import binascii
from pathlib import Path
from typing import Any

from stayinbox.core.errors import InvalidRequest
from stayinbox.domain.models.email_template import TemplateAttachment


class AttachmentStore:
    """
    Resolves a template attachment's storage_path to bytes.

    storage_path is either a `data:<mime>;base64,<payload>` URL or a path
    relative to the configured storage directory.
    """

    def __init__(self, root: str) -> None:
        self._root = Path(root).resolve()

    def load(self, storage_path: str) -> bytes:
        if storage_path.startswith("data:"):
            header, _, payload = storage_path.partition(",")
            if ";base64" not in header:
                raise InvalidRequest("only base64 data URLs are supported")
            try:
                return base64.b64decode(payload, validate=True)
            except binascii.Error as exc:
                raise InvalidRequest(f"invalid base64 attachment data: {exc}") from exc

        path = (self._root / storage_path.lstrip("/")).resolve()
        if self._root not in path.parents:
            raise InvalidRequest(f"attachment path escapes storage root: {storage_path}")
        return path.read_bytes()

    def graph_payload(self, attachment: TemplateAttachment) -> dict[str, Any]:
        content = self.load(attachment.storage_path)
        return {
            "@odata.type": "#microsoft.graph.fileAttachment",
            "name": attachment.display_name or attachment.filename,
            "contentType": attachment.content_type,
            "contentBytes": base64.b64encode(content).decode("ascii"),
        }
