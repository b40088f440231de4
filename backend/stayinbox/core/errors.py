from __future__ import annotations


class StayInboxError(Exception):
    """Base class for domain errors raised by services and mapped by the API layer."""


class MissingConfiguration(StayInboxError):
    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"missing configuration: {key}")


# ---------------------------------------------------------
# Authentication
# ---------------------------------------------------------
class NotAuthenticated(StayInboxError):
    """No OAuth token on file for the mailbox."""

    def __init__(self, mailbox: str) -> None:
        self.mailbox = mailbox
        super().__init__(f"mailbox {mailbox} is not authenticated, OAuth setup required")


class AuthenticationError(StayInboxError):
    """Token refresh (or code exchange) was rejected."""

    def __init__(self, mailbox: str, detail: str = "") -> None:
        self.mailbox = mailbox
        self.detail = detail
        super().__init__(f"authentication failed for {mailbox}: {detail}".rstrip(": "))


# ---------------------------------------------------------
# Mail provider
# ---------------------------------------------------------
class ProviderError(StayInboxError):
    def __init__(self, status: int | None, body: str = "", operation: str = "") -> None:
        self.status = status
        self.body = body
        self.operation = operation
        super().__init__(f"{operation or 'provider call'} failed ({status}): {body[:300]}")


class ProviderFetchError(ProviderError):
    """Non-2xx while listing or fetching messages."""


class ProviderPayloadError(ProviderFetchError):
    """Provider returned a message that does not match the expected shape."""

    def __init__(self, detail: str) -> None:
        super().__init__(None, detail, "parse message")


# ---------------------------------------------------------
# Extraction / reconciliation
# ---------------------------------------------------------
class ExtractionUnavailable(StayInboxError):
    """Extractor is not configured or could not be reached."""


class ExtractionParseError(StayInboxError):
    """Extractor answered with malformed data."""


class ReconciliationWriteError(StayInboxError):
    """Persisting the reservation or draft failed."""


class SendFailure(StayInboxError):
    """Provider rejected an outbound send."""


# ---------------------------------------------------------
# Request-level
# ---------------------------------------------------------
class NotFound(StayInboxError):
    pass


class InvalidRequest(StayInboxError):
    pass
