"""
Domain error -> HTTP response mapping.

Services raise StayInboxError subclasses; routers never catch them, these
handlers translate them into `{"error": ...}` bodies.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stayinbox.core.errors import (
    AuthenticationError,
    ExtractionParseError,
    ExtractionUnavailable,
    InvalidRequest,
    MissingConfiguration,
    NotAuthenticated,
    NotFound,
    ProviderError,
    SendFailure,
    StayInboxError,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


async def _handle(request: Request, exc: StayInboxError) -> JSONResponse:
    if isinstance(exc, (NotAuthenticated, AuthenticationError)):
        return _error(401, str(exc), needs_oauth=True)
    if isinstance(exc, (MissingConfiguration, InvalidRequest)):
        return _error(400, str(exc))
    if isinstance(exc, NotFound):
        return _error(404, str(exc))
    if isinstance(exc, (SendFailure, ProviderError)):
        logger.warning("%s %s -> provider failure: %s", request.method, request.url.path, exc)
        return _error(502, str(exc))
    if isinstance(exc, ExtractionParseError):
        return _error(502, "Failed to parse extraction result", details=str(exc))
    if isinstance(exc, ExtractionUnavailable):
        return _error(503, str(exc))

    logger.exception("%s %s -> unhandled domain error", request.method, request.url.path)
    return _error(500, str(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StayInboxError, _handle)
