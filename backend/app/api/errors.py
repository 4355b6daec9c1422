"""Map domain errors onto HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse

from core.errors import (
    ConflictError,
    InsufficientCreditsError,
    NetworkError,
    NotFoundError,
    SignalDeskError,
    SyncError,
    TamperError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[SignalDeskError], int] = {
    ValidationError: 400,
    InsufficientCreditsError: 402,
    NotFoundError: 404,
    ConflictError: 409,
    TamperError: 423,
    NetworkError: 502,
    SyncError: 503,
}


def status_for(error: SignalDeskError) -> int:
    for error_type, status in STATUS_CODES.items():
        if isinstance(error, error_type):
            return status
    return 500


async def signal_desk_error_handler(request: Request, exc: SignalDeskError) -> ORJSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    body = {"error": exc.kind, "message": exc.message}
    if isinstance(exc, ConflictError):
        body["reason"] = exc.reason
    return ORJSONResponse(status_code=status, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SignalDeskError, signal_desk_error_handler)
