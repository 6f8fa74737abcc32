from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from services.uploads.domain.errors import (
    AuthorizationError,
    BackendUnavailable,
    IncompleteParts,
    InvalidSessionState,
    InvalidUploadRequest,
    SessionNotFound,
    UploadError,
)

logger = logging.getLogger(__name__)

# Most specific classes first; SessionNotFound is an AuthorizationError.
_STATUS_CODES: list[tuple[type[UploadError], int]] = [
    (SessionNotFound, 404),
    (AuthorizationError, 403),
    (BackendUnavailable, 503),
    (IncompleteParts, 409),
    (InvalidSessionState, 409),
    (InvalidUploadRequest, 400),
]


def status_code_for(exc: UploadError) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def _handle_upload_error(request: Request, exc: UploadError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}")
    return JSONResponse(status_code=status_code, content=exc.to_payload())


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(UploadError, _handle_upload_error)
