from __future__ import annotations

from typing import Any, Iterable, Mapping


class UploadError(Exception):
    code = "upload_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BackendUnavailable(UploadError):
    code = "backend_unavailable"


class CoordinatorUnavailable(UploadError):
    code = "coordinator_unavailable"


class AuthorizationError(UploadError):
    code = "authorization_error"


class SessionNotFound(AuthorizationError):
    code = "session_not_found"


class InvalidSessionState(UploadError):
    code = "invalid_session_state"


class InvalidUploadRequest(UploadError):
    code = "invalid_upload_request"


class IncompleteParts(UploadError):
    code = "incomplete_parts"

    def __init__(self, message: str, missing_parts: Iterable[int] = ()) -> None:
        super().__init__(message)
        self.missing_parts = sorted(set(missing_parts))


class TransferFailure(UploadError):
    code = "transfer_failure"

    def __init__(self, message: str, *, part_number: int, attempts: int) -> None:
        super().__init__(message)
        self.part_number = part_number
        self.attempts = attempts


# Worth another attempt after a pause; everything else needs a caller decision.
TRANSIENT_ERRORS = (BackendUnavailable, CoordinatorUnavailable)

_ERRORS_BY_CODE = {
    error.code: error
    for error in (
        BackendUnavailable,
        AuthorizationError,
        SessionNotFound,
        InvalidSessionState,
        InvalidUploadRequest,
    )
}


def error_from_response(status_code: int, payload: Mapping[str, Any] | None) -> UploadError:
    """Rebuild the coordinator's error from an error response body."""
    payload = payload or {}
    code = payload.get("error")
    detail = payload.get("detail") or f"Coordinator responded with {status_code}"
    if not isinstance(detail, str):
        detail = str(detail)
    if code == IncompleteParts.code:
        return IncompleteParts(detail, missing_parts=payload.get("missing_parts", []))
    error_type = _ERRORS_BY_CODE.get(code)
    if error_type is not None:
        return error_type(detail)
    if status_code >= 500:
        return CoordinatorUnavailable(detail)
    return InvalidUploadRequest(detail)
