from __future__ import annotations

from typing import Any, Iterable


class UploadError(Exception):
    """Base class for every failure the coordinator reports to callers."""

    code = "upload_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message}


class BackendUnavailable(UploadError):
    code = "backend_unavailable"


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

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["missing_parts"] = list(self.missing_parts)
        return payload
