from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from services.uploads.application.dto import AuthorizePartCommand
from services.uploads.application.interfaces import (
    MultipartStorageBackend,
    SessionRepository,
)
from services.uploads.domain.errors import (
    AuthorizationError,
    InvalidSessionState,
    InvalidUploadRequest,
    SessionNotFound,
)
from services.uploads.domain.session import UploadSession, UploadSessionState
from services.uploads.domain.upload import PartAuthorization

LOGGER = logging.getLogger(__name__)

MAX_PART_NUMBER = 10_000
# SigV4 presigned URLs cannot outlive seven days.
MAX_AUTHORIZATION_TTL = timedelta(days=7)


def load_session(
    repository: SessionRepository, session_id: str, object_key: str
) -> UploadSession:
    session = repository.get(session_id)
    if session is None:
        raise SessionNotFound(f"Upload session {session_id} not found")
    if session.object_key != object_key:
        raise AuthorizationError(
            f"Object key does not belong to upload session {session_id}"
        )
    return session


class AuthorizePartUploadUseCase:
    def __init__(
        self,
        *,
        backend: MultipartStorageBackend,
        repository: SessionRepository,
        authorization_ttl: timedelta,
    ) -> None:
        self._backend = backend
        self._repository = repository
        self._authorization_ttl = authorization_ttl

    def execute(self, command: AuthorizePartCommand) -> PartAuthorization:
        ttl_seconds = self._ttl_seconds()
        if not 1 <= command.part_number <= MAX_PART_NUMBER:
            raise InvalidUploadRequest(
                f"part_number must be between 1 and {MAX_PART_NUMBER}"
            )

        session = load_session(
            self._repository, command.session_id, command.object_key
        )
        if session.state.is_terminal:
            raise AuthorizationError(
                f"Upload session {session.session_id} is {session.state.value}"
            )

        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        url = self._backend.generate_part_url(
            object_key=session.object_key,
            upload_id=session.session_id,
            part_number=command.part_number,
            expires_in_seconds=ttl_seconds,
        )
        if session.state is UploadSessionState.CREATED:
            try:
                self._repository.transition(
                    session.session_id, UploadSessionState.PARTS_IN_FLIGHT
                )
            except InvalidSessionState as exc:
                raise AuthorizationError(str(exc)) from exc
        LOGGER.debug(
            "Authorized part %s of session %s", command.part_number, session.session_id
        )
        return PartAuthorization(
            part_number=command.part_number,
            url=url,
            expires_at=expires_at,
            headers={"Content-Type": session.content_type},
        )

    def _ttl_seconds(self) -> int:
        ttl = self._authorization_ttl
        if ttl <= timedelta(0) or ttl > MAX_AUTHORIZATION_TTL:
            raise AuthorizationError(
                "Authorization TTL must be between 1 second and 7 days"
            )
        return max(int(ttl.total_seconds()), 1)
