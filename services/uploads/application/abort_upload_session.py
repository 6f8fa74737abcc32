from __future__ import annotations

import logging

from services.uploads.application.dto import AbortUploadSessionCommand
from services.uploads.application.interfaces import (
    MultipartStorageBackend,
    SessionEventPublisher,
    SessionRepository,
)
from services.uploads.domain.errors import AuthorizationError, SessionNotFound
from services.uploads.domain.session import UploadSessionState
from services.uploads.domain.upload import AbortedUpload

LOGGER = logging.getLogger(__name__)


class AbortUploadSessionUseCase:
    def __init__(
        self,
        *,
        backend: MultipartStorageBackend,
        repository: SessionRepository,
        event_publisher: SessionEventPublisher,
    ) -> None:
        self._backend = backend
        self._repository = repository
        self._event_publisher = event_publisher

    def execute(self, command: AbortUploadSessionCommand) -> AbortedUpload:
        session = self._repository.get(command.session_id)
        if session is None:
            return self._abort_untracked(command)
        if session.object_key != command.object_key:
            raise AuthorizationError(
                f"Object key does not belong to upload session {session.session_id}"
            )

        if session.state.is_terminal:
            LOGGER.info(
                "Abort of session %s ignored, already %s",
                session.session_id,
                session.state.value,
            )
            return AbortedUpload(
                session_id=session.session_id,
                object_key=session.object_key,
                state=session.state,
                released=False,
            )

        released = self._backend.abort_upload(
            object_key=session.object_key, upload_id=session.session_id
        )
        aborted = self._repository.transition(
            session.session_id, UploadSessionState.ABORTED
        )
        LOGGER.info("Aborted upload session %s", session.session_id)
        self._event_publisher.publish_aborted(aborted)
        return AbortedUpload(
            session_id=aborted.session_id,
            object_key=aborted.object_key,
            state=aborted.state,
            released=released,
        )

    def _abort_untracked(self, command: AbortUploadSessionCommand) -> AbortedUpload:
        released = self._backend.abort_upload(
            object_key=command.object_key, upload_id=command.session_id
        )
        if not released:
            raise SessionNotFound(f"Upload session {command.session_id} not found")
        LOGGER.info(
            "Aborted untracked upload %s for %s", command.session_id, command.object_key
        )
        return AbortedUpload(
            session_id=command.session_id,
            object_key=command.object_key,
            state=UploadSessionState.ABORTED,
            released=True,
        )
