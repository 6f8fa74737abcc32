from __future__ import annotations

import logging

from services.uploads.application.authorize_part import load_session
from services.uploads.application.dto import CompleteUploadSessionCommand
from services.uploads.application.interfaces import (
    MultipartStorageBackend,
    SessionEventPublisher,
    SessionRepository,
)
from services.uploads.domain.errors import IncompleteParts, InvalidSessionState
from services.uploads.domain.session import UploadSessionState
from services.uploads.domain.upload import (
    CompletedUpload,
    CompletionPart,
    normalize_etag,
)

LOGGER = logging.getLogger(__name__)


class CompleteUploadSessionUseCase:
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

    def execute(self, command: CompleteUploadSessionCommand) -> CompletedUpload:
        session = load_session(
            self._repository, command.session_id, command.object_key
        )
        if session.state is UploadSessionState.COMPLETED:
            # A retry whose earlier attempt finished but lost its response.
            LOGGER.info(
                "Upload session %s already completed, replaying result",
                session.session_id,
            )
            return CompletedUpload(
                session_id=session.session_id,
                object_key=session.object_key,
                location=session.location,
                etag=None,
            )
        if session.state.is_terminal:
            raise InvalidSessionState(
                f"Upload session {session.session_id} is already {session.state.value}"
            )

        check_part_sequence(command.parts)
        self._reconcile_with_backend(session.object_key, session.session_id, command)

        completed = self._backend.complete_upload(
            object_key=session.object_key,
            upload_id=session.session_id,
            parts=[(part.part_number, part.etag) for part in command.parts],
        )
        finished = self._repository.transition(
            session.session_id,
            UploadSessionState.COMPLETED,
            location=completed.location,
        )
        LOGGER.info(
            "Completed upload session %s with %d parts",
            session.session_id,
            len(command.parts),
        )
        self._event_publisher.publish_completed(finished, completed)
        return completed

    def _reconcile_with_backend(
        self, object_key: str, upload_id: str, command: CompleteUploadSessionCommand
    ) -> None:
        recorded = {
            part.part_number: normalize_etag(part.etag)
            for part in self._backend.list_parts(
                object_key=object_key, upload_id=upload_id
            )
        }
        missing = [
            part.part_number
            for part in command.parts
            if recorded.get(part.part_number) != normalize_etag(part.etag)
        ]
        if missing:
            raise IncompleteParts(
                "Parts are missing at the storage backend or carry stale ETags",
                missing_parts=missing,
            )
        extra = sorted(set(recorded) - {part.part_number for part in command.parts})
        if extra:
            LOGGER.warning(
                "Session %s has uploaded parts %s that are not being completed",
                upload_id,
                extra,
            )


def check_part_sequence(parts: list[CompletionPart]) -> None:
    """Require part numbers 1..N, strictly ascending and without gaps."""
    if not parts:
        raise IncompleteParts("At least one part is required to complete an upload")

    numbers = [part.part_number for part in parts]
    if any(earlier >= later for earlier, later in zip(numbers, numbers[1:])):
        raise IncompleteParts("Parts must be listed in ascending part_number order")

    expected = set(range(1, max(numbers) + 1))
    missing = expected - set(numbers)
    if missing or numbers[0] < 1:
        raise IncompleteParts(
            "Parts must be numbered contiguously from 1", missing_parts=missing
        )
    if any(not part.etag.strip() for part in parts):
        raise IncompleteParts(
            "Every part needs an ETag",
            missing_parts=[part.part_number for part in parts if not part.etag.strip()],
        )
