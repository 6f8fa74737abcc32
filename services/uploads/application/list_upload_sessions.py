from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone

from services.uploads.application.dto import (
    AbortStaleSessionsCommand,
    AbortUploadSessionCommand,
)
from services.uploads.application.abort_upload_session import (
    AbortUploadSessionUseCase,
)
from services.uploads.application.interfaces import (
    MultipartStorageBackend,
    SessionRepository,
)
from services.uploads.domain.errors import SessionNotFound
from services.uploads.domain.upload import AbortedUpload, MultipartUploadSummary

LOGGER = logging.getLogger(__name__)


class ListUploadSessionsUseCase:
    def __init__(
        self,
        *,
        backend: MultipartStorageBackend,
        repository: SessionRepository,
    ) -> None:
        self._backend = backend
        self._repository = repository

    def execute(self) -> list[MultipartUploadSummary]:
        summaries = []
        for summary in self._backend.list_uploads():
            session = self._repository.get(summary.session_id)
            if session is not None:
                summary = replace(summary, state=session.state)
            summaries.append(summary)
        return summaries


class AbortStaleSessionsUseCase:
    """Abort open uploads that were initiated too long ago.

    Clients that disappear mid-transfer leave multipart uploads behind at the
    backend. Operators run this sweep to release their part storage.
    """

    def __init__(
        self,
        *,
        list_sessions: ListUploadSessionsUseCase,
        abort_session: AbortUploadSessionUseCase,
    ) -> None:
        self._list_sessions = list_sessions
        self._abort_session = abort_session

    def execute(self, command: AbortStaleSessionsCommand) -> list[AbortedUpload]:
        cutoff = datetime.now(timezone.utc) - command.older_than
        aborted = []
        for summary in self._list_sessions.execute():
            if summary.initiated_at is None or summary.initiated_at > cutoff:
                continue
            try:
                result = self._abort_session.execute(
                    AbortUploadSessionCommand(
                        session_id=summary.session_id,
                        object_key=summary.object_key,
                    )
                )
            except SessionNotFound:
                LOGGER.info("Stale upload %s already released", summary.session_id)
                continue
            aborted.append(result)
        LOGGER.info("Stale session sweep aborted %d uploads", len(aborted))
        return aborted
