from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath

from services.uploads.application.dto import CreateUploadSessionCommand
from services.uploads.application.interfaces import (
    IdProvider,
    MultipartStorageBackend,
    SessionRepository,
)
from services.uploads.domain.errors import (
    BackendUnavailable,
    InvalidUploadRequest,
    UploadError,
)
from services.uploads.domain.session import UploadSession

LOGGER = logging.getLogger(__name__)

_EXTENSION_PATTERN = re.compile(r"^[a-z0-9]{1,16}$")
_MAX_KEY_ATTEMPTS = 5


class CreateUploadSessionUseCase:
    def __init__(
        self,
        *,
        id_provider: IdProvider,
        backend: MultipartStorageBackend,
        repository: SessionRepository,
        object_key_prefix: str = "",
    ) -> None:
        self._id_provider = id_provider
        self._backend = backend
        self._repository = repository
        self._object_key_prefix = object_key_prefix.strip("/")

    def execute(self, command: CreateUploadSessionCommand) -> UploadSession:
        if not command.content_type.strip():
            raise InvalidUploadRequest("content_type is required")

        object_key = self._allocate_object_key(command.filename)
        session_id = self._backend.initiate_upload(
            object_key=object_key, content_type=command.content_type
        )
        session = UploadSession.start(
            session_id=session_id,
            object_key=object_key,
            content_type=command.content_type,
            filename=command.filename,
        )
        try:
            self._repository.create(session)
        except BackendUnavailable:
            self._release_untracked(object_key, session_id)
            raise
        LOGGER.info("Created upload session %s for %s", session_id, object_key)
        return session

    def _release_untracked(self, object_key: str, upload_id: str) -> None:
        LOGGER.error(
            "Could not store session %s, aborting its backend upload", upload_id
        )
        try:
            self._backend.abort_upload(object_key=object_key, upload_id=upload_id)
        except UploadError as exc:
            LOGGER.error("Abort of unstored upload %s failed: %s", upload_id, exc)

    def _allocate_object_key(self, filename: str) -> str:
        for _ in range(_MAX_KEY_ATTEMPTS):
            object_key = build_object_key(
                self._id_provider.generate(), filename, self._object_key_prefix
            )
            if not self._repository.object_key_in_use(object_key):
                return object_key
            LOGGER.warning("Object key %s already in use, regenerating", object_key)
        raise BackendUnavailable("Could not allocate a unique object key")


def file_extension(filename: str) -> str | None:
    """Return the lower-cased extension of ``filename`` or None.

    Dotfiles (``.bashrc``) and names without a dot have no extension. An
    extension that is not short and alphanumeric is dropped rather than
    copied into the object key.
    """
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix
    extension = suffix[1:].lower()
    if not _EXTENSION_PATTERN.match(extension):
        return None
    return extension


def build_object_key(unique_id: str, filename: str, prefix: str = "") -> str:
    extension = file_extension(filename)
    name = f"{unique_id}.{extension}" if extension else unique_id
    return "/".join(segment for segment in [prefix, name] if segment)
