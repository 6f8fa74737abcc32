from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from services.uploads.domain.session import UploadSession, UploadSessionState
    from services.uploads.domain.upload import (
        BackendPart,
        CompletedUpload,
        MultipartUploadSummary,
    )


class IdProvider(Protocol):
    def generate(self) -> str: ...


class MultipartStorageBackend(Protocol):
    def initiate_upload(self, object_key: str, content_type: str) -> str: ...

    def generate_part_url(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_number: int,
        expires_in_seconds: int,
    ) -> str: ...

    def list_parts(
        self, *, object_key: str, upload_id: str
    ) -> list["BackendPart"]: ...

    def complete_upload(
        self, *, object_key: str, upload_id: str, parts: list[tuple[int, str]]
    ) -> "CompletedUpload": ...

    def abort_upload(self, *, object_key: str, upload_id: str) -> bool: ...

    def list_uploads(self) -> list["MultipartUploadSummary"]: ...


class SessionRepository(Protocol):
    def create(self, session: "UploadSession") -> "UploadSession": ...

    def get(self, session_id: str) -> Optional["UploadSession"]: ...

    def object_key_in_use(self, object_key: str) -> bool: ...

    def transition(
        self,
        session_id: str,
        target: "UploadSessionState",
        *,
        location: str | None = None,
    ) -> "UploadSession": ...


class SessionEventPublisher(Protocol):
    def publish_completed(
        self, session: "UploadSession", completed: "CompletedUpload"
    ) -> None: ...

    def publish_aborted(self, session: "UploadSession") -> None: ...
