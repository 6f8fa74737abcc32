from datetime import timedelta

import pytest

from services.uploads.domain.upload import (
    BackendPart,
    CompletedUpload,
    MultipartUploadSummary,
)
from services.uploads.infrastructure.sessions import InMemorySessionRepository


class FakeMultipartBackend:
    """In-memory stand-in for S3 multipart uploads."""

    def __init__(self) -> None:
        self.uploads: dict[str, dict] = {}
        self.objects: dict[str, bytes] = {}
        self.calls: list[tuple[str, str]] = []
        self._counter = 0

    def initiate_upload(self, object_key: str, content_type: str) -> str:
        self._counter += 1
        upload_id = f"upload-{self._counter}"
        self.uploads[upload_id] = {
            "object_key": object_key,
            "content_type": content_type,
            "parts": {},
            "initiated_at": None,
        }
        self.calls.append(("initiate", upload_id))
        return upload_id

    def generate_part_url(
        self, *, object_key, upload_id, part_number, expires_in_seconds
    ) -> str:
        self.calls.append(("presign", upload_id))
        return (
            f"https://storage.test/{object_key}"
            f"?uploadId={upload_id}&partNumber={part_number}"
            f"&expires={expires_in_seconds}"
        )

    def store_part(self, upload_id: str, part_number: int, data: bytes) -> str:
        etag = f'"etag-{part_number}-{len(data)}"'
        self.uploads[upload_id]["parts"][part_number] = (etag, data)
        return etag

    def list_parts(self, *, object_key, upload_id) -> list[BackendPart]:
        parts = self.uploads[upload_id]["parts"]
        return [
            BackendPart(part_number=number, etag=etag, size=len(data))
            for number, (etag, data) in sorted(parts.items())
        ]

    def complete_upload(self, *, object_key, upload_id, parts) -> CompletedUpload:
        stored = self.uploads.pop(upload_id)
        self.objects[object_key] = b"".join(
            stored["parts"][number][1] for number, _ in parts
        )
        self.calls.append(("complete", upload_id))
        return CompletedUpload(
            session_id=upload_id,
            object_key=object_key,
            location=f"https://storage.test/{object_key}",
            etag=f'"final-{len(parts)}"',
        )

    def abort_upload(self, *, object_key, upload_id) -> bool:
        self.calls.append(("abort", upload_id))
        return self.uploads.pop(upload_id, None) is not None

    def list_uploads(self) -> list[MultipartUploadSummary]:
        return [
            MultipartUploadSummary(
                session_id=upload_id,
                object_key=upload["object_key"],
                initiated_at=upload["initiated_at"],
            )
            for upload_id, upload in self.uploads.items()
        ]


class RecordingEventPublisher:
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def publish_completed(self, session, completed) -> None:
        self.events.append(("completed", session.session_id))

    def publish_aborted(self, session) -> None:
        self.events.append(("aborted", session.session_id))


class SequentialIdProvider:
    def __init__(self, ids: list[str]) -> None:
        self._ids = list(ids)

    def generate(self) -> str:
        return self._ids.pop(0)


@pytest.fixture
def backend():
    return FakeMultipartBackend()


@pytest.fixture
def repository():
    return InMemorySessionRepository()


@pytest.fixture
def publisher():
    return RecordingEventPublisher()


@pytest.fixture
def sequential_ids():
    return SequentialIdProvider


@pytest.fixture
def ttl():
    return timedelta(hours=1)
