import pytest

from partwise.transfer.coordinator import (
    AbortResult,
    CompletedObject,
    PartAuthorization,
    UploadSessionHandle,
)


class FakeCoordinator:
    """Coordinator stand-in that hands out numbered storage URLs."""

    def __init__(self, part_size_bytes=None):
        self.part_size_bytes = part_size_bytes
        self.authorizations = []
        self.completed = []
        self.aborted = []
        self.complete_errors = []

    async def create_session(self, filename, content_type):
        return UploadSessionHandle(
            session_id="session-1",
            object_key=f"key-{filename}",
            content_type=content_type,
            part_size_bytes=self.part_size_bytes,
        )

    async def authorize_part(self, session, part_number):
        self.authorizations.append(part_number)
        return PartAuthorization(
            part_number=part_number,
            url=f"https://storage.test/{session.object_key}?partNumber={part_number}"
            f"&attempt={self.authorizations.count(part_number)}",
            headers={"Content-Type": session.content_type},
        )

    async def complete_session(self, session, parts):
        if self.complete_errors:
            raise self.complete_errors.pop(0)
        self.completed.append(list(parts))
        return CompletedObject(
            session_id=session.session_id,
            object_key=session.object_key,
            location=f"https://storage.test/{session.object_key}",
            etag='"final"',
        )

    async def abort_session(self, session):
        self.aborted.append(session.session_id)
        return AbortResult(
            session_id=session.session_id,
            object_key=session.object_key,
            state="aborted",
            released=True,
        )


async def no_sleep(_delay):
    return None


@pytest.fixture
def coordinator():
    return FakeCoordinator()


@pytest.fixture
def session():
    return UploadSessionHandle(
        session_id="session-1",
        object_key="key.bin",
        content_type="application/octet-stream",
    )


@pytest.fixture
def instant_sleep():
    return no_sleep
