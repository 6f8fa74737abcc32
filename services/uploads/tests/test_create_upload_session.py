import re

import pytest

from services.uploads.application.create_upload_session import (
    CreateUploadSessionUseCase,
    build_object_key,
    file_extension,
)
from services.uploads.application.dto import CreateUploadSessionCommand
from services.uploads.domain.errors import BackendUnavailable, InvalidUploadRequest
from services.uploads.domain.session import UploadSession, UploadSessionState
from services.uploads.infrastructure.ids import UuidIdProvider

UUID_PATTERN = r"[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}"


def _use_case(backend, repository, id_provider=None, prefix=""):
    return CreateUploadSessionUseCase(
        id_provider=id_provider or UuidIdProvider(),
        backend=backend,
        repository=repository,
        object_key_prefix=prefix,
    )


def test_object_key_is_uuid_with_original_extension(backend, repository):
    session = _use_case(backend, repository).execute(
        CreateUploadSessionCommand(filename="report.pdf", content_type="application/pdf")
    )

    assert re.fullmatch(UUID_PATTERN + r"\.pdf", session.object_key)
    assert session.state is UploadSessionState.CREATED
    assert session.session_id == "upload-1"
    assert backend.uploads["upload-1"]["content_type"] == "application/pdf"
    assert repository.get("upload-1") == session


def test_filename_without_extension_gets_no_suffix(backend, repository):
    session = _use_case(backend, repository).execute(
        CreateUploadSessionCommand(filename="README", content_type="text/plain")
    )

    assert re.fullmatch(UUID_PATTERN, session.object_key)
    assert "undefined" not in session.object_key


def test_object_key_ignores_client_path(backend, repository, sequential_ids):
    use_case = _use_case(backend, repository, sequential_ids(["abc"]), prefix="/uploads/")

    session = use_case.execute(
        CreateUploadSessionCommand(
            filename="../../etc/passwd.TXT", content_type="text/plain"
        )
    )

    assert session.object_key == "uploads/abc.txt"


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("report.pdf", "pdf"),
        ("archive.tar.gz", "gz"),
        ("photo.JPEG", "jpeg"),
        ("README", None),
        (".bashrc", None),
        ("trailing.", None),
        ("weird.p$d", None),
        ("C:\\docs\\scan.tiff", "tiff"),
    ],
)
def test_file_extension(filename, expected):
    assert file_extension(filename) == expected


def test_build_object_key_without_prefix():
    assert build_object_key("id-1", "movie.mp4") == "id-1.mp4"
    assert build_object_key("id-1", "movie") == "id-1"


def test_live_object_key_collision_is_regenerated(backend, repository, sequential_ids):
    repository.create(
        UploadSession.start(
            session_id="existing",
            object_key="dup.bin",
            content_type="application/octet-stream",
            filename="a.bin",
        )
    )
    use_case = _use_case(backend, repository, sequential_ids(["dup", "fresh"]))

    session = use_case.execute(
        CreateUploadSessionCommand(filename="b.bin", content_type="application/octet-stream")
    )

    assert session.object_key == "fresh.bin"


def test_gives_up_when_no_unique_key_can_be_found(backend, repository, sequential_ids):
    repository.create(
        UploadSession.start(
            session_id="existing",
            object_key="dup.bin",
            content_type="application/octet-stream",
            filename="a.bin",
        )
    )
    use_case = _use_case(backend, repository, sequential_ids(["dup"] * 5))

    with pytest.raises(BackendUnavailable):
        use_case.execute(
            CreateUploadSessionCommand(filename="b.bin", content_type="text/plain")
        )
    assert backend.calls == []


def test_blank_content_type_is_rejected(backend, repository):
    with pytest.raises(InvalidUploadRequest):
        _use_case(backend, repository).execute(
            CreateUploadSessionCommand(filename="a.bin", content_type="  ")
        )


def test_backend_failure_surfaces_and_nothing_is_stored(repository):
    class BrokenBackend:
        def initiate_upload(self, object_key, content_type):
            raise BackendUnavailable("storage down")

    with pytest.raises(BackendUnavailable):
        _use_case(BrokenBackend(), repository).execute(
            CreateUploadSessionCommand(filename="a.bin", content_type="text/plain")
        )
    assert repository._sessions == {}


def test_unstored_session_releases_backend_upload(backend, repository, monkeypatch):
    def store_down(session):
        raise BackendUnavailable("session store unreachable")

    monkeypatch.setattr(repository, "create", store_down)

    with pytest.raises(BackendUnavailable):
        _use_case(backend, repository).execute(
            CreateUploadSessionCommand(filename="a.bin", content_type="text/plain")
        )

    assert backend.calls == [("initiate", "upload-1"), ("abort", "upload-1")]
    assert backend.uploads == {}
