import httpx
import pytest

from partwise.splitting.parts import MIN_PART_SIZE, EmptySourceError
from partwise.transfer.errors import (
    BackendUnavailable,
    IncompleteParts,
    TransferFailure,
)
from partwise.transfer.orchestrator import MultipartUploader
from partwise.transfer.retry import RetryPolicy


def _storage(fail=False):
    def handler(request):
        if fail:
            return httpx.Response(500)
        part = request.url.params["partNumber"]
        return httpx.Response(200, headers={"ETag": f'"etag-{part}"'})

    return httpx.MockTransport(handler)


def _uploader(coordinator, http, instant_sleep, **kwargs):
    return MultipartUploader(
        coordinator,
        http,
        retry_policy=RetryPolicy(max_attempts=2, base_delay=0),
        sleep=instant_sleep,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_upload_uses_server_part_size(coordinator, instant_sleep, tmp_path):
    coordinator.part_size_bytes = 3
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"x" * 7)

    async with httpx.AsyncClient(transport=_storage()) as http:
        result = await _uploader(coordinator, http, instant_sleep).upload_file(path)

    assert result.part_count == 3
    assert result.size == 7
    assert result.object_key == "key-clip.mp4"
    assert coordinator.completed == [
        [(1, '"etag-1"'), (2, '"etag-2"'), (3, '"etag-3"')]
    ]
    assert coordinator.aborted == []


@pytest.mark.asyncio
async def test_part_size_override_wins(coordinator, instant_sleep, tmp_path):
    coordinator.part_size_bytes = 3
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"x" * 8)

    async with httpx.AsyncClient(transport=_storage()) as http:
        result = await _uploader(
            coordinator, http, instant_sleep, part_size=4, min_part_size=1
        ).upload_file(path)

    assert result.part_count == 2


@pytest.mark.asyncio
async def test_failed_transfer_aborts_session(coordinator, instant_sleep, tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"x" * 10)

    async with httpx.AsyncClient(transport=_storage(fail=True)) as http:
        with pytest.raises(TransferFailure):
            await _uploader(coordinator, http, instant_sleep).upload_file(path)

    assert coordinator.aborted == ["session-1"]
    assert coordinator.completed == []


@pytest.mark.asyncio
async def test_unavailable_completion_leaves_session_open(
    coordinator, instant_sleep, tmp_path
):
    coordinator.complete_errors = [BackendUnavailable("down")] * 2
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"x" * 10)

    async with httpx.AsyncClient(transport=_storage()) as http:
        with pytest.raises(BackendUnavailable):
            await _uploader(coordinator, http, instant_sleep).upload_file(path)

    assert coordinator.aborted == []


@pytest.mark.asyncio
async def test_rejected_completion_aborts_session(coordinator, instant_sleep, tmp_path):
    coordinator.complete_errors = [IncompleteParts("stale", missing_parts=[2])]
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"x" * 10)

    async with httpx.AsyncClient(transport=_storage()) as http:
        with pytest.raises(IncompleteParts):
            await _uploader(coordinator, http, instant_sleep).upload_file(path)

    assert coordinator.aborted == ["session-1"]


@pytest.mark.asyncio
async def test_abort_can_be_disabled(coordinator, instant_sleep, tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"x" * 10)

    async with httpx.AsyncClient(transport=_storage(fail=True)) as http:
        with pytest.raises(TransferFailure):
            await _uploader(
                coordinator, http, instant_sleep, abort_on_failure=False
            ).upload_file(path)

    assert coordinator.aborted == []


@pytest.mark.asyncio
async def test_empty_file_never_opens_a_session(coordinator, instant_sleep, tmp_path):
    path = tmp_path / "empty.txt"
    path.write_bytes(b"")

    async with httpx.AsyncClient(transport=_storage()) as http:
        with pytest.raises(EmptySourceError):
            await _uploader(coordinator, http, instant_sleep).upload_file(path)

    assert coordinator.authorizations == []
    assert coordinator.aborted == []


@pytest.mark.parametrize("part_size", [1024, MIN_PART_SIZE - 1])
def test_part_size_override_below_minimum_is_rejected(coordinator, part_size):
    with pytest.raises(ValueError, match="part_size"):
        MultipartUploader(coordinator, httpx.AsyncClient(), part_size=part_size)

    assert coordinator.authorizations == []


def test_minimum_part_size_override_is_accepted(coordinator):
    MultipartUploader(coordinator, httpx.AsyncClient(), part_size=MIN_PART_SIZE)
