from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from partwise.splitting.parts import (
    DEFAULT_PART_SIZE,
    MIN_PART_SIZE,
    FileSource,
    plan_parts,
)

from .assembler import CompletionAssembler
from .coordinator import CompletedObject, CoordinatorClient, UploadSessionHandle
from .errors import TRANSIENT_ERRORS, UploadError
from .progress import ByteProgress, ProgressCallback
from .retry import RetryPolicy
from .uploader import DEFAULT_CONCURRENCY, PartUploader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadResult:
    session_id: str
    object_key: str
    location: Optional[str]
    etag: Optional[str]
    size: int
    part_count: int


class MultipartUploader:
    """Runs one file through create, part transfers and completion.

    When part transfers fail for good, or the coordinator rejects the
    completion, the session is aborted so the backend releases the stored
    parts, and the original error is raised. A completion that only ran out
    of retries against an unavailable coordinator or backend leaves the
    session open; the caller decides whether to complete it later or abort.
    """

    def __init__(
        self,
        coordinator: CoordinatorClient,
        storage_http: httpx.AsyncClient,
        *,
        part_size: Optional[int] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        retry_policy: Optional[RetryPolicy] = None,
        abort_on_failure: bool = True,
        min_part_size: int = MIN_PART_SIZE,
        sleep=asyncio.sleep,
    ) -> None:
        if part_size is not None and part_size < min_part_size:
            raise ValueError(f"part_size must be at least {min_part_size} bytes")
        self._coordinator = coordinator
        self._part_size = part_size
        self._retry_policy = retry_policy or RetryPolicy()
        self._abort_on_failure = abort_on_failure
        self._sleep = sleep
        self._part_uploader = PartUploader(
            coordinator,
            storage_http,
            concurrency=concurrency,
            retry_policy=self._retry_policy,
            sleep=sleep,
        )

    async def upload_file(
        self,
        path,
        content_type: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        source = FileSource(path, content_type)
        # Reject empty files before a session is opened.
        plan_parts(source.size, self._part_size or DEFAULT_PART_SIZE)

        session = await self._coordinator.create_session(
            source.filename, source.content_type
        )
        logger.info(f"Opened upload session {session.session_id} for {source.path}")

        part_size = self._part_size or session.part_size_bytes or DEFAULT_PART_SIZE
        try:
            parts = plan_parts(source.size, part_size)
            assembler = CompletionAssembler(len(parts))
            progress = ByteProgress(source.size, len(parts), progress_callback)
            await self._part_uploader.upload_parts(
                session, source, parts, assembler, progress
            )
        except Exception as exc:
            await self._abort_after_failure(session, exc)
            raise

        try:
            completed = await assembler.submit(
                self._coordinator, session, self._retry_policy, sleep=self._sleep
            )
        except TRANSIENT_ERRORS as exc:
            logger.warning(
                f"Completion of upload session {session.session_id} "
                f"({session.object_key}) did not go through, session left open: {exc}"
            )
            raise
        except Exception as exc:
            await self._abort_after_failure(session, exc)
            raise

        return _result(completed, source.size, len(parts))

    async def _abort_after_failure(
        self, session: UploadSessionHandle, error: Exception
    ) -> None:
        if not self._abort_on_failure:
            return
        logger.warning(f"Aborting upload session {session.session_id}: {error!r}")
        try:
            await self._coordinator.abort_session(session)
        except UploadError as abort_error:
            logger.error(
                f"Abort of upload session {session.session_id} failed: {abort_error}"
            )


def _result(completed: CompletedObject, size: int, part_count: int) -> UploadResult:
    return UploadResult(
        session_id=completed.session_id,
        object_key=completed.object_key,
        location=completed.location,
        etag=completed.etag,
        size=size,
        part_count=part_count,
    )
