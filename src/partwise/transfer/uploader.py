from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

import httpx

from partwise.splitting.parts import FileSource, PartSpec

from .assembler import CompletionAssembler
from .coordinator import CoordinatorClient, UploadSessionHandle
from .errors import TRANSIENT_ERRORS, TransferFailure
from .progress import ByteProgress
from .retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4


class _AttemptFailed(Exception):
    pass


class PartUploader:
    """Transfers parts straight to storage using per-part authorizations.

    At most ``concurrency`` parts are read and in flight at once. Every
    attempt asks the coordinator for a fresh authorization, because a
    presigned URL may have expired or already been used.
    """

    def __init__(
        self,
        coordinator: CoordinatorClient,
        storage_http: httpx.AsyncClient,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        retry_policy: Optional[RetryPolicy] = None,
        sleep=asyncio.sleep,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._coordinator = coordinator
        self._storage_http = storage_http
        self._concurrency = concurrency
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def upload_parts(
        self,
        session: UploadSessionHandle,
        source: FileSource,
        parts: Sequence[PartSpec],
        assembler: CompletionAssembler,
        progress: Optional[ByteProgress] = None,
    ) -> None:
        semaphore = asyncio.Semaphore(self._concurrency)
        tasks = [
            asyncio.create_task(
                self._upload_part(semaphore, session, source, part, assembler, progress)
            )
            for part in parts
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _upload_part(
        self,
        semaphore: asyncio.Semaphore,
        session: UploadSessionHandle,
        source: FileSource,
        part: PartSpec,
        assembler: CompletionAssembler,
        progress: Optional[ByteProgress],
    ) -> None:
        async with semaphore:
            try:
                etag = await retry_async(
                    lambda: self._transfer(session, source, part),
                    self._retry_policy,
                    (_AttemptFailed, *TRANSIENT_ERRORS),
                    description=f"Part {part.part_number} of {session.session_id}",
                    sleep=self._sleep,
                )
            except (_AttemptFailed, *TRANSIENT_ERRORS) as exc:
                raise TransferFailure(
                    f"Part {part.part_number} failed after "
                    f"{self._retry_policy.max_attempts} attempts: {exc}",
                    part_number=part.part_number,
                    attempts=self._retry_policy.max_attempts,
                ) from exc

        assembler.record(part.part_number, etag)
        if progress is not None:
            progress.part_confirmed(part.part_number, part.length)

    async def _transfer(
        self, session: UploadSessionHandle, source: FileSource, part: PartSpec
    ) -> str:
        authorization = await self._coordinator.authorize_part(
            session, part.part_number
        )
        if authorization.part_number != part.part_number:
            raise _AttemptFailed(
                f"asked to authorize part {part.part_number}, "
                f"got part {authorization.part_number}"
            )
        data = await asyncio.to_thread(source.read, part)
        headers = dict(authorization.headers)
        headers.setdefault("Content-Type", session.content_type)
        try:
            response = await self._storage_http.request(
                authorization.method, authorization.url, content=data, headers=headers
            )
        except httpx.TransportError as exc:
            raise _AttemptFailed(f"transfer error: {exc}") from exc

        if not response.is_success:
            raise _AttemptFailed(f"storage responded with {response.status_code}")
        etag = response.headers.get("ETag")
        if not etag:
            raise _AttemptFailed("storage response carried no ETag")
        logger.debug(f"Part {part.part_number} stored ({part.length} bytes)")
        return etag
