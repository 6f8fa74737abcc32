from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from .coordinator import CompletedObject, CoordinatorClient, UploadSessionHandle
from .errors import TRANSIENT_ERRORS, IncompleteParts
from .retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)


class CompletionAssembler:
    """Collects integrity tokens by part number and finalizes the session.

    Tokens are keyed by the part number they were uploaded under, never by
    the order in which transfers finished.
    """

    def __init__(self, part_count: int) -> None:
        if part_count < 1:
            raise ValueError("part_count must be at least 1")
        self._part_count = part_count
        self._tokens: Dict[int, str] = {}

    def record(self, part_number: int, token: str) -> None:
        if not 1 <= part_number <= self._part_count:
            raise ValueError(
                f"part_number {part_number} is outside 1..{self._part_count}"
            )
        if not token:
            raise ValueError("token must not be empty")
        self._tokens[part_number] = token

    def missing(self) -> List[int]:
        return [n for n in range(1, self._part_count + 1) if n not in self._tokens]

    @property
    def is_complete(self) -> bool:
        return not self.missing()

    def ordered_parts(self) -> List[Tuple[int, str]]:
        missing = self.missing()
        if missing:
            raise IncompleteParts(
                f"{len(missing)} of {self._part_count} parts have no token",
                missing_parts=missing,
            )
        return [(n, self._tokens[n]) for n in range(1, self._part_count + 1)]

    async def submit(
        self,
        coordinator: CoordinatorClient,
        session: UploadSessionHandle,
        retry_policy: Optional[RetryPolicy] = None,
        sleep=None,
    ) -> CompletedObject:
        parts = self.ordered_parts()
        kwargs = {} if sleep is None else {"sleep": sleep}
        completed = await retry_async(
            lambda: coordinator.complete_session(session, parts),
            retry_policy or RetryPolicy(),
            TRANSIENT_ERRORS,
            description=f"Completion of {session.session_id}",
            **kwargs,
        )
        logger.info(f"Upload {session.session_id} completed as {completed.object_key}")
        return completed
