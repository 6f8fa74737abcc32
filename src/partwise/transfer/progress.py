from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class ProgressSnapshot:
    confirmed_bytes: int
    total_bytes: int
    parts_done: int
    parts_total: int

    @property
    def percent(self) -> int:
        if self.total_bytes <= 0:
            return 100
        return int(self.confirmed_bytes * 100 // self.total_bytes)


ProgressCallback = Callable[[ProgressSnapshot], None]


class ByteProgress:
    """Progress weighted by bytes confirmed at the storage backend.

    Updated when a part transfer finishes, never when it is merely
    authorized. A retried part is only counted once.
    """

    def __init__(
        self,
        total_bytes: int,
        parts_total: int,
        callback: Optional[ProgressCallback] = None,
    ) -> None:
        self._total_bytes = total_bytes
        self._parts_total = parts_total
        self._callback = callback
        self._confirmed: dict[int, int] = {}

    def part_confirmed(self, part_number: int, length: int) -> ProgressSnapshot:
        if part_number not in self._confirmed:
            self._confirmed[part_number] = length
        snapshot = self.snapshot()
        if self._callback is not None:
            self._callback(snapshot)
        return snapshot

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            confirmed_bytes=sum(self._confirmed.values()),
            total_bytes=self._total_bytes,
            parts_done=len(self._confirmed),
            parts_total=self._parts_total,
        )
