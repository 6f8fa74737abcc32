import math
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_PART_SIZE = 15 * 1024 * 1024
# S3 rejects non-final parts smaller than 5 MiB.
MIN_PART_SIZE = 5 * 1024 * 1024
MAX_PARTS = 10_000
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class EmptySourceError(ValueError):
    """Raised when there is nothing to upload."""


@dataclass(frozen=True)
class PartSpec:
    part_number: int
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def plan_parts(total_size: int, part_size: int = DEFAULT_PART_SIZE) -> list[PartSpec]:
    """
    Split ``total_size`` bytes into contiguous parts numbered from 1.

    Every part except the last is exactly ``part_size`` bytes long; the last
    one holds the remainder (or a full part when the size divides evenly).
    """
    if part_size <= 0:
        raise ValueError("part_size must be positive")
    if total_size <= 0:
        raise EmptySourceError("Cannot upload an empty source")

    count = math.ceil(total_size / part_size)
    if count > MAX_PARTS:
        raise ValueError(
            f"{total_size} bytes need {count} parts of {part_size} bytes; "
            f"at most {MAX_PARTS} parts are allowed"
        )
    return [
        PartSpec(
            part_number=index + 1,
            start=index * part_size,
            end=min((index + 1) * part_size, total_size),
        )
        for index in range(count)
    ]


class FileSource:
    """A file on disk read one part at a time."""

    def __init__(self, path, content_type: str | None = None) -> None:
        self.path = Path(path)
        self.size = os.stat(self.path).st_size
        self.filename = self.path.name
        self.content_type = content_type or guess_content_type(self.filename)

    def read(self, part: PartSpec) -> bytes:
        with self.path.open("rb") as handle:
            handle.seek(part.start)
            data = handle.read(part.length)
        if len(data) != part.length:
            raise OSError(
                f"Expected {part.length} bytes for part {part.part_number} of "
                f"{self.path}, read {len(data)}; was the file modified?"
            )
        return data


def guess_content_type(filename: str) -> str:
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or DEFAULT_CONTENT_TYPE
