from dataclasses import dataclass
from datetime import timedelta
from typing import List

from services.uploads.domain.upload import CompletionPart


@dataclass(frozen=True)
class CreateUploadSessionCommand:
    filename: str
    content_type: str


@dataclass(frozen=True)
class AuthorizePartCommand:
    session_id: str
    object_key: str
    part_number: int


@dataclass(frozen=True)
class CompleteUploadSessionCommand:
    session_id: str
    object_key: str
    parts: List[CompletionPart]


@dataclass(frozen=True)
class AbortUploadSessionCommand:
    session_id: str
    object_key: str


@dataclass(frozen=True)
class AbortStaleSessionsCommand:
    older_than: timedelta
