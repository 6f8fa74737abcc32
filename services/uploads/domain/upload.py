from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional

from services.uploads.domain.session import UploadSessionState


@dataclass(frozen=True)
class PartAuthorization:
    part_number: int
    url: str
    expires_at: datetime
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CompletionPart:
    part_number: int
    etag: str


@dataclass(frozen=True)
class BackendPart:
    part_number: int
    etag: str
    size: int


@dataclass(frozen=True)
class CompletedUpload:
    session_id: str
    object_key: str
    location: Optional[str]
    etag: Optional[str]


@dataclass(frozen=True)
class AbortedUpload:
    session_id: str
    object_key: str
    state: UploadSessionState
    released: bool


@dataclass(frozen=True)
class MultipartUploadSummary:
    session_id: str
    object_key: str
    initiated_at: Optional[datetime]
    state: Optional[UploadSessionState] = None


def normalize_etag(etag: str) -> str:
    """S3 quotes ETags in headers and listings; compare them unquoted."""
    return etag.strip().strip('"')
