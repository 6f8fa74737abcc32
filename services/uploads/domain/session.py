from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class UploadSessionState(str, Enum):
    CREATED = "created"
    PARTS_IN_FLIGHT = "parts_in_flight"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadSessionState.COMPLETED, UploadSessionState.ABORTED)

    def can_transition_to(self, target: "UploadSessionState") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS = {
    UploadSessionState.CREATED: {
        UploadSessionState.PARTS_IN_FLIGHT,
        UploadSessionState.COMPLETED,
        UploadSessionState.ABORTED,
    },
    UploadSessionState.PARTS_IN_FLIGHT: {
        UploadSessionState.PARTS_IN_FLIGHT,
        UploadSessionState.COMPLETED,
        UploadSessionState.ABORTED,
    },
    UploadSessionState.COMPLETED: set(),
    UploadSessionState.ABORTED: set(),
}


@dataclass(frozen=True)
class UploadSession:
    session_id: str
    object_key: str
    content_type: str
    filename: str
    state: UploadSessionState
    created_at: datetime
    updated_at: datetime
    location: Optional[str] = None

    @classmethod
    def start(
        cls,
        *,
        session_id: str,
        object_key: str,
        content_type: str,
        filename: str,
    ) -> "UploadSession":
        now = datetime.now(timezone.utc)
        return cls(
            session_id=session_id,
            object_key=object_key,
            content_type=content_type,
            filename=filename,
            state=UploadSessionState.CREATED,
            created_at=now,
            updated_at=now,
        )

    def moved_to(
        self, state: UploadSessionState, *, location: Optional[str] = None
    ) -> "UploadSession":
        return replace(
            self,
            state=state,
            updated_at=datetime.now(timezone.utc),
            location=location if location is not None else self.location,
        )
