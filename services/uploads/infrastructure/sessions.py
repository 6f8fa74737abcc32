from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from services.uploads.application.interfaces import SessionRepository
from services.uploads.domain.errors import (
    BackendUnavailable,
    InvalidSessionState,
    SessionNotFound,
)
from services.uploads.domain.session import UploadSession, UploadSessionState
from services.uploads.infrastructure.db import Base

LOGGER = logging.getLogger(__name__)

_LIVE_STATES = (UploadSessionState.CREATED, UploadSessionState.PARTS_IN_FLIGHT)


@contextmanager
def _store_errors(action: str):
    try:
        yield
    except SQLAlchemyError as exc:
        LOGGER.error("Session store failed to %s: %s", action, exc)
        raise BackendUnavailable(f"Session store could not {action}") from exc


def _sources_for(target: UploadSessionState) -> list[UploadSessionState]:
    return [state for state in UploadSessionState if state.can_transition_to(target)]


def _rejected_transition(
    session: UploadSession, target: UploadSessionState
) -> InvalidSessionState:
    return InvalidSessionState(
        f"Upload session {session.session_id} cannot move from "
        f"{session.state.value} to {target.value}"
    )


class InMemorySessionRepository(SessionRepository):
    """Process-local store; sessions are lost on restart."""

    def __init__(self) -> None:
        self._sessions: dict[str, UploadSession] = {}
        self._lock = threading.Lock()

    def create(self, session: UploadSession) -> UploadSession:
        with self._lock:
            if session.session_id in self._sessions:
                raise InvalidSessionState(
                    f"Upload session {session.session_id} already exists"
                )
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> UploadSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def object_key_in_use(self, object_key: str) -> bool:
        with self._lock:
            return any(
                session.object_key == object_key
                for session in self._sessions.values()
                if session.state in _LIVE_STATES
            )

    def transition(
        self,
        session_id: str,
        target: UploadSessionState,
        *,
        location: str | None = None,
    ) -> UploadSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(f"Upload session {session_id} not found")
            if not session.state.can_transition_to(target):
                raise _rejected_transition(session, target)
            moved = session.moved_to(target, location=location)
            self._sessions[session_id] = moved
            return moved


class UploadSessionRecord(Base):
    __tablename__ = "upload_sessions"

    session_id = Column(String, primary_key=True)
    object_key = Column(String, nullable=False, index=True)
    content_type = Column(String, nullable=False)
    filename = Column(String, nullable=False)
    state = Column(String, nullable=False)
    location = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


def _to_domain(record: UploadSessionRecord) -> UploadSession:
    return UploadSession(
        session_id=record.session_id,
        object_key=record.object_key,
        content_type=record.content_type,
        filename=record.filename,
        state=UploadSessionState(record.state),
        created_at=record.created_at,
        updated_at=record.updated_at,
        location=record.location,
    )


class SqlSessionRepository(SessionRepository):
    """Session store shared by every coordinator instance using the same DSN."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def create(self, session: UploadSession) -> UploadSession:
        record = UploadSessionRecord(
            session_id=session.session_id,
            object_key=session.object_key,
            content_type=session.content_type,
            filename=session.filename,
            state=session.state.value,
            location=session.location,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )
        with _store_errors("create a session"), self._session_factory() as db:
            db.add(record)
            try:
                db.commit()
            except IntegrityError as exc:
                raise InvalidSessionState(
                    f"Upload session {session.session_id} already exists"
                ) from exc
        return session

    def get(self, session_id: str) -> UploadSession | None:
        with _store_errors("load a session"), self._session_factory() as db:
            record = db.get(UploadSessionRecord, session_id)
            if record is None:
                return None
            return _to_domain(record)

    def object_key_in_use(self, object_key: str) -> bool:
        with _store_errors("look up object keys"), self._session_factory() as db:
            found = db.execute(
                select(UploadSessionRecord.session_id)
                .where(
                    UploadSessionRecord.object_key == object_key,
                    UploadSessionRecord.state.in_([s.value for s in _LIVE_STATES]),
                )
                .limit(1)
            ).first()
            return found is not None

    def transition(
        self,
        session_id: str,
        target: UploadSessionState,
        *,
        location: str | None = None,
    ) -> UploadSession:
        values = {
            "state": target.value,
            "updated_at": datetime.now(timezone.utc),
        }
        if location is not None:
            values["location"] = location
        sources = [state.value for state in _sources_for(target)]
        with _store_errors("update a session"), self._session_factory() as db:
            # Compare-and-set so concurrent coordinators cannot both win.
            result = db.execute(
                update(UploadSessionRecord)
                .where(
                    UploadSessionRecord.session_id == session_id,
                    UploadSessionRecord.state.in_(sources),
                )
                .values(**values)
            )
            db.commit()
            record = db.get(UploadSessionRecord, session_id, populate_existing=True)
            if record is None:
                raise SessionNotFound(f"Upload session {session_id} not found")
            session = _to_domain(record)
            if result.rowcount == 0:
                raise _rejected_transition(session, target)
            return session
