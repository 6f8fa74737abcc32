import pytest
from sqlalchemy import text

from services.uploads.domain.errors import (
    BackendUnavailable,
    InvalidSessionState,
    SessionNotFound,
)
from services.uploads.domain.session import UploadSession, UploadSessionState
from services.uploads.infrastructure.db import create_session_factory, normalize_dsn
from services.uploads.infrastructure.sessions import (
    InMemorySessionRepository,
    SqlSessionRepository,
)


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemorySessionRepository()
    factory = create_session_factory(f"sqlite:///{tmp_path / 'sessions.db'}")
    return SqlSessionRepository(factory)


def _session(session_id="upload-1", object_key="a.bin"):
    return UploadSession.start(
        session_id=session_id,
        object_key=object_key,
        content_type="application/octet-stream",
        filename="a.bin",
    )


def test_create_and_get(store):
    store.create(_session())

    stored = store.get("upload-1")

    assert stored.object_key == "a.bin"
    assert stored.state is UploadSessionState.CREATED
    assert store.get("missing") is None


def test_duplicate_session_id_is_rejected(store):
    store.create(_session())

    with pytest.raises(InvalidSessionState):
        store.create(_session(object_key="b.bin"))


def test_transitions_follow_the_state_machine(store):
    store.create(_session())

    in_flight = store.transition("upload-1", UploadSessionState.PARTS_IN_FLIGHT)
    completed = store.transition(
        "upload-1", UploadSessionState.COMPLETED, location="https://x/a.bin"
    )

    assert in_flight.state is UploadSessionState.PARTS_IN_FLIGHT
    assert completed.state is UploadSessionState.COMPLETED
    assert store.get("upload-1").location == "https://x/a.bin"


@pytest.mark.parametrize(
    "terminal, target",
    [
        (UploadSessionState.COMPLETED, UploadSessionState.ABORTED),
        (UploadSessionState.ABORTED, UploadSessionState.COMPLETED),
        (UploadSessionState.ABORTED, UploadSessionState.PARTS_IN_FLIGHT),
        (UploadSessionState.COMPLETED, UploadSessionState.COMPLETED),
    ],
)
def test_terminal_states_are_final(store, terminal, target):
    store.create(_session())
    store.transition("upload-1", terminal)

    with pytest.raises(InvalidSessionState):
        store.transition("upload-1", target)

    assert store.get("upload-1").state is terminal


def test_transition_of_unknown_session(store):
    with pytest.raises(SessionNotFound):
        store.transition("missing", UploadSessionState.ABORTED)


def test_object_key_in_use_only_counts_live_sessions(store):
    store.create(_session("one", "shared.bin"))
    assert store.object_key_in_use("shared.bin")

    store.transition("one", UploadSessionState.ABORTED)

    assert not store.object_key_in_use("shared.bin")
    assert not store.object_key_in_use("other.bin")


def test_sql_store_is_shared_between_instances(tmp_path):
    dsn = f"sqlite:///{tmp_path / 'shared.db'}"
    first = SqlSessionRepository(create_session_factory(dsn))
    second = SqlSessionRepository(create_session_factory(dsn))

    first.create(_session())
    second.transition("upload-1", UploadSessionState.ABORTED)

    assert first.get("upload-1").state is UploadSessionState.ABORTED


def test_postgres_dsn_uses_psycopg_driver():
    assert normalize_dsn("postgresql://u:p@h/db") == "postgresql+psycopg://u:p@h/db"
    assert normalize_dsn("sqlite:///x.db") == "sqlite:///x.db"


def test_sql_store_failures_are_backend_unavailable(tmp_path):
    factory = create_session_factory(f"sqlite:///{tmp_path / 'broken.db'}")
    with factory() as db:
        db.execute(text("DROP TABLE upload_sessions"))
        db.commit()
    store = SqlSessionRepository(factory)

    with pytest.raises(BackendUnavailable):
        store.create(_session())
    with pytest.raises(BackendUnavailable):
        store.get("upload-1")
    with pytest.raises(BackendUnavailable):
        store.transition("upload-1", UploadSessionState.ABORTED)
