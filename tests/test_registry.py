import asyncio

import pytest

from wahub.engine.base import AUTH_FAILURE, AUTHENTICATED, READY
from wahub.session.errors import (
    AuthFailureError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
)
from wahub.session.session import SessionStatus
from tests.fakes import DEFAULT_ACCOUNT, drain, until


async def test_create_registers_session_and_starts_initialization(registry, engines):
    session = await registry.create("A")

    assert registry.get("A") is session
    assert "A" in registry
    await until(lambda: engines.engine("A").initialize_calls == 1)
    assert session.status == SessionStatus.INITIALIZING


async def test_create_twice_yields_already_exists(registry, engines):
    first = await registry.create("A")

    with pytest.raises(SessionAlreadyExistsError) as exc_info:
        await registry.create("A")

    assert exc_info.value.session_id == "A"
    assert len(registry) == 1
    assert registry.get("A") is first
    assert len(engines.built["A"]) == 1


async def test_concurrent_creates_insert_exactly_one_session(registry, engines):
    results = await asyncio.gather(
        *(registry.create("A") for _ in range(5)), return_exceptions=True
    )

    created = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, SessionAlreadyExistsError)]
    assert len(created) == 1
    assert len(rejected) == 4
    assert len(registry) == 1
    assert len(engines.built["A"]) == 1


async def test_create_of_ready_session_republishes_ready(registry, engines, subscriber):
    session = await registry.create("A")
    engine = engines.engine("A")
    engine.emit(AUTHENTICATED)
    engine.emit(READY)
    await until(lambda: session.is_ready)
    drain(subscriber)

    with pytest.raises(SessionAlreadyExistsError):
        await registry.create("A")

    events = drain(subscriber)
    assert [(e.name, e.payload) for e in events] == [("ready_A", DEFAULT_ACCOUNT)]


async def test_create_of_pending_session_publishes_nothing(registry, subscriber):
    await registry.create("A")
    drain(subscriber)

    with pytest.raises(SessionAlreadyExistsError):
        await registry.create("A")

    assert drain(subscriber) == []


async def test_remove_is_idempotent(registry):
    await registry.create("A")

    await registry.remove("A")
    await registry.remove("A")
    await registry.remove("never-existed")

    assert registry.get("A") is None
    assert len(registry) == 0


async def test_destroy_unknown_session_raises_not_found(registry):
    with pytest.raises(SessionNotFoundError):
        await registry.destroy("C")
    assert len(registry) == 0


async def test_destroy_removes_session_and_tears_down_engine(registry, engines):
    session = await registry.create("A")
    await until(lambda: engines.engine("A").initialize_calls == 1)

    await registry.destroy("A")

    assert registry.get("A") is None
    assert session.status == SessionStatus.DESTROYED
    assert engines.engine("A").destroy_calls == 1

    with pytest.raises(SessionNotFoundError):
        await registry.destroy("A")
    assert engines.engine("A").destroy_calls == 1


async def test_destroy_removes_session_even_when_teardown_fails(registry, engines):
    await registry.create("A")
    engines.engine("A").destroy_error = RuntimeError("browser already gone")

    await registry.destroy("A")

    assert registry.get("A") is None
    failures = registry.recent_failures()
    assert failures[0].session_id == "A"
    assert failures[0].kind == "TeardownError"
    assert "browser already gone" in failures[0].message


async def test_destroy_during_initialization_allows_recreate(registry, engines):
    engines.hold_init = True
    old = await registry.create("A")
    await until(lambda: engines.engine("A").initialize_calls == 1)
    old_engine = engines.engine("A")

    await registry.destroy("A")
    await old.wait_closed()
    engines.hold_init = False
    new = await registry.create("A")

    assert registry.get("A") is new
    assert new is not old
    assert old.status == SessionStatus.DESTROYED
    assert old_engine.destroy_calls == 1
    await until(lambda: engines.engine("A").initialize_calls == 1)


async def test_late_failure_of_replaced_session_leaves_new_one_alone(registry, engines, subscriber):
    old = await registry.create("A")
    old_engine = engines.engine("A")
    await registry.remove("A")
    new = await registry.create("A")
    new_engine = engines.engine("A")

    old_engine.emit(AUTH_FAILURE, message="stale credentials")
    await until(lambda: old_engine.destroy_calls == 1)

    assert old.status == SessionStatus.DESTROYED
    assert registry.get("A") is new
    assert new.status == SessionStatus.INITIALIZING
    assert new_engine.destroy_calls == 0
    assert registry.recent_failures()[0].message == "stale credentials"
    # the stale session still reports its own failure under the shared id
    assert [e.name for e in drain(subscriber)] == ["error_A"]


async def test_retire_only_removes_the_same_session_object(registry):
    old = await registry.create("A")
    await registry.remove("A")
    new = await registry.create("A")

    removed = await registry.retire(old, AuthFailureError("A"))

    assert removed is False
    assert registry.get("A") is new
    assert registry.recent_failures()[0].kind == "AuthFailureError"


async def test_failures_are_recorded_most_recent_first(registry, engines):
    for sid in ("A", "B"):
        await registry.create(sid)
        engines.engine(sid).emit(AUTH_FAILURE, message="bad creds")
        await until(lambda sid=sid: registry.get(sid) is None)

    failures = registry.recent_failures()
    assert [f.session_id for f in failures] == ["B", "A"]
    assert registry.recent_failures(limit=1)[0].session_id == "B"


async def test_list_sessions_reports_connection_status(registry, engines):
    await registry.create("A")
    b = await registry.create("B")
    engines.engine("B").emit(READY)
    await until(lambda: b.is_ready)

    listing = {s.id: s.to_dict() for s in registry.list_sessions()}

    assert listing["A"]["status"] == "disconnected"
    assert listing["B"] == {"sessionId": "B", "status": "connected", "state": "ready"}


async def test_shutdown_destroys_every_session(registry, engines):
    await registry.create("A")
    await registry.create("B")

    await registry.shutdown()

    assert len(registry) == 0
    assert engines.engine("A").destroy_calls == 1
    assert engines.engine("B").destroy_calls == 1
