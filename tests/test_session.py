import pytest

from wahub.engine.base import (
    AUTH_FAILURE,
    AUTHENTICATED,
    DISCONNECTED,
    MESSAGE,
    QR,
    QR_MAX_RETRIES,
    READY,
    EngineMessage,
)
from wahub.session.errors import SendFailureError, SessionNotReadyError
from wahub.session.registry import SessionRegistry
from wahub.session.session import SessionStatus
from tests.fakes import DEFAULT_ACCOUNT, FakeEngine, drain, until


async def make_ready(registry, engines, session_id="B"):
    session = await registry.create(session_id)
    engine = engines.engine(session_id)
    engine.emit(QR, qr="qr-payload")
    engine.emit(AUTHENTICATED)
    engine.emit(READY)
    await until(lambda: session.is_ready)
    return session, engine


async def test_qr_challenge_moves_to_awaiting_auth(registry, engines, subscriber):
    session = await registry.create("A")
    engines.engine("A").emit(QR, qr="2@abc")

    await until(lambda: session.status == SessionStatus.AWAITING_AUTH)

    assert session.qr_count == 1
    assert [(e.name, e.payload) for e in drain(subscriber)] == [("qr_A", "2@abc")]


async def test_repeated_qr_challenges_are_all_published(registry, engines, subscriber):
    session = await registry.create("A")
    engine = engines.engine("A")
    engine.emit(QR, qr="first")
    engine.emit(QR, qr="second")

    await until(lambda: session.qr_count == 2)

    assert [e.payload for e in drain(subscriber)] == ["first", "second"]


async def test_full_lifecycle_publishes_events_in_order(registry, engines, subscriber):
    session, _ = await make_ready(registry, engines)

    events = drain(subscriber)
    assert [e.name for e in events] == ["qr_B", "authenticated_B", "ready_B"]
    assert events[-1].payload == DEFAULT_ACCOUNT
    assert session.account_id == DEFAULT_ACCOUNT
    assert session.to_dict() == {"sessionId": "B", "status": "connected", "state": "ready"}


async def test_stored_credentials_skip_the_qr_step(registry, engines):
    session = await registry.create("A")
    engine = engines.engine("A")
    engine.emit(AUTHENTICATED)
    await until(lambda: session.status == SessionStatus.AUTHENTICATED)
    engine.emit(READY, user="4470000000")

    await until(lambda: session.is_ready)
    assert session.account_id == "4470000000"


async def test_late_qr_after_ready_is_ignored(registry, engines, subscriber):
    session, engine = await make_ready(registry, engines)
    drain(subscriber)

    engine.emit(QR, qr="stale")
    engine.emit(MESSAGE, **{"from": "1555@c.us", "body": "marker"})
    await until(lambda: subscriber.pending > 0)

    assert session.is_ready
    assert [e.kind for e in drain(subscriber)] == ["message"]


async def test_qr_retries_exhausted_removes_session(registry, engines, subscriber):
    session = await registry.create("A")
    engine = engines.engine("A")
    engine.emit(QR, qr="x")
    engine.emit(QR_MAX_RETRIES)

    await until(lambda: registry.get("A") is None)
    await until(lambda: engine.destroy_calls == 1)

    assert session.status == SessionStatus.DESTROYED
    events = drain(subscriber)
    assert events[-1].name == "error_A"
    assert events[-1].payload == "Maximum QR code retries reached. Session removed."
    assert registry.recent_failures()[0].kind == "AuthFailureError"


async def test_auth_failure_removes_session_and_tears_down(registry, engines, subscriber):
    session = await registry.create("A")
    engine = engines.engine("A")
    engine.emit(QR, qr="x")
    engine.emit(AUTH_FAILURE, message="restore failed")

    await until(lambda: engine.destroy_calls == 1)

    assert registry.get("A") is None
    assert session.status == SessionStatus.DESTROYED
    assert session.last_error == "restore failed"
    assert [(e.name, e.payload) for e in drain(subscriber)][-1] == (
        "error_A", "Authentication failed. Please try again."
    )


async def test_auth_failure_with_failing_teardown_still_removes(registry, engines):
    await registry.create("A")
    engine = engines.engine("A")
    engine.destroy_error = RuntimeError("page crashed")
    engine.emit(AUTH_FAILURE, message="nope")

    await until(lambda: engine.destroy_calls == 1)

    assert registry.get("A") is None
    kinds = [f.kind for f in registry.recent_failures()]
    assert kinds == ["TeardownError", "AuthFailureError"]


@pytest.mark.parametrize("reason", ["LOGOUT", "UNPAIRED"])
async def test_unlinking_disconnect_removes_session(registry, engines, subscriber, reason):
    session, engine = await make_ready(registry, engines)
    drain(subscriber)

    engine.emit(DISCONNECTED, reason=reason)
    await until(lambda: registry.get("B") is None)

    assert session.status == SessionStatus.DESTROYED
    assert [(e.name, e.payload) for e in drain(subscriber)] == [("disconnected_B", reason)]
    assert registry.list_sessions() == []
    # unlinking is not a failure
    assert registry.recent_failures() == []


@pytest.mark.parametrize("reason", ["NAVIGATION", "CONFLICT", "TIMEOUT"])
async def test_other_disconnect_keeps_session(registry, engines, subscriber, reason):
    session, engine = await make_ready(registry, engines)
    drain(subscriber)

    engine.emit(DISCONNECTED, reason=reason)
    await until(lambda: subscriber.pending > 0)

    assert registry.get("B") is session
    assert session.is_ready
    assert engine.destroy_calls == 0
    assert [(e.name, e.payload) for e in drain(subscriber)] == [("disconnected_B", reason)]


async def test_initialization_error_removes_session(registry, engines, subscriber):
    engines.hold_init = True
    session = await registry.create("A")
    engine = engines.engine("A")
    engine.init_error = RuntimeError("chromium failed to launch")
    engine.init_gate.set()

    await until(lambda: registry.get("A") is None)
    await session.wait_closed()

    assert session.status == SessionStatus.DESTROYED
    assert engine.destroy_calls == 1
    assert [(e.name, e.payload) for e in drain(subscriber)] == [
        ("error_A", "Failed to initialize WhatsApp client")
    ]
    failure = registry.recent_failures()[0]
    assert failure.kind == "InitializationError"
    assert failure.message == "chromium failed to launch"


async def test_engine_stream_ending_unexpectedly_removes_session(registry, engines, subscriber):
    session, engine = await make_ready(registry, engines)
    drain(subscriber)

    engine.close_stream()
    await until(lambda: registry.get("B") is None)

    assert session.status == SessionStatus.DESTROYED
    assert drain(subscriber)[-1].name == "error_B"


async def test_inbound_message_is_republished_with_normalized_address(registry, engines, subscriber):
    _, engine = await make_ready(registry, engines)
    drain(subscriber)

    engine.emit(MESSAGE, **{"from": "15559876543", "body": "hello", "timestamp": 1700000000})
    engine.emit(MESSAGE, **{"from": "15550000000@c.us", "body": "again", "timestamp": 1700000001})
    await until(lambda: subscriber.pending == 2)

    first, second = drain(subscriber)
    assert first.name == "message_B"
    assert first.payload == {
        "from": "15559876543",
        "body": "hello",
        "timestamp": 1700000000,
        "phoneNumber": "15559876543@c.us",
        "myNumber": DEFAULT_ACCOUNT,
    }
    assert second.payload["phoneNumber"] == "15550000000@c.us"
    assert second.payload["body"] == "again"


async def test_send_before_ready_is_rejected(registry, engines):
    session = await registry.create("B")

    with pytest.raises(SessionNotReadyError):
        await session.send_message("1555@c.us", "hi")
    assert engines.engine("B").sent == []


async def test_send_normalizes_recipient_address(registry, engines):
    session, engine = await make_ready(registry, engines)

    bare = await session.send_message("1555", "hi")
    suffixed = await session.send_message("1555@c.us", "hi")

    assert engine.sent == [("1555@c.us", "hi"), ("1555@c.us", "hi")]
    assert bare == "msg-1"
    assert suffixed == "msg-2"


async def test_send_engine_error_becomes_send_failure(registry, engines):
    session, engine = await make_ready(registry, engines)
    engine.send_error = RuntimeError("chat not found")

    with pytest.raises(SendFailureError) as exc_info:
        await session.send_message("1555", "hi")

    assert exc_info.value.message == "chat not found"
    assert session.is_ready


async def test_fetch_history_uses_normalized_address(registry, engines):
    session, engine = await make_ready(registry, engines)
    engine.history = [EngineMessage(id="m1", sender="1555@c.us", body="yo", timestamp=1)]

    messages = await session.fetch_history("1555", limit=20)

    assert engine.history_requests == [("1555@c.us", 20)]
    assert [m.to_dict() for m in messages] == [
        {"id": "m1", "from": "1555@c.us", "body": "yo", "timestamp": 1}
    ]


async def test_failure_in_one_session_does_not_affect_another(registry, engines):
    healthy, _ = await make_ready(registry, engines, "B")
    await registry.create("A")
    engines.engine("A").emit(AUTH_FAILURE, message="bad")

    await until(lambda: registry.get("A") is None)

    assert registry.get("B") is healthy
    assert healthy.is_ready


class CrashingEngine(FakeEngine):
    """Engine whose event stream raises instead of ending cleanly."""

    async def events(self):
        async for event in super().events():
            yield event
        raise RuntimeError("engine stream crashed")


async def test_engine_stream_crash_removes_session(hub, subscriber):
    registry = SessionRegistry(hub, CrashingEngine)
    session = await registry.create("A")
    session.engine.emit(READY)
    await until(lambda: session.is_ready)
    drain(subscriber)

    session.engine.close_stream()
    await session.wait_closed()

    assert registry.get("A") is None
    assert session.status == SessionStatus.DESTROYED
    assert session.engine.destroy_calls == 1
    assert [(e.name, e.payload) for e in drain(subscriber)] == [
        ("error_A", "WhatsApp engine stopped unexpectedly. Session removed.")
    ]
    failure = registry.recent_failures()[0]
    assert failure.kind == "SessionError"
    assert "engine stream crashed" in failure.message
