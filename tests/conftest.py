import pytest

from wahub.bus.hub import EventHub
from wahub.session.registry import SessionRegistry
from tests.fakes import FakeEngineFactory, drain


@pytest.fixture
def hub():
    return EventHub()


@pytest.fixture
def engines():
    return FakeEngineFactory()


@pytest.fixture
def registry(hub, engines):
    return SessionRegistry(hub, engines, failure_history=10)


@pytest.fixture
def subscriber(hub):
    """A hub subscriber whose connection acknowledgement is already consumed."""
    sub = hub.connect()
    drain(sub)
    return sub
