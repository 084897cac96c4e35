import json

import pytest

from relay.config import Settings
from relay.connection import Connection
from relay.handler import ConnectionHandler
from relay.hub import RelayHub


class FakeConnection(Connection):
    """In-memory connection that records everything sent to it."""

    def __init__(self):
        super().__init__()
        self.sent = []

    async def send(self, message: dict) -> bool:
        if not self.is_open:
            return False
        # Round-trip through JSON like the real socket does
        self.sent.append(json.loads(json.dumps(message)))
        return True

    def of_type(self, msg_type):
        return [m for m in self.sent if m["type"] == msg_type]

    def last(self):
        return self.sent[-1] if self.sent else None


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class Client:
    """A fake connection plus the handler that serves it."""

    def __init__(self, hub: RelayHub):
        self.connection = FakeConnection()
        self.handler = ConnectionHandler(hub, self.connection)

    @property
    def sent(self):
        return self.connection.sent

    async def send(self, **message):
        await self.handler.handle_text(json.dumps(message))

    async def register(self, session_id, sharer=False, code=None):
        message = {"type": "register", "session_id": session_id, "is_sharer": sharer}
        if code is not None:
            message["code"] = code
        await self.send(**message)

    async def disconnect(self):
        await self.handler.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_hub(clock):
    def factory(rng=None, **overrides):
        return RelayHub(Settings(**overrides), clock=clock, rng=rng)
    return factory


@pytest.fixture
def hub(make_hub):
    return make_hub()


@pytest.fixture
def connect():
    return Client


@pytest.fixture
def fake_connection():
    return FakeConnection
