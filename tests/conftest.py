import asyncio

import pytest

from main import create_app
from streamhub.auth import mint_access_token
from streamhub.config import Settings
from streamhub.relay import SignalingRelay
from streamhub.state import RoomRegistry

TEST_SECRET = "test-secret"


class FakeSocket:
    """Records every frame the relay sends to it."""

    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)

    def events(self):
        return [frame["event"] for frame in self.sent]

    def of(self, event):
        return [frame["data"] for frame in self.sent if frame["event"] == event]


class ClosedSocket:
    async def send_json(self, data):
        raise ConnectionResetError("Cannot write to closing transport")


async def wait_for(predicate, timeout=2.0):
    """Poll until predicate() is truthy; the server handles closes asynchronously."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def relay(registry):
    return SignalingRelay(registry)


@pytest.fixture
def peers(relay):
    """Factory connecting named fake sockets to the relay."""
    sockets = {}

    def connect(*names):
        for name in names:
            sockets[name] = FakeSocket()
            relay.connect(sockets[name], conn_id=name)
        return sockets

    return connect


@pytest.fixture
def settings():
    return Settings(jwt_secret=TEST_SECRET, rate_limit=1000, ws_heartbeat=5.0)


@pytest.fixture
async def client(aiohttp_client, settings):
    return await aiohttp_client(create_app(settings))


@pytest.fixture
def auth_header():
    def make(user_id="user_alice", name="Alice"):
        token = mint_access_token(user_id, TEST_SECRET, 60, name)
        return {"Authorization": f"Bearer {token}"}
    return make
