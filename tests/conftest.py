"""Pytest configuration and fixtures for the chat server tests."""

import json
from typing import List

import pytest
import pytest_asyncio
from starlette.websockets import WebSocketState

from backend import SessionRegistry
from connections import ConnectionHub
from message_router import MessageRouter
from tokens import TokenIssuer


# ============================================================================
# Fakes
# ============================================================================


class FakeClock:
    """Manually advanced unix clock."""

    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int):
        self.now += seconds


class FakeWebSocket:
    """Records frames sent by the server instead of writing to a socket."""

    def __init__(self):
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.sent: List[str] = []
        self.close_code = None
        self.fail_sends = False

    async def accept(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, data: str):
        if self.fail_sends:
            raise RuntimeError("connection reset")
        self.sent.append(data)

    async def close(self, code: int = 1000):
        self.close_code = code
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED

    def drop(self):
        """Simulate the peer going away without the server noticing yet."""
        self.client_state = WebSocketState.DISCONNECTED

    @property
    def messages(self) -> List[dict]:
        return [json.loads(frame) for frame in self.sent]


async def noop_on_expire(username: str):
    pass


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def issuer():
    return TokenIssuer("test-secret", start=1000)


@pytest.fixture
def hub(clock):
    return ConnectionHub(clock=clock)


@pytest_asyncio.fixture
async def registry(issuer, hub, clock):
    async def announce_leave(username):
        await hub.broadcast({"username": username, "leave": True})

    # A long poll interval keeps the background watch out of the way; tests
    # drive ticks through check_expiration directly.
    registry = SessionRegistry(
        issuer,
        on_expire=announce_leave,
        session_expiration=300,
        check_freq=3600,
        clock=clock,
    )
    yield registry
    await registry.close()


@pytest.fixture
def router(registry, hub):
    return MessageRouter(registry, hub)
