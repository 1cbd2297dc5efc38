"""
Pytest configuration and shared fixtures for Kite Stream tests.
"""
import asyncio
from typing import List, Optional

import pytest
from pydantic import SecretStr
from websockets.exceptions import ConnectionClosedOK

from core.config.settings import ReconnectionSettings, Settings, ZerodhaSettings
from services.ticker.client import ReconnectOptions
from services.ticker.models import Mode
from services.ticker.stream import StreamState


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection.

    Frames queued with `push()` are returned by `recv()`; an exception
    instance in the queue is raised instead. `send()` records messages.
    """

    def __init__(self, frames=(), fail_sends: int = 0, stall_sends: bool = False):
        self.sent: List[str] = []
        self.closed = False
        self.response = None
        self._fail_sends = fail_sends
        self._stall_sends = stall_sends
        self._queue: asyncio.Queue = asyncio.Queue()
        for frame in frames:
            self.push(frame)

    def push(self, frame):
        self._queue.put_nowait(frame)

    def drop(self, exc: Optional[BaseException] = None):
        """Simulate the server going away."""
        self.push(exc or ConnectionResetError("connection reset by peer"))

    async def recv(self):
        item = await self._queue.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, message):
        if self.closed:
            raise ConnectionClosedOK(None, None)
        if self._stall_sends:
            # Peer never drains its buffer; only cancellation gets out
            await asyncio.Event().wait()
        if self._fail_sends:
            self._fail_sends -= 1
            raise ConnectionResetError("send failed")
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = ""):
        if not self.closed:
            self.closed = True
            self.push(ConnectionClosedOK(None, None))


class FakeConnector:
    """Injectable connector returning scripted outcomes in order.

    Each outcome is a FakeWebSocket to hand back or an exception to raise.
    Once the script is exhausted every call is refused.
    """

    def __init__(self, outcomes=()):
        self.outcomes = list(outcomes)
        self.calls = []

    async def __call__(self, uri, **kwargs):
        self.calls.append((uri, kwargs))
        if not self.outcomes:
            raise ConnectionRefusedError("connection refused")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def test_settings(monkeypatch):
    """Test settings configuration."""
    monkeypatch.delenv("KITECONNECT_WSS_API_BASE", raising=False)
    return Settings(
        _env_file=None,
        environment="testing",
        zerodha=ZerodhaSettings(
            api_key="test_key",
            api_secret=SecretStr("test_secret"),
            access_token=SecretStr("test_access_token"),
        ),
        reconnection=ReconnectionSettings(
            max_attempts=3,
            base_delay_seconds=0.0,
            jitter_factor=0.0,
        ),
    )


@pytest.fixture
def stream_state():
    """Ledger with two full-mode tokens and one ltp token."""
    return (
        StreamState.from_parts("wss://ws.example.test", "test_key", "test_access_token")
        .subscribe_tokens(Mode.FULL, [408065, 884737])
        .subscribe_token(Mode.LTP, 256265)
    )


@pytest.fixture
def fast_reconnect():
    """No backoff delay, three attempts."""
    return ReconnectOptions(max_attempts=3, initial_backoff=0.0, jitter_factor=0.0)


@pytest.fixture
def make_websocket():
    """Factory for FakeWebSocket instances."""
    return FakeWebSocket


@pytest.fixture
def make_connector():
    """Factory for FakeConnector instances."""
    return FakeConnector
