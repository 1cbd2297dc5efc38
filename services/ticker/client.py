"""
Reconnecting WebSocket client for the Kite ticker.

Features:
- Every (re)connection opens the socket, replays the full subscription
  ledger, and only then hands frames to the consumer
- Exponential backoff with jitter between reconnection attempts
- Explicit close halts reconnection and ends iteration
"""

import asyncio
import random
import time
import uuid
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException
from websockets.uri import parse_uri

from core.config.settings import ReconnectionSettings, TickerSettings
from core.logging import get_error_logger_safe, get_market_data_logger_safe
from core.utils.exceptions import (
    ConfigurationError,
    ReconnectionExhaustedError,
    SubscriptionEncodingError,
    TickerConnectionError,
)

from .models import TickerRequest
from .stream import StreamState, SubscriptionStream

# Binary market-data packet or text message, passed through untouched
Frame = Union[bytes, str]

Connector = Callable[..., Awaitable[Any]]


class ConnectionState(Enum):
    """Ticker connection states."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    REPLAYING = auto()
    CONNECTED = auto()
    RECONNECTING = auto()
    CLOSED = auto()


@dataclass
class ReconnectOptions:
    """Reconnection policy."""

    max_attempts: Optional[int] = 50  # None retries forever
    initial_backoff: float = 1.0
    max_backoff: float = 60.0
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.3
    # Fail `connect()` instead of retrying when the very first attempt fails
    exit_if_first_connect_fails: bool = True

    on_connect: Optional[Callable[[], None]] = None
    on_disconnect: Optional[Callable[[], None]] = None
    on_connect_fail: Optional[Callable[[], None]] = None

    @classmethod
    def from_settings(cls, settings: ReconnectionSettings, **callbacks) -> "ReconnectOptions":
        return cls(
            max_attempts=settings.max_attempts,
            initial_backoff=settings.base_delay_seconds,
            max_backoff=settings.max_delay_seconds,
            backoff_multiplier=settings.backoff_multiplier,
            jitter_factor=settings.jitter_factor,
            exit_if_first_connect_fails=settings.exit_if_first_connect_fails,
            **callbacks,
        )

    def backoff_for(self, attempt: int) -> float:
        """Delay before reconnection `attempt` (1-based)."""
        backoff = min(
            self.initial_backoff * (self.backoff_multiplier ** (attempt - 1)),
            self.max_backoff,
        )
        jitter = backoff * self.jitter_factor * (random.random() * 2 - 1)
        return max(0.0, backoff + jitter)


@dataclass
class ConnectionOptions:
    """Socket options passed to the websocket connector."""

    open_timeout: float = 10.0
    ping_interval: Optional[float] = 20.0
    ping_timeout: Optional[float] = 20.0
    close_timeout: float = 10.0
    max_size: Optional[int] = 1_048_576

    @classmethod
    def from_settings(cls, settings: TickerSettings) -> "ConnectionOptions":
        return cls(
            open_timeout=settings.open_timeout_seconds,
            ping_interval=settings.ping_interval_seconds,
            ping_timeout=settings.ping_timeout_seconds,
            close_timeout=settings.close_timeout_seconds,
            max_size=settings.max_frame_bytes,
        )

    def as_kwargs(self) -> Dict[str, Any]:
        return {
            "open_timeout": self.open_timeout,
            "ping_interval": self.ping_interval,
            "ping_timeout": self.ping_timeout,
            "close_timeout": self.close_timeout,
            "max_size": self.max_size,
        }


class TickerStream:
    """One live socket to the ticker plus the ledger it was opened for."""

    def __init__(self, websocket, stream_state: StreamState, logger=None):
        self.websocket = websocket
        self.stream_state = stream_state
        self.logger = logger or get_market_data_logger_safe("ticker_stream")
        self.error_logger = get_error_logger_safe("ticker_stream_errors")

    @classmethod
    async def open(
        cls,
        stream_state: StreamState,
        options: Optional[ConnectionOptions] = None,
        connector: Optional[Connector] = None,
        logger=None,
    ) -> "TickerStream":
        """Open the socket. Any socket/TLS/handshake failure becomes TickerConnectionError."""
        options = options or ConnectionOptions()
        connector = connector or websocket_connect
        try:
            websocket = await connector(stream_state.to_uri(), **options.as_kwargs())
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TickerConnectionError(
                f"Failed to connect to {stream_state.api_base}: {e}",
                endpoint=stream_state.api_base,
            ) from e

        stream = cls(websocket, stream_state, logger=logger)
        stream._log_handshake()
        return stream

    def _log_handshake(self) -> None:
        response = getattr(self.websocket, "response", None)
        if response is None:
            self.logger.info("Connected to ticker", endpoint=self.stream_state.api_base)
            return
        self.logger.info(
            "Connected to ticker",
            endpoint=self.stream_state.api_base,
            status_code=getattr(response, "status_code", None),
        )
        headers = getattr(response, "headers", None)
        if headers is not None:
            self.logger.debug("Handshake response headers", headers=dict(headers))

    async def replay(self) -> int:
        """Send every ledger bucket as a `mode` frame; best effort.

        Returns the number of frames written. Encoding and send failures are
        logged and skipped; the rest of the ledger is still replayed.
        """
        sent = 0
        subscriptions = SubscriptionStream.from_state(self.stream_state)
        while True:
            try:
                message = await subscriptions.__anext__()
            except StopAsyncIteration:
                break
            except SubscriptionEncodingError as e:
                self.error_logger.error("Error serializing ticker request", mode=e.mode, error=str(e))
                continue

            self.logger.debug("Ticker request", request=message)
            try:
                await self.websocket.send(message)
                sent += 1
            except (ConnectionClosed, OSError) as e:
                self.error_logger.error("Error sending a ticker request", error=str(e))

        self.logger.info(
            f"📊 Replayed {sent} subscription frame(s) for {self.stream_state.token_count} token(s)",
            modes=[m.value for m in self.stream_state.modes],
        )
        return sent

    async def recv(self) -> Frame:
        return await self.websocket.recv()

    async def send(self, message: str) -> None:
        await self.websocket.send(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        try:
            await self.websocket.close(code, reason)
        except (ConnectionClosed, OSError) as e:
            self.logger.debug("Error closing ticker socket", error=str(e))


class WebSocketClient:
    """
    Ticker connection with automatic reconnection.

    Iterate it (`async for frame in client`) to receive raw frames. After any
    drop the client reconnects and replays the whole ledger before frames flow
    again, so consumers must expect gaps but never a stale subscription set.
    """

    def __init__(
        self,
        stream_state: StreamState,
        reconnect: Optional[ReconnectOptions] = None,
        options: Optional[ConnectionOptions] = None,
        connector: Optional[Connector] = None,
    ):
        # Own copy of the mode map; buckets are already immutable tuples
        self.stream_state = stream_state.model_copy(
            update={"subscriptions": dict(stream_state.subscriptions)}
        )
        self.reconnect = reconnect or ReconnectOptions()
        self.options = options or ConnectionOptions()
        self._connector = connector

        self._state = ConnectionState.DISCONNECTED
        self._stream: Optional[TickerStream] = None
        self._closing = asyncio.Event()
        self._reconnect_attempts = 0

        self.connection_id = str(uuid.uuid4())
        self.logger = get_market_data_logger_safe("ticker_client").bind(
            connection_id=self.connection_id
        )
        self.error_logger = get_error_logger_safe("ticker_client_errors").bind(
            connection_id=self.connection_id
        )

        self._stats = {
            "messages_received": 0,
            "reconnect_count": 0,
            "replayed_messages": 0,
            "last_connect_time": None,
        }

    @classmethod
    async def connect(
        cls,
        stream_state: StreamState,
        reconnect: Optional[ReconnectOptions] = None,
        options: Optional[ConnectionOptions] = None,
        connector: Optional[Connector] = None,
    ) -> "WebSocketClient":
        """Validate the endpoint, open the socket and replay the ledger."""
        try:
            parse_uri(stream_state.to_uri())
        except InvalidURI as e:
            raise ConfigurationError(
                f"Invalid ticker endpoint: {stream_state.api_base!r}",
                config_field="api_base",
                config_value=stream_state.api_base,
            ) from e

        client = cls(stream_state, reconnect=reconnect, options=options, connector=connector)
        await client._connect_initial()
        return client

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def stats(self) -> Dict[str, Any]:
        return self._stats.copy()

    async def _establish(self) -> None:
        """Open a socket and replay the ledger over it."""
        self._state = ConnectionState.CONNECTING
        stream = await TickerStream.open(
            self.stream_state,
            options=self.options,
            connector=self._connector,
            logger=self.logger,
        )

        self._state = ConnectionState.REPLAYING
        try:
            self._stats["replayed_messages"] += await stream.replay()
        except BaseException:
            # Cancelled mid-replay: the socket never becomes the live stream
            await stream.close()
            raise

        self._stream = stream
        self._state = ConnectionState.CONNECTED
        self._stats["last_connect_time"] = time.time()
        if self.reconnect.on_connect:
            self.reconnect.on_connect()

    async def _connect_initial(self) -> None:
        self.logger.info("Connecting to ticker", endpoint=self.stream_state.redacted_uri())
        try:
            await self._establish()
            return
        except TickerConnectionError as e:
            if self.reconnect.on_connect_fail:
                self.reconnect.on_connect_fail()
            if self.reconnect.exit_if_first_connect_fails:
                self._state = ConnectionState.CLOSED
                self.error_logger.error("Initial ticker connection failed", error=str(e))
                raise
            self.logger.warning("Initial ticker connection failed; retrying", error=str(e))

        if not await self._reconnect():
            raise TickerConnectionError("Ticker client closed while connecting",
                                        endpoint=self.stream_state.api_base)

    async def _reconnect(self) -> bool:
        """Retry until connected. Returns False if the client was closed meanwhile.

        The attempt counter survives a successful handshake and is only reset
        once a frame arrives, so a server that accepts and immediately drops
        still backs off and exhausts `max_attempts`. Raises
        ReconnectionExhaustedError when the policy gives up.
        """
        self._state = ConnectionState.RECONNECTING

        while not self._closing.is_set():
            self._reconnect_attempts += 1
            max_attempts = self.reconnect.max_attempts
            if max_attempts is not None and self._reconnect_attempts > max_attempts:
                self._state = ConnectionState.CLOSED
                self.error_logger.error(f"❌ Max reconnect attempts ({max_attempts}) reached")
                raise ReconnectionExhaustedError(
                    f"Gave up reconnecting to {self.stream_state.api_base} after {max_attempts} attempts",
                    attempts=max_attempts,
                    endpoint=self.stream_state.api_base,
                )

            delay = self.reconnect.backoff_for(self._reconnect_attempts)
            self.logger.info(
                f"🔄 Reconnecting in {delay:.1f}s (attempt {self._reconnect_attempts}"
                f"/{max_attempts if max_attempts is not None else '∞'})"
            )
            if await self._wait_closing(delay):
                break

            try:
                await self._establish()
            except TickerConnectionError as e:
                self._state = ConnectionState.RECONNECTING
                self.logger.warning(
                    f"Reconnection attempt {self._reconnect_attempts} failed", error=str(e)
                )
                if self.reconnect.on_connect_fail:
                    self.reconnect.on_connect_fail()
                continue

            if self._closing.is_set():
                # close() raced with the handshake
                await self._stream.close()
                break

            self._stats["reconnect_count"] += 1
            self.logger.info("✅ Reconnection successful", attempts=self._reconnect_attempts)
            return True

        self._state = ConnectionState.CLOSED
        return False

    async def _wait_closing(self, delay: float) -> bool:
        """Sleep for `delay` unless close() happens first. Returns True if closing."""
        try:
            await asyncio.wait_for(self._closing.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        return self._closing.is_set()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Frame:
        while True:
            if self._closing.is_set() or self._state == ConnectionState.CLOSED:
                raise StopAsyncIteration

            try:
                frame = await self._stream.recv()
            except (ConnectionClosed, OSError) as e:
                if self._closing.is_set():
                    raise StopAsyncIteration from None
                self.logger.warning("⚠️ Ticker connection lost", error=str(e))
                if self.reconnect.on_disconnect:
                    self.reconnect.on_disconnect()
                await self._stream.close()
                if not await self._reconnect():
                    raise StopAsyncIteration from None
                continue

            # A frame proves the connection is usable; only then does backoff start over
            self._reconnect_attempts = 0
            self._stats["messages_received"] += 1
            return frame

    async def send(self, request: TickerRequest) -> None:
        """Write one control frame on the live socket.

        The ledger is not updated: after a reconnect the ledger is replayed
        as-is, so an unsubscribed token becomes subscribed again.
        """
        if not self.is_connected or self._stream is None:
            raise TickerConnectionError("Cannot send: ticker not connected",
                                        endpoint=self.stream_state.api_base)
        message = request.to_json()
        self.logger.debug("Ticker request", request=message)
        try:
            await self._stream.send(message)
        except (ConnectionClosed, OSError) as e:
            raise TickerConnectionError(f"Send failed: {e}",
                                        endpoint=self.stream_state.api_base) from e

    async def close(self) -> None:
        """Close the socket and stop reconnecting."""
        self._closing.set()
        self._state = ConnectionState.CLOSED
        if self._stream is not None:
            await self._stream.close()
        self.logger.info("Ticker client closed", stats=self.stats)

    async def __aenter__(self) -> "WebSocketClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
