"""Kite ticker streaming client with subscription replay on reconnect."""

from .client import (
    ConnectionOptions,
    ConnectionState,
    Frame,
    ReconnectOptions,
    TickerStream,
    WebSocketClient,
)
from .models import DEFAULT_MODE, Mode, RequestAction, TickerRequest
from .stream import KiteStreamCredentials, StreamState, SubscriptionStream

__all__ = [
    "ConnectionOptions",
    "ConnectionState",
    "Frame",
    "ReconnectOptions",
    "TickerStream",
    "WebSocketClient",
    "DEFAULT_MODE",
    "Mode",
    "RequestAction",
    "TickerRequest",
    "KiteStreamCredentials",
    "StreamState",
    "SubscriptionStream",
]
