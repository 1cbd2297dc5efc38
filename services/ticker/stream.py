"""
Subscription ledger and replay stream for the Kite ticker.

`StreamState` records which instrument tokens are subscribed at which mode,
together with the endpoint and credentials. `SubscriptionStream` turns a
snapshot of that ledger into ready-to-send `mode` control frames, one per
non-empty mode bucket, and is rebuilt from the ledger on every (re)connection.
"""

import asyncio
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, SecretStr, ValidationError

from core.config.settings import KITECONNECT_WSS_API_BASE, Settings
from core.utils.exceptions import SubscriptionEncodingError

from .models import Mode, TickerRequest

# Buckets are tuples so a ledger cannot be edited in place
Subscription = Dict[Mode, Tuple[int, ...]]


class KiteStreamCredentials(BaseModel):
    """`api_key` and `access_token` for the streaming endpoint."""
    model_config = ConfigDict(frozen=True)

    api_key: SecretStr
    access_token: SecretStr

    @classmethod
    def from_parts(cls, api_key: str, access_token: str) -> "KiteStreamCredentials":
        return cls(api_key=SecretStr(api_key), access_token=SecretStr(access_token))

    @classmethod
    def from_user_session(cls, session) -> "KiteStreamCredentials":
        """Take the credentials issued by a session exchange (see `services.auth`)."""
        return cls(api_key=session.api_key, access_token=session.access_token)

    @classmethod
    def from_settings(cls, settings: Settings) -> "KiteStreamCredentials":
        return cls(api_key=SecretStr(settings.zerodha.api_key),
                   access_token=settings.zerodha.access_token)

    def to_query_params(self) -> str:
        # The only place the secrets are exposed
        return urlencode({
            "api_key": self.api_key.get_secret_value(),
            "access_token": self.access_token.get_secret_value(),
        })


class StreamState(BaseModel):
    """Subscription ledger for one ticker connection.

    Value semantics: `subscribe_token` returns a new ledger and leaves the
    receiver untouched, so a ledger handed to a connection never changes
    under it. Mode buckets keep insertion order and duplicates.
    """
    model_config = ConfigDict(frozen=True)

    api_base: str = KITECONNECT_WSS_API_BASE
    credentials: KiteStreamCredentials
    subscriptions: Subscription = {}

    @classmethod
    def from_parts(cls, api_base: str, api_key: str, access_token: str) -> "StreamState":
        return cls(
            api_base=api_base,
            credentials=KiteStreamCredentials.from_parts(api_key, access_token),
        )

    @classmethod
    def from_credentials(cls, credentials: KiteStreamCredentials,
                         api_base: Optional[str] = None) -> "StreamState":
        return cls(api_base=api_base or KITECONNECT_WSS_API_BASE, credentials=credentials)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StreamState":
        return cls.from_credentials(
            KiteStreamCredentials.from_settings(settings),
            api_base=settings.ticker_api_base(),
        )

    def subscribe_token(self, mode: Mode, token: int) -> "StreamState":
        mode = Mode(mode)
        subscriptions = dict(self.subscriptions)
        subscriptions[mode] = subscriptions.get(mode, ()) + (token,)
        return self.model_copy(update={"subscriptions": subscriptions})

    def subscribe_tokens(self, mode: Mode, tokens: Iterable[int]) -> "StreamState":
        state = self
        for token in tokens:
            state = state.subscribe_token(mode, token)
        return state

    @property
    def modes(self) -> List[Mode]:
        return list(self.subscriptions)

    @property
    def token_count(self) -> int:
        return sum(len(tokens) for tokens in self.subscriptions.values())

    def to_uri(self) -> str:
        return f"{self.api_base}?{self.credentials.to_query_params()}"

    def redacted_uri(self) -> str:
        """Connection URI safe for logs."""
        return f"{self.api_base}?api_key=***&access_token=***"

    def to_subscription_stream(self) -> "SubscriptionStream":
        return SubscriptionStream.from_state(self)


class SubscriptionStream:
    """Finite, lazy replay of a ledger snapshot as encoded `mode` frames.

    Mode keys are captured at construction; the cursor only moves forward and
    the stream is exhausted once it passes the last key. Empty buckets are
    skipped without producing a frame.
    """

    def __init__(self, subscriptions: Mapping[Mode, Sequence[int]]):
        self._data: Dict[Mode, List[int]] = {mode: list(tokens) for mode, tokens in subscriptions.items()}
        self._keys: List[Mode] = list(self._data)
        self._cursor = 0

    @classmethod
    def from_state(cls, state: StreamState) -> "SubscriptionStream":
        return cls(state.subscriptions)

    @property
    def keys(self) -> List[Mode]:
        return list(self._keys)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def exhausted(self) -> bool:
        return self._cursor >= len(self._keys)

    def _poll(self) -> Optional[str]:
        """Advance one key. Returns the encoded frame, or None for an empty bucket.

        Raises StopIteration when exhausted and SubscriptionEncodingError when
        the bucket cannot be encoded; the cursor has moved past it either way.
        """
        if self.exhausted:
            raise StopIteration

        mode = self._keys[self._cursor]
        tokens = self._data[mode]
        self._cursor += 1

        if not tokens:
            return None

        try:
            return TickerRequest.subscribe_with_mode(tokens, mode).to_json()
        except ValidationError as e:
            raise SubscriptionEncodingError(
                f"Cannot encode {mode.value} subscription: {e.error_count()} invalid value(s)",
                mode=mode.value,
                details={"errors": e.errors(include_url=False)},
            ) from e

    def __iter__(self):
        return self

    def __next__(self) -> str:
        while True:
            message = self._poll()
            if message is not None:
                return message

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        while True:
            try:
                message = self._poll()
            except StopIteration:
                raise StopAsyncIteration from None
            if message is not None:
                return message
            # Empty bucket: yield to the loop once and poll again
            await asyncio.sleep(0)
