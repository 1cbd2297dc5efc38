# Ticker wire models: streaming modes and subscription control frames
from enum import Enum
from typing import Annotated, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.utils.exceptions import PacketSizeError

MAX_INSTRUMENT_TOKEN = 2**32 - 1

# Exchange-issued identifier; unsigned 32-bit on the wire
InstrumentToken = Annotated[int, Field(ge=0, le=MAX_INSTRUMENT_TOKEN)]


class Mode(str, Enum):
    """Data-detail tier requested per instrument token.

    The value is the wire tag used in `mode` control frames.
    """
    FULL = "full"
    QUOTE = "quote"
    LTP = "ltp"

    @property
    def packet_size(self) -> int:
        """Byte length of one binary packet streamed in this mode."""
        return _PACKET_SIZES[self]

    @classmethod
    def from_packet_size(cls, size: int) -> "Mode":
        """Classify a binary packet by its byte length."""
        for mode, packet_size in _PACKET_SIZES.items():
            if packet_size == size:
                return mode
        raise PacketSizeError(size)

    @classmethod
    def parse(cls, text: str) -> "Mode":
        """Case-insensitive lookup by wire tag or member name."""
        key = text.strip().lower()
        for mode in cls:
            if key == mode.value:
                return mode
        raise ValueError(f"Unknown mode: {text!r} (expected one of {[m.value for m in cls]})")


_PACKET_SIZES = {
    Mode.LTP: 8,
    Mode.QUOTE: 44,
    Mode.FULL: 184,
}

DEFAULT_MODE = Mode.QUOTE


class RequestAction(str, Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    MODE = "mode"


TokenList = List[InstrumentToken]
ModePayload = Tuple[Mode, TokenList]


class TickerRequest(BaseModel):
    """Outbound text control frame: `{"a": <action>, "v": <payload>}`.

    subscribe/unsubscribe carry a bare token list, mode carries `[mode, tokens]`.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    action: RequestAction = Field(alias="a")
    payload: Union[TokenList, ModePayload] = Field(alias="v")

    @model_validator(mode="after")
    def check_payload_shape(self):
        is_mode_payload = isinstance(self.payload, tuple)
        if self.action == RequestAction.MODE and not is_mode_payload:
            raise ValueError("mode requests carry a [mode, tokens] payload")
        if self.action != RequestAction.MODE and is_mode_payload:
            raise ValueError(f"{self.action.value} requests carry a bare token list")
        return self

    @classmethod
    def subscribe(cls, instrument_tokens: List[int]) -> "TickerRequest":
        return cls(a=RequestAction.SUBSCRIBE, v=list(instrument_tokens))

    @classmethod
    def unsubscribe(cls, instrument_tokens: List[int]) -> "TickerRequest":
        return cls(a=RequestAction.UNSUBSCRIBE, v=list(instrument_tokens))

    @classmethod
    def subscribe_with_mode(cls, instrument_tokens: List[int], mode: Mode) -> "TickerRequest":
        return cls(a=RequestAction.MODE, v=(mode, list(instrument_tokens)))

    @property
    def mode(self) -> Optional[Mode]:
        if isinstance(self.payload, tuple):
            return self.payload[0]
        return None

    @property
    def instrument_tokens(self) -> List[int]:
        if isinstance(self.payload, tuple):
            return list(self.payload[1])
        return list(self.payload)

    def to_json(self) -> str:
        """Compact JSON text frame, e.g. `{"a":"mode","v":["full",[408065]]}`."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, text: Union[str, bytes]) -> "TickerRequest":
        return cls.model_validate_json(text)

    def __str__(self) -> str:
        return self.to_json()
