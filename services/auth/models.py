"""Authentication models for the Kite session exchange."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, SecretStr


class SessionMeta(BaseModel):
    """Additional metadata returned with a session."""
    model_config = ConfigDict(extra="allow")

    demat_consent: Optional[str] = None


class UserSession(BaseModel):
    """User profile and tokens issued by a successful session exchange.

    Token fields are SecretStr: `model_dump()` and `repr()` show them masked,
    `get_secret_value()` is the only way to read them.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    user_id: str
    user_type: Optional[str] = None
    email: Optional[str] = None
    user_name: Optional[str] = None
    user_shortname: Optional[str] = None
    broker: Optional[str] = None
    exchanges: List[str] = []
    products: List[str] = []
    order_types: List[str] = []
    avatar_url: Optional[str] = None

    api_key: SecretStr
    access_token: SecretStr
    public_token: SecretStr = SecretStr("")
    refresh_token: SecretStr = SecretStr("")
    enctoken: SecretStr = SecretStr("")

    login_time: Optional[Union[datetime, str]] = None
    meta: Optional[SessionMeta] = None

    @classmethod
    def from_kite_response(cls, data: Dict[str, Any], api_key: Optional[str] = None) -> "UserSession":
        """Build from the `generate_session` payload; nulls become empty secrets."""
        payload = dict(data)
        if api_key and not payload.get("api_key"):
            payload["api_key"] = api_key
        for key in ("public_token", "refresh_token", "enctoken"):
            if payload.get(key) is None:
                payload[key] = ""
        return cls.model_validate(payload)

    def to_public_dict(self) -> Dict[str, Any]:
        """Profile fields only, no tokens."""
        return self.model_dump(
            exclude={"api_key", "access_token", "public_token", "refresh_token", "enctoken"},
            mode="json",
        )
