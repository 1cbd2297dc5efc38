"""Kite session exchange: login URL, request-token exchange, token validation."""

from .kite_client import KiteClientWrapper
from .models import SessionMeta, UserSession
from .exceptions import (
    AuthenticationError,
    InvalidCredentialsError,
    ZerodhaAuthError,
)

__all__ = [
    "KiteClientWrapper",
    "SessionMeta",
    "UserSession",
    "AuthenticationError",
    "InvalidCredentialsError",
    "ZerodhaAuthError",
]
