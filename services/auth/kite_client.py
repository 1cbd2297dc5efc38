"""Zerodha KiteConnect integration for the session exchange."""

from typing import Any, Dict, Optional

from kiteconnect import KiteConnect
from kiteconnect.exceptions import KiteException

from core.config.settings import Settings
from core.logging import get_api_logger_safe
from core.utils.exceptions import KiteApiError, KiteApiException, create_error_context

from .exceptions import InvalidCredentialsError, ZerodhaAuthError
from .models import UserSession

logger = get_api_logger_safe("kite_client")


class KiteClientWrapper:
    """A thin wrapper around the KiteConnect REST client.

    Covers only what the streaming client needs: the login URL, exchanging a
    request token for a session, and checking that an access token is live.
    """

    def __init__(self, settings: Settings, kite: Optional[KiteConnect] = None):
        api_key = settings.zerodha.api_key
        if not api_key:
            raise InvalidCredentialsError("Zerodha API key is not configured.")

        self.settings = settings
        self.api_key = api_key
        self.kite = kite or KiteConnect(api_key=api_key, root=settings.zerodha.api_base)

    def login_url(self) -> str:
        """Browser URL that starts the Kite login and redirects with a request token."""
        return f"{self.settings.zerodha.login_url}?api_key={self.api_key}&v=3"

    def generate_session(self, request_token: str) -> UserSession:
        """Exchange a request token for a user session."""
        api_secret = self.settings.zerodha.api_secret.get_secret_value()
        if not api_secret:
            raise InvalidCredentialsError("Zerodha API secret is not configured.")

        data = self._call("session/token", self.kite.generate_session, request_token, api_secret)
        if not data or not data.get("access_token"):
            raise ZerodhaAuthError("Session response did not include an access token")

        session = UserSession.from_kite_response(data, api_key=self.api_key)
        logger.info("Kite session generated", user_id=session.user_id, broker=session.broker)
        return session

    def validate_access_token(self, access_token: str) -> Dict[str, Any]:
        """Fetch the user profile with `access_token`; returns it if the token is valid."""
        self.kite.set_access_token(access_token)
        profile = self._call("user/profile", self.kite.profile)
        logger.info("Access token validated", user_id=profile.get("user_id"))
        return profile

    def _call(self, endpoint: str, func, *args):
        try:
            return func(*args)
        except KiteException as e:
            error_type = KiteApiException.from_name(type(e).__name__)
            error = KiteApiError(
                f"Kite API error on {endpoint}: {e}",
                endpoint=endpoint,
                error_type=error_type,
                status_code=getattr(e, "code", None),
            )
            logger.error("Kite API call failed", **create_error_context(error, endpoint))
            raise error from e
