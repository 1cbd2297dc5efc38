import pytest
from kiteconnect.exceptions import NetworkException, TokenException
from pydantic import SecretStr

from core.config.settings import Settings, ZerodhaSettings
from core.utils.exceptions import KiteApiError, KiteApiException
from services.auth import InvalidCredentialsError, KiteClientWrapper, UserSession, ZerodhaAuthError
from services.ticker.stream import KiteStreamCredentials

SESSION_RESPONSE = {
    "user_type": "individual",
    "email": "trader@example.com",
    "user_name": "Test Trader",
    "user_shortname": "Trader",
    "broker": "ZERODHA",
    "exchanges": ["NSE", "BSE"],
    "products": ["CNC", "MIS"],
    "order_types": ["MARKET", "LIMIT"],
    "avatar_url": None,
    "user_id": "AB1234",
    "api_key": "test_key",
    "access_token": "fresh_access_token",
    "public_token": "public",
    "refresh_token": None,
    "enctoken": "enc",
    "login_time": "2024-01-15 09:10:11",
    "meta": {"demat_consent": "physical"},
}


class FakeKite:
    def __init__(self, session=None, profile=None, error=None):
        self.session = session
        self.profile_data = profile or {"user_id": "AB1234"}
        self.error = error
        self.access_token = None
        self.session_args = None

    def generate_session(self, request_token, api_secret):
        self.session_args = (request_token, api_secret)
        if self.error:
            raise self.error
        return self.session

    def set_access_token(self, access_token):
        self.access_token = access_token

    def profile(self):
        if self.error:
            raise self.error
        return self.profile_data


@pytest.fixture
def auth_settings():
    return Settings(
        _env_file=None,
        zerodha=ZerodhaSettings(api_key="test_key", api_secret=SecretStr("test_secret")),
    )


def test_requires_api_key():
    with pytest.raises(InvalidCredentialsError):
        KiteClientWrapper(Settings(_env_file=None, zerodha=ZerodhaSettings()), kite=FakeKite())


def test_login_url(auth_settings):
    client = KiteClientWrapper(auth_settings, kite=FakeKite())
    assert client.login_url() == "https://kite.trade/connect/login?api_key=test_key&v=3"


def test_generate_session_returns_user_session(auth_settings):
    kite = FakeKite(session=SESSION_RESPONSE)
    session = KiteClientWrapper(auth_settings, kite=kite).generate_session("request-123")

    assert kite.session_args == ("request-123", "test_secret")
    assert isinstance(session, UserSession)
    assert session.user_id == "AB1234"
    assert session.access_token.get_secret_value() == "fresh_access_token"
    assert session.refresh_token.get_secret_value() == ""
    assert session.meta.demat_consent == "physical"


def test_session_secrets_are_masked(auth_settings):
    session = KiteClientWrapper(auth_settings, kite=FakeKite(session=SESSION_RESPONSE)).generate_session("r")

    assert "fresh_access_token" not in repr(session)
    assert "fresh_access_token" not in str(session.model_dump())
    public = session.to_public_dict()
    assert "access_token" not in public
    assert public["exchanges"] == ["NSE", "BSE"]


def test_session_feeds_stream_credentials(auth_settings):
    session = KiteClientWrapper(auth_settings, kite=FakeKite(session=SESSION_RESPONSE)).generate_session("r")
    credentials = KiteStreamCredentials.from_user_session(session)
    assert credentials.to_query_params() == "api_key=test_key&access_token=fresh_access_token"


def test_session_without_access_token_is_rejected(auth_settings):
    kite = FakeKite(session={**SESSION_RESPONSE, "access_token": ""})
    with pytest.raises(ZerodhaAuthError):
        KiteClientWrapper(auth_settings, kite=kite).generate_session("r")


def test_missing_api_secret_is_rejected():
    settings = Settings(_env_file=None, zerodha=ZerodhaSettings(api_key="test_key"))
    with pytest.raises(InvalidCredentialsError):
        KiteClientWrapper(settings, kite=FakeKite()).generate_session("r")


def test_kite_errors_are_wrapped(auth_settings):
    kite = FakeKite(error=TokenException("Token is invalid or has expired.", code=403))
    with pytest.raises(KiteApiError) as excinfo:
        KiteClientWrapper(auth_settings, kite=kite).generate_session("r")

    assert excinfo.value.error_type is KiteApiException.TOKEN
    assert excinfo.value.status_code == 403
    assert excinfo.value.endpoint == "session/token"
    assert not excinfo.value.retryable


def test_validate_access_token(auth_settings):
    kite = FakeKite(profile={"user_id": "AB1234", "user_name": "Test Trader"})
    profile = KiteClientWrapper(auth_settings, kite=kite).validate_access_token("tok")

    assert kite.access_token == "tok"
    assert profile["user_name"] == "Test Trader"


def test_validate_access_token_network_error_is_retryable(auth_settings):
    kite = FakeKite(error=NetworkException("Gateway timed out", code=504))
    with pytest.raises(KiteApiError) as excinfo:
        KiteClientWrapper(auth_settings, kite=kite).validate_access_token("tok")
    assert excinfo.value.error_type is KiteApiException.NETWORK
    assert excinfo.value.retryable
