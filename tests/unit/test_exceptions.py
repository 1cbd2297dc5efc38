from core.utils.exceptions import (
    ConfigurationError,
    KiteApiError,
    KiteApiException,
    PacketSizeError,
    ReconnectionExhaustedError,
    TickerConnectionError,
    create_error_context,
    get_retry_delay,
    is_retryable_error,
)


def test_connection_errors_are_retryable():
    error = TickerConnectionError("refused", endpoint="wss://ws.kite.trade")
    assert is_retryable_error(error)
    assert error.endpoint == "wss://ws.kite.trade"


def test_exhaustion_records_attempts():
    error = ReconnectionExhaustedError("gave up", attempts=5, endpoint="wss://ws.kite.trade")
    assert isinstance(error, TickerConnectionError)
    assert error.attempts == 5
    assert error.retry_count == error.max_retries == 5
    assert not is_retryable_error(error)


def test_permanent_errors_are_not_retryable():
    assert not is_retryable_error(PacketSizeError(12))
    assert not is_retryable_error(ConfigurationError("bad", config_field="api_base", config_value="x"))
    assert not is_retryable_error(ValueError("plain"))


def test_retry_delay_doubles():
    assert get_retry_delay(TickerConnectionError("x", retry_count=3), base_delay=0.5) == 4.0
    assert get_retry_delay(PacketSizeError(1)) == 0.0


def test_kite_api_exception_mapping():
    assert KiteApiException.from_name("TokenException") is KiteApiException.TOKEN
    assert KiteApiException.from_name("SomethingElse") is KiteApiException.GENERAL
    assert "session" in KiteApiException.TOKEN.description


def test_kite_api_error_retryable_by_category():
    network = KiteApiError("down", endpoint="user/profile", error_type=KiteApiException.NETWORK)
    token = KiteApiError("expired", endpoint="user/profile", error_type=KiteApiException.TOKEN, status_code=403)
    assert is_retryable_error(network)
    assert not is_retryable_error(token)
    assert token.status_code == 403


def test_error_context():
    context = create_error_context(
        TickerConnectionError("refused", retry_count=1, details={"attempt": 1}),
        operation="connect",
    )
    assert context["error_type"] == "TickerConnectionError"
    assert context["operation"] == "connect"
    assert context["retryable"] is True
    assert context["error_details"] == {"attempt": 1}
    assert context["next_retry_delay"] == 2.0
