# Structured exception hierarchy for the Kite streaming client

from enum import Enum
from typing import Dict, Any, Optional
from datetime import datetime, timezone


class KiteStreamException(Exception):
    """Base exception for all Kite streaming client errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)


class TransientError(KiteStreamException):
    """Base class for transient errors that should be retried with exponential backoff"""

    def __init__(self, message: str, retry_count: int = 0, max_retries: int = 5,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.retry_count = retry_count
        self.max_retries = max_retries
        self.retryable = retry_count < max_retries


class PermanentError(KiteStreamException):
    """Base class for permanent errors that must not be retried"""
    retryable = False


# Market Data Errors
class MarketDataError(TransientError):
    """Market data feed errors"""
    pass


class TickerConnectionError(MarketDataError):
    """Socket, TLS or handshake failure on the streaming endpoint"""

    def __init__(self, message: str, endpoint: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        # Base URL only; never the credential-bearing URI
        self.endpoint = endpoint


class ReconnectionExhaustedError(TickerConnectionError):
    """Reconnection policy gave up"""

    def __init__(self, message: str, attempts: int, endpoint: Optional[str] = None, **kwargs):
        super().__init__(message, endpoint=endpoint, retry_count=attempts,
                         max_retries=attempts, **kwargs)
        self.attempts = attempts


class PacketSizeError(PermanentError):
    """Binary packet length does not map to a streaming mode"""

    def __init__(self, packet_size: int, **kwargs):
        super().__init__(f"Invalid packet size: {packet_size}", **kwargs)
        self.packet_size = packet_size


class SubscriptionEncodingError(PermanentError):
    """A subscription bucket could not be encoded into a control frame"""

    def __init__(self, message: str, mode: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.mode = mode


# Configuration Errors
class ConfigurationError(PermanentError):
    """Configuration validation errors"""

    def __init__(self, message: str, config_field: str, config_value: Any,
                 **kwargs):
        super().__init__(message, **kwargs)
        self.config_field = config_field
        self.config_value = config_value


# Broker API Errors
class KiteApiException(str, Enum):
    """Error categories reported by the Kite Connect API"""
    TOKEN = "TokenException"
    USER = "UserException"
    ORDER = "OrderException"
    INPUT = "InputException"
    MARGIN = "MarginException"
    HOLDING = "HoldingException"
    NETWORK = "NetworkException"
    DATA = "DataException"
    GENERAL = "GeneralException"

    @classmethod
    def from_name(cls, name: str) -> "KiteApiException":
        """Map an `error_type` string (or exception class name) to a category."""
        for member in cls:
            if member.value == name:
                return member
        return cls.GENERAL

    @property
    def description(self) -> str:
        return _KITE_API_EXCEPTION_DESCRIPTIONS[self]


_KITE_API_EXCEPTION_DESCRIPTIONS = {
    KiteApiException.TOKEN: "indicates the expiry or invalidation of an authenticated session",
    KiteApiException.USER: "represents user account related errors",
    KiteApiException.ORDER: "represents order related errors such as placement failures or a corrupt fetch",
    KiteApiException.INPUT: "represents missing required fields or bad values for parameters",
    KiteApiException.MARGIN: "represents insufficient funds required for order placement",
    KiteApiException.HOLDING: "represents insufficient holdings available to place a sell order",
    KiteApiException.NETWORK: "represents a network error between the API and the order management system",
    KiteApiException.DATA: "represents an internal error where the API could not understand the OMS response",
    KiteApiException.GENERAL: "represents an unclassified error",
}


class KiteApiError(KiteStreamException):
    """Error response from the Kite Connect REST API"""

    def __init__(self, message: str, endpoint: str, error_type: KiteApiException,
                 status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.endpoint = endpoint
        self.error_type = error_type
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.error_type in (KiteApiException.NETWORK, KiteApiException.DATA)


def is_retryable_error(error: Exception) -> bool:
    """
    Determine if an error should be retried

    Returns:
        True if error is transient and retryable, False otherwise
    """
    if isinstance(error, TransientError):
        return error.retryable
    if isinstance(error, KiteApiError):
        return error.retryable
    return False


def get_retry_delay(error: TransientError, base_delay: float = 1.0) -> float:
    """
    Calculate exponential backoff delay for retrying transient errors

    Args:
        error: The transient error to retry
        base_delay: Base delay in seconds

    Returns:
        Delay in seconds before retry
    """
    if not isinstance(error, TransientError):
        return 0.0

    # Exponential backoff: base_delay * (2 ^ retry_count)
    return base_delay * (2 ** error.retry_count)


def create_error_context(error: Exception, operation: str,
                         additional_context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Create structured error context for logging

    Args:
        error: The exception that occurred
        operation: The operation that failed
        additional_context: Additional context information

    Returns:
        Structured error context dictionary
    """
    context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "operation": operation,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "retryable": is_retryable_error(error)
    }

    if isinstance(error, KiteStreamException):
        if error.details:
            context["error_details"] = error.details

        if isinstance(error, TransientError):
            context["retry_count"] = error.retry_count
            context["max_retries"] = error.max_retries
            context["next_retry_delay"] = get_retry_delay(error)

        if isinstance(error, TickerConnectionError) and error.endpoint:
            context["endpoint"] = error.endpoint

        if isinstance(error, KiteApiError):
            context["api_error_type"] = error.error_type.value
            context["endpoint"] = error.endpoint

    if additional_context:
        context.update(additional_context)

    return context
