"""Authentication exceptions for the Kite session exchange."""

class AuthenticationError(Exception):
    """Base authentication error."""
    pass

class InvalidCredentialsError(AuthenticationError):
    """Invalid credentials or token provided."""
    pass

class ZerodhaAuthError(AuthenticationError):
    """Zerodha API-specific authentication error."""
    pass
