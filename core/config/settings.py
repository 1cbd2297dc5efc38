# Complete settings with ALL required sections
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic import AliasChoices
from enum import Enum
from typing import Optional


KITECONNECT_API_BASE = "https://api.kite.trade"
KITECONNECT_API_LOGIN = "https://kite.trade/connect/login"
KITECONNECT_WSS_API_BASE = "wss://ws.kite.trade"


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class ZerodhaSettings(BaseModel):
    api_key: str = ""
    api_secret: SecretStr = SecretStr("")
    # Populated after a successful session exchange (see `cli.py session`)
    access_token: SecretStr = SecretStr("")
    api_base: str = KITECONNECT_API_BASE
    login_url: str = KITECONNECT_API_LOGIN


class TickerSettings(BaseModel):
    """Streaming endpoint and socket options"""
    api_base: str = KITECONNECT_WSS_API_BASE
    open_timeout_seconds: float = 10.0
    # Protocol-level keepalive handled by the websocket library
    ping_interval_seconds: Optional[float] = 20.0
    ping_timeout_seconds: Optional[float] = 20.0
    close_timeout_seconds: float = 10.0
    max_frame_bytes: int = 1_048_576


class ReconnectionSettings(BaseModel):
    """Market feed reconnection configuration"""
    max_attempts: Optional[int] = 50  # None retries forever
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.3
    exit_if_first_connect_fails: bool = True

    @field_validator("jitter_factor")
    @classmethod
    def validate_jitter(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("jitter_factor must be between 0 and 1")
        return v


class LoggingSettings(BaseModel):
    # Core logging settings
    level: str = "INFO"
    json_format: bool = True

    # Console logging
    console_enabled: bool = True
    console_json_format: bool = False  # Plain text for console by default

    # File logging
    file_enabled: bool = False
    logs_dir: str = "logs"
    file_max_size: str = "100MB"
    file_backup_count: int = 5

    # Channel-specific levels
    market_data_level: str = "INFO"
    api_level: str = "INFO"

    # Redaction
    redact_keys: list[str] = [
        "authorization", "access_token", "refresh_token", "public_token", "enctoken",
        "api_key", "api-secret", "api_secret", "password", "secret", "token", "set-cookie"
    ]


class Settings(BaseSettings):
    """Main application settings, loaded from environment variables"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    app_name: str = "Kite Stream"
    version: str = "0.3.0"
    environment: Environment = Environment.DEVELOPMENT

    zerodha: ZerodhaSettings = ZerodhaSettings()
    ticker: TickerSettings = TickerSettings()
    reconnection: ReconnectionSettings = ReconnectionSettings()
    logging: LoggingSettings = LoggingSettings()

    # Legacy flat override for the streaming endpoint; wins over TICKER__API_BASE
    wss_api_base_override: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("KITECONNECT_WSS_API_BASE"),
        description="Explicit WebSocket base URL override",
    )

    @property
    def logs_dir(self) -> str:
        return self.logging.logs_dir

    def ticker_api_base(self) -> str:
        """Resolve the effective WebSocket base URL.

        Precedence:
        - If KITECONNECT_WSS_API_BASE is set, use it.
        - Else, the nested ticker.api_base (TICKER__API_BASE or default).
        """
        if self.wss_api_base_override:
            return self.wss_api_base_override
        return self.ticker.api_base


# No global settings instance - use dependency injection instead
