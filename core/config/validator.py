"""
Configuration validation before a streaming session starts.

Validates that credentials, the streaming endpoint and the reconnection
policy are usable, providing clear error messages for missing or invalid settings.
"""

import logging
from typing import List, Dict, Any
from dataclasses import dataclass
from urllib.parse import urlsplit

from .settings import Settings

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class ValidationResult:
    """Result of a configuration validation check"""
    is_valid: bool
    component: str
    message: str
    severity: str = "error"  # "error", "warning", "info"


class ConfigurationValidator:
    """
    Configuration validator for startup checks.

    Validates the settings a streaming session depends on before any socket
    is opened, so misconfiguration fails fast instead of inside the reconnect loop.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.validation_results: List[ValidationResult] = []

    def validate_all(self, require_access_token: bool = True) -> bool:
        """
        Run all validation checks.

        Returns:
            bool: True if all critical validations pass
        """
        logger.info("🔍 Starting configuration validation...")
        self.validation_results = []

        self._validate_broker_settings(require_access_token)
        self._validate_ticker_settings()
        self._validate_reconnection_settings()
        self._validate_logging_settings()

        errors = [r for r in self.validation_results if r.severity == "error"]
        warnings = [r for r in self.validation_results if r.severity == "warning"]

        if errors:
            logger.error(f"❌ Configuration validation failed: {len(errors)} errors, {len(warnings)} warnings")
            for result in errors:
                logger.error(f"   ERROR [{result.component}]: {result.message}")

        if warnings:
            for result in warnings:
                logger.warning(f"   WARNING [{result.component}]: {result.message}")

        if not errors and not warnings:
            logger.info("✅ All configuration validation checks passed")
        elif not errors:
            logger.info(f"✅ Configuration validation passed with {len(warnings)} warnings")

        return len(errors) == 0

    def _validate_broker_settings(self, require_access_token: bool):
        """Validate Zerodha credentials"""
        zerodha = self.settings.zerodha
        if not zerodha.api_key:
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Broker",
                message="ZERODHA__API_KEY is not configured",
                severity="error"
            ))

        if require_access_token and not zerodha.access_token.get_secret_value():
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Broker",
                message="ZERODHA__ACCESS_TOKEN is not configured; run `kite-stream session` first",
                severity="error"
            ))

    def _validate_ticker_settings(self):
        """Validate the streaming endpoint"""
        api_base = self.settings.ticker_api_base()
        parts = urlsplit(api_base)
        if parts.scheme not in ("ws", "wss") or not parts.netloc:
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Ticker",
                message=f"Streaming endpoint must be a ws:// or wss:// URL: {api_base!r}",
                severity="error"
            ))
        elif parts.query:
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Ticker",
                message="Streaming endpoint must not carry a query string; credentials are appended",
                severity="error"
            ))
        elif parts.scheme == "ws":
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Ticker",
                message="Streaming endpoint is not TLS protected; credentials travel in cleartext",
                severity="warning"
            ))

        if self.settings.ticker.open_timeout_seconds <= 0:
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Ticker",
                message="open_timeout_seconds must be positive",
                severity="error"
            ))

    def _validate_reconnection_settings(self):
        """Validate reconnection policy"""
        reconnection = self.settings.reconnection
        if reconnection.max_attempts is not None and reconnection.max_attempts < 1:
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Reconnection",
                message="max_attempts must be at least 1 (or unset for unlimited retries)",
                severity="error"
            ))

        if reconnection.max_delay_seconds < reconnection.base_delay_seconds:
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Reconnection",
                message="max_delay_seconds is lower than base_delay_seconds",
                severity="warning"
            ))

        if reconnection.backoff_multiplier < 1.0:
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Reconnection",
                message="backoff_multiplier below 1.0 shrinks delays between attempts",
                severity="warning"
            ))

    def _validate_logging_settings(self):
        """Validate logging configuration"""
        if self.settings.logging.level.upper() not in VALID_LOG_LEVELS:
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Logging",
                message=f"Invalid log level: {self.settings.logging.level}",
                severity="error"
            ))

    def get_validation_summary(self) -> Dict[str, Any]:
        """Get a summary of validation results"""
        errors = [r for r in self.validation_results if r.severity == "error"]
        warnings = [r for r in self.validation_results if r.severity == "warning"]

        return {
            "total_checks": len(self.validation_results),
            "errors": len(errors),
            "warnings": len(warnings),
            "is_valid": len(errors) == 0,
            "error_details": [{"component": r.component, "message": r.message} for r in errors],
            "warning_details": [{"component": r.component, "message": r.message} for r in warnings]
        }


def validate_startup_configuration(settings: Settings, require_access_token: bool = True) -> bool:
    """
    Convenience function to run startup configuration validation.

    Args:
        settings: Application settings to validate
        require_access_token: Whether a session access token must already be present

    Returns:
        bool: True if validation passes (no critical errors)
    """
    validator = ConfigurationValidator(settings)
    return validator.validate_all(require_access_token=require_access_token)
