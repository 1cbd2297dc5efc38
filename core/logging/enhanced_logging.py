# Enhanced structured logging with multi-channel support
import sys
import logging
import logging.handlers
from pathlib import Path
from typing import Dict, Optional, Any
import structlog

from core.config.settings import Settings
from .channels import (
    LogChannel,
    get_channel_for_component,
    get_channel_config,
    create_log_directory_structure,
)

# Global logger manager instance
_logger_manager: Optional['EnhancedLoggerManager'] = None

REDACTED = "[REDACTED]"

DEFAULT_REDACT_KEYS = (
    'authorization', 'access_token', 'refresh_token', 'api_key', 'api-secret', 'api_secret',
    'password', 'secret', 'token', 'set-cookie'
)


def build_redactor(keys):
    """Build a structlog processor that redacts sensitive keys recursively."""
    keys_to_redact = {k.lower() for k in (keys or DEFAULT_REDACT_KEYS)}

    def _redact(obj):
        if isinstance(obj, dict):
            out = {}
            for k, v in obj.items():
                if isinstance(k, str) and k.lower() in keys_to_redact:
                    out[k] = REDACTED
                else:
                    out[k] = _redact(v)
            return out
        if isinstance(obj, list):
            return [_redact(v) for v in obj]
        return obj

    def redact_sensitive(logger, name, event_dict):
        """Redact sensitive fields from event dict recursively."""
        return _redact(event_dict)

    return redact_sensitive


class EnhancedLoggerManager:
    """Logging manager with channel files and configurable formats."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.channel_handlers: Dict[LogChannel, logging.Handler] = {}
        self.configured_loggers: Dict[str, structlog.BoundLogger] = {}

        self._setup_logging()

    def _setup_logging(self) -> None:
        if self.settings.logging.file_enabled:
            create_log_directory_structure(self.settings.logs_dir)

        self._setup_console_logging()

        if self.settings.logging.file_enabled:
            self._setup_channel_files()

        self._configure_structlog()

    def _level(self, name: Optional[str] = None) -> int:
        return getattr(logging, (name or self.settings.logging.level).upper())

    def _formatter(self, json_output: bool) -> structlog.stdlib.ProcessorFormatter:
        foreign_chain = [
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
        ]
        processor = (
            structlog.processors.JSONRenderer()
            if json_output
            else structlog.dev.ConsoleRenderer()
        )
        return structlog.stdlib.ProcessorFormatter(
            processor=processor,
            foreign_pre_chain=foreign_chain,
        )

    def _setup_console_logging(self) -> None:
        """Setup console logging with configurable format."""
        root_logger = logging.getLogger()
        root_logger.setLevel(self._level())
        if not self.settings.logging.console_enabled:
            return

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self._level())
        console_handler.setFormatter(self._formatter(self.settings.logging.console_json_format))

        root_logger.addHandler(console_handler)

    def _setup_channel_files(self) -> None:
        """One rotating file per channel; the error file sees every ERROR record."""
        for channel in LogChannel:
            handler = self._create_channel_handler(channel)
            self.channel_handlers[channel] = handler

        logging.getLogger().addHandler(self.channel_handlers[LogChannel.ERROR])

    def _create_channel_handler(self, channel: LogChannel) -> logging.Handler:
        """Create a file handler for a specific channel."""
        config = get_channel_config(channel)
        level = config.level
        if channel == LogChannel.MARKET_DATA:
            level = self.settings.logging.market_data_level
        elif channel == LogChannel.API:
            level = self.settings.logging.api_level

        handler = logging.handlers.RotatingFileHandler(
            filename=config.get_file_path(self.settings.logs_dir),
            maxBytes=self._parse_size(config.max_bytes),
            backupCount=self.settings.logging.file_backup_count or config.backup_count,
            encoding="utf-8"
        )
        handler.setLevel(self._level(level))
        handler.setFormatter(self._formatter(self.settings.logging.json_format))
        return handler

    def _parse_size(self, size_str: str) -> int:
        """Parse size string (e.g., '100MB') to bytes."""
        size_str = size_str.upper()

        if size_str.endswith("B"):
            size_str = size_str[:-1]

        multipliers = {
            "K": 1024,
            "M": 1024 * 1024,
            "G": 1024 * 1024 * 1024,
        }

        for suffix, multiplier in multipliers.items():
            if size_str.endswith(suffix):
                return int(float(size_str[:-1]) * multiplier)

        return int(size_str)

    def _configure_structlog(self) -> None:
        """Configure structlog with appropriate processors."""

        def add_standard_context(logger, name, event_dict):
            """Bind standard context fields once from settings."""
            event_dict.setdefault('env', self.settings.environment.value)
            event_dict.setdefault('service', self.settings.app_name)
            event_dict.setdefault('version', self.settings.version)
            return event_dict

        processors = [
            add_standard_context,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            build_redactor(self.settings.logging.redact_keys),
            # Defer final rendering to handlers via ProcessorFormatter
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ]

        structlog.configure(
            processors=processors,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def get_logger(self, name: str, component: Optional[str] = None) -> structlog.BoundLogger:
        """Get a structured logger for a component."""
        if name in self.configured_loggers:
            return self.configured_loggers[name]

        logger = structlog.get_logger(name)
        if component:
            logger = logger.bind(component=component)
            self._attach_channel(name, get_channel_for_component(component))

        self.configured_loggers[name] = logger
        return logger

    def get_channel_logger(self, name: str, channel: LogChannel) -> structlog.BoundLogger:
        """Get a logger for a specific channel."""
        logger = self.get_logger(name).bind(channel=channel.value)
        self._attach_channel(name, channel)
        return logger

    def _attach_channel(self, name: str, channel: LogChannel) -> None:
        handler = self.channel_handlers.get(channel)
        # The error handler already sits on the root logger
        if handler is None or channel == LogChannel.ERROR:
            return
        stdlib_logger = logging.getLogger(name)
        if handler not in stdlib_logger.handlers:
            stdlib_logger.addHandler(handler)

    def get_statistics(self) -> Dict[str, Any]:
        """Get logging statistics."""
        return {
            "total_loggers": len(self.configured_loggers),
            "file_logging_enabled": self.settings.logging.file_enabled,
            "console_logging_enabled": self.settings.logging.console_enabled,
            "json_format": self.settings.logging.json_format,
            "logs_directory": str(Path(self.settings.logs_dir)),
            "channel_handlers": {ch.value: ch in self.channel_handlers for ch in LogChannel},
        }


def configure_enhanced_logging(settings: Settings) -> None:
    """Configure enhanced logging system."""
    global _logger_manager

    # Prevent duplicate configuration
    if _logger_manager is not None:
        return

    _logger_manager = EnhancedLoggerManager(settings)


def get_enhanced_logger(name: str, component: Optional[str] = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    if _logger_manager is None:
        # Unconfigured: structlog defaults, still bound to the component
        logger = structlog.get_logger(name)
        if component:
            logger = logger.bind(component=component)
        return logger

    return _logger_manager.get_logger(name, component)


def get_channel_logger(name: str, channel: LogChannel) -> structlog.BoundLogger:
    """Get a logger for a specific channel."""
    if _logger_manager is None:
        return get_enhanced_logger(name).bind(channel=channel.value)

    return _logger_manager.get_channel_logger(name, channel)


def get_logging_statistics() -> Dict[str, Any]:
    """Get logging system statistics."""
    if _logger_manager is None:
        return {"error": "Logger manager not initialized"}

    return _logger_manager.get_statistics()


def get_market_data_logger(name: str) -> structlog.BoundLogger:
    """Get a market data logger."""
    return get_channel_logger(name, LogChannel.MARKET_DATA)


def get_api_logger(name: str) -> structlog.BoundLogger:
    """Get an API logger."""
    return get_channel_logger(name, LogChannel.API)


def get_error_logger(name: str) -> structlog.BoundLogger:
    """Get an error logger."""
    return get_channel_logger(name, LogChannel.ERROR)
