"""Configuration management module for the listing alerts service."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_app_config, validate_config_file
from .models import (
    AppConfig,
    EmailConfig,
    IngestionConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    NotificationsConfig,
    ReconciliationConfig,
    WebhookConfig,
)

__all__ = [
    # Main loader functions
    "load_config",
    "parse_app_config",
    "validate_config_file",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "IngestionConfig",
    "ReconciliationConfig",
    "NotificationsConfig",
    "EmailConfig",
    "WebhookConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
