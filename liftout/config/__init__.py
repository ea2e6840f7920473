"""Configuration management for the matching engine."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config
from .models import (
    AnonymizationConfig,
    AppConfig,
    EmailConfig,
    InterestConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    NotificationConfig,
)

__all__ = [
    "load_config",
    "load_environment_config",
    "AppConfig",
    "InterestConfig",
    "NotificationConfig",
    "EmailConfig",
    "AnonymizationConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
]
