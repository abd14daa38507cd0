"""Configuration management for gigmatch."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_app_config, load_config
from .models import (
    AlertsConfig,
    AppConfig,
    DispatchConfig,
    EmailConfig,
    LexicalConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    MatchingConfig,
    RankingConfig,
    StoreConfig,
)

__all__ = [
    "load_config",
    "load_app_config",
    "load_environment_config",
    "AppConfig",
    "MatchingConfig",
    "LexicalConfig",
    "RankingConfig",
    "StoreConfig",
    "AlertsConfig",
    "DispatchConfig",
    "EmailConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
]
