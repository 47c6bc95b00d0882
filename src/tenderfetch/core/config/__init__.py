"""Configuration loading and validation."""

from .models import (
    AppConfig,
    BrowserConfig,
    LoggingConfig,
    MailConfig,
    MirrorConfig,
    NotificationConfig,
    PathsConfig,
    RetentionConfig,
)
from .loader import ConfigError, load_app_config

__all__ = [
    # Config models
    "AppConfig",
    "BrowserConfig",
    "LoggingConfig",
    "MailConfig",
    "MirrorConfig",
    "NotificationConfig",
    "PathsConfig",
    "RetentionConfig",
    # Loaders
    "ConfigError",
    "load_app_config",
]
