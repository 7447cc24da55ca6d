"""TweetVault configuration."""

from .loader import SettingsLoader, get_config, load_settings, reload_config
from .models import CacheSettings, LoggingSettings, OriginSettings, Settings

__all__ = [
    "CacheSettings",
    "LoggingSettings",
    "OriginSettings",
    "Settings",
    "SettingsLoader",
    "get_config",
    "load_settings",
    "reload_config",
]
