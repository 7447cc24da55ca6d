"""Configuration domain models."""

from __future__ import annotations

from .app_settings import LoggingSettings
from .cache_settings import CacheSettings
from .origin_settings import OriginSettings
from .settings import Settings

__all__ = [
    "CacheSettings",
    "LoggingSettings",
    "OriginSettings",
    "Settings",
]
