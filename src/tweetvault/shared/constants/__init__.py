"""Shared constants for TweetVault."""

from .cache import (
    BASE_HOUR,
    BASE_MINUTE,
    BASE_SECOND,
    CoalescerDefaults,
    EntityTypes,
    PersistentTables,
)
from .network import HTTPStatus, NetworkConfig, OriginPaths

__all__ = [
    "BASE_HOUR",
    "BASE_MINUTE",
    "BASE_SECOND",
    "CoalescerDefaults",
    "EntityTypes",
    "HTTPStatus",
    "NetworkConfig",
    "OriginPaths",
    "PersistentTables",
]
