"""Shared data models."""

from .cache import (
    CacheEntry,
    CacheKey,
    CoalescerStats,
    EntryState,
    PersistentKind,
    RecordKind,
)
from .records import PersistentRow, TranslationEntity

__all__ = [
    "CacheEntry",
    "CacheKey",
    "CoalescerStats",
    "EntryState",
    "PersistentKind",
    "PersistentRow",
    "RecordKind",
    "TranslationEntity",
]
