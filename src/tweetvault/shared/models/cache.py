"""Cache key and entry models.

Record kinds, the persistent tables that back them, and the in-process
coalescer entry that tracks one fetch per key.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tweetvault.shared.errors import DomainError, ErrorCode, ErrorContext

__all__ = [
    "CacheEntry",
    "CacheKey",
    "CoalescerStats",
    "EntryState",
    "PersistentKind",
    "RecordKind",
]


class RecordKind(str, Enum):
    """Kinds of record that can be read through the cache."""

    POST = "post"
    POST_REPLIES = "post-replies"
    USER_TIMELINE = "user-timeline"
    USER_PROFILE = "user-profile"

    @classmethod
    def parse(cls, value: str | RecordKind) -> RecordKind:
        """Parse a record kind, rejecting unknown values.

        Raises:
            DomainError: If value is not a known record kind
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as e:
            raise DomainError(
                ErrorCode.INVALID_RECORD_KIND,
                f"Unknown record kind: {value!r}",
                ErrorContext(
                    operation="parse_record_kind",
                    additional_data={"kind": str(value)},
                ),
                original_error=e,
            ) from e

    @property
    def persistent_kind(self) -> PersistentKind | None:
        """Persistent table backing this kind, or None if reads are origin-only."""
        return _PERSISTENT_BACKING.get(self)


class PersistentKind(str, Enum):
    """Persistent tables."""

    POST = "post"
    USER_PROFILE = "user-profile"
    TRANSLATED_ENTITIES = "translated-entities"

    @classmethod
    def parse(cls, value: str | PersistentKind) -> PersistentKind:
        """Parse a persistent kind, rejecting unknown values.

        Raises:
            DomainError: If value is not a known persistent kind
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as e:
            raise DomainError(
                ErrorCode.INVALID_RECORD_KIND,
                f"Unknown persistent kind: {value!r}",
                ErrorContext(
                    operation="parse_persistent_kind",
                    additional_data={"kind": str(value)},
                ),
                original_error=e,
            ) from e

    @property
    def record_kind(self) -> RecordKind | None:
        """Read kind served by this table, or None for write-only tables."""
        for record_kind, persistent_kind in _PERSISTENT_BACKING.items():
            if persistent_kind is self:
                return record_kind
        return None


_PERSISTENT_BACKING: dict[RecordKind, PersistentKind] = {
    RecordKind.POST: PersistentKind.POST,
    RecordKind.USER_PROFILE: PersistentKind.USER_PROFILE,
}


@dataclass(frozen=True)
class CacheKey:
    """Identity of a cached record.

    Equality is exact on (kind, identifier); identifiers are not
    normalised, so "Alice" and "alice" are different keys.
    """

    kind: RecordKind
    identifier: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.identifier}"


class EntryState(str, Enum):
    """Lifecycle state of a coalescer entry."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass
class CacheEntry:
    """One slot in the coalescer table.

    While PENDING, ``handle`` is the completion shared by every caller
    waiting on this key. Once READY, ``value`` is served until
    ``expires_at`` (a reading of the coalescer clock).
    """

    key: CacheKey
    handle: Future[Any]
    state: EntryState = EntryState.PENDING
    value: Any = None
    inserted_at: float = 0.0
    expires_at: float | None = None

    def is_fresh(self, now: float) -> bool:
        """Return True if the entry is ready and not yet expired."""
        return (
            self.state is EntryState.READY
            and self.expires_at is not None
            and now < self.expires_at
        )

    def is_expired(self, now: float) -> bool:
        """Return True if the entry is ready and past its expiry."""
        return (
            self.state is EntryState.READY
            and self.expires_at is not None
            and now >= self.expires_at
        )


@dataclass
class CoalescerStats:
    """Counters exposed by RequestCoalescer.get_stats()."""

    hits: int = 0
    misses: int = 0
    joins: int = 0
    failures: int = 0
    expirations: int = 0
    invalidations: int = 0

    def to_dict(self, size: int) -> dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "joins": self.joins,
            "failures": self.failures,
            "expirations": self.expirations,
            "invalidations": self.invalidations,
            "size": size,
        }
