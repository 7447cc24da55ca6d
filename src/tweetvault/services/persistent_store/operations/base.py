"""Base operation class for persistent store operations.

This module provides shared functionality for all store operations:
table layout per persistent kind and payload (de)serialization.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import orjson

from tweetvault.shared.constants import PersistentTables
from tweetvault.shared.errors import (
    ErrorCode,
    ErrorContext,
    PersistentStoreError,
    create_validation_error,
)
from tweetvault.shared.models import PersistentKind

if TYPE_CHECKING:
    import sqlite3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableSpec:
    """Where rows of one persistent kind live.

    Attributes:
        table: Table name
        key_column: Column carrying the unique identifier
        owner_column: Optional indexed owner column (posts only)
    """

    table: str
    key_column: str
    owner_column: str | None = None


TABLES: dict[PersistentKind, TableSpec] = {
    PersistentKind.POST: TableSpec(
        PersistentTables.POST,
        "tweet_id",
        owner_column="owner_screen_name",
    ),
    PersistentKind.USER_PROFILE: TableSpec(PersistentTables.USER_PROFILE, "user_name"),
    PersistentKind.TRANSLATED_ENTITIES: TableSpec(
        PersistentTables.TRANSLATED_ENTITIES,
        "tweet_id",
    ),
}


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO timestamp, assuming UTC when naive."""
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class BaseOperation:
    """Base class for store operations with shared functionality."""

    def __init__(self, conn: sqlite3.Connection | None) -> None:
        """Initialize base operation.

        Args:
            conn: SQLite database connection
        """
        self.conn = conn

    def _validate_connection(self) -> sqlite3.Connection:
        """Return the open connection.

        Raises:
            PersistentStoreError: If the connection was closed
        """
        if self.conn is None:
            raise PersistentStoreError(
                ErrorCode.STORE_UNAVAILABLE,
                "Persistent store connection is closed",
                ErrorContext(operation="validate_connection"),
            )
        return self.conn

    @staticmethod
    def _serialize(payload: Any, kind: PersistentKind, identifier: str) -> str:
        """Encode a payload as JSON text.

        Raises:
            DomainError: If the payload is not JSON-serializable
        """
        try:
            return orjson.dumps(payload).decode("utf-8")
        except TypeError as e:
            raise create_validation_error(
                f"Payload for {kind.value}:{identifier} is not JSON-serializable: {e}",
                field="payload",
                operation="serialize_payload",
                original_error=e,
            ) from e

    @staticmethod
    def _deserialize(raw: str | bytes, kind: PersistentKind, identifier: str) -> Any | None:
        """Decode a stored payload; None if it cannot be decoded."""
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning(
                "Failed to deserialize stored payload for %s:%s: %s",
                kind.value,
                identifier,
                str(e),
            )
            return None
