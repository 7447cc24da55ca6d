"""Query operations for the persistent store."""

from __future__ import annotations

import logging

from tweetvault.services.persistent_store.operations.base import (
    TABLES,
    BaseOperation,
    parse_timestamp,
)
from tweetvault.shared.models import PersistentKind, PersistentRow

logger = logging.getLogger(__name__)


class QueryOperations(BaseOperation):
    """Read-only operations; nothing here writes to the database."""

    def lookup(self, kind: PersistentKind, identifier: str) -> PersistentRow | None:
        """Fetch one row by its unique identifier.

        Args:
            kind: Persistent table to read
            identifier: Post id or username

        Returns:
            The decoded row, or None when absent or undecodable
        """
        conn = self._validate_connection()
        spec = TABLES[kind]

        cursor = conn.execute(
            f"SELECT payload, created_at, updated_at FROM {spec.table} "  # noqa: S608
            f"WHERE {spec.key_column} = ?",
            (identifier,),
        )
        row = cursor.fetchone()
        if row is None:
            logger.debug("Store miss: %s:%s", kind.value, identifier)
            return None

        payload_raw, created_at, updated_at = row
        payload = self._deserialize(payload_raw, kind, identifier)
        if payload is None:
            return None

        return PersistentRow(
            kind=kind,
            identifier=identifier,
            payload=payload,
            created_at=parse_timestamp(created_at),
            updated_at=parse_timestamp(updated_at),
        )

    def count(self, kind: PersistentKind, identifier: str | None = None) -> int:
        """Count rows of a kind, optionally restricted to one identifier."""
        conn = self._validate_connection()
        spec = TABLES[kind]

        if identifier is None:
            cursor = conn.execute(f"SELECT COUNT(*) FROM {spec.table}")  # noqa: S608
        else:
            cursor = conn.execute(
                f"SELECT COUNT(*) FROM {spec.table} WHERE {spec.key_column} = ?",  # noqa: S608
                (identifier,),
            )
        result = cursor.fetchone()
        return int(result[0]) if result else 0
