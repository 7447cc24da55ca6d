"""Upsert operations for the persistent store.

Every write is atomic per key. A replacing upsert inserts the row or
replaces its payload and refreshes ``updated_at``; a non-replacing one
only inserts and leaves an existing row untouched.
"""

from __future__ import annotations

import logging
from typing import Any

from tweetvault.services.persistent_store.operations.base import (
    TABLES,
    BaseOperation,
    utc_now,
)
from tweetvault.shared.models import PersistentKind

logger = logging.getLogger(__name__)


def post_owner(payload: Any) -> str | None:
    """Screen name of the post author, if the payload carries one."""
    if not isinstance(payload, dict):
        return None
    user = payload.get("user")
    if isinstance(user, dict):
        screen_name = user.get("screen_name")
        if isinstance(screen_name, str) and screen_name:
            return screen_name
    return None


class UpsertOperations(BaseOperation):
    """Insert-or-replace operations keyed by each table's unique column."""

    def upsert(
        self,
        kind: PersistentKind,
        identifier: str,
        payload: Any,
        owner: str | None = None,
        *,
        replace: bool = True,
    ) -> bool:
        """Insert a row, or replace the payload of the existing one.

        Args:
            kind: Persistent table to write
            identifier: Post id or username
            payload: JSON-serializable payload (full replacement)
            owner: Post owner screen name; derived from the payload when
                omitted. Ignored for tables without an owner column.
            replace: When False an existing row is left as it is

        Returns:
            True if a row was inserted or replaced
        """
        conn = self._validate_connection()
        spec = TABLES[kind]
        payload_json = self._serialize(payload, kind, identifier)
        now = utc_now()

        if spec.owner_column is not None:
            if owner is None:
                owner = post_owner(payload)
            columns = f"{spec.key_column}, {spec.owner_column}, payload, created_at, updated_at"
            params: tuple[Any, ...] = (identifier, owner, payload_json, now, now)
            updates = (
                "payload = excluded.payload, "
                f"{spec.owner_column} = COALESCE(excluded.{spec.owner_column}, "
                f"{spec.table}.{spec.owner_column}), "
                "updated_at = excluded.updated_at"
            )
        else:
            columns = f"{spec.key_column}, payload, created_at, updated_at"
            params = (identifier, payload_json, now, now)
            updates = "payload = excluded.payload, updated_at = excluded.updated_at"

        on_conflict = f"DO UPDATE SET {updates}" if replace else "DO NOTHING"
        placeholders = ", ".join("?" * len(params))
        sql = (
            f"INSERT INTO {spec.table} ({columns}) "  # noqa: S608
            f"VALUES ({placeholders}) "
            f"ON CONFLICT({spec.key_column}) {on_conflict}"
        )

        written = conn.execute(sql, params).rowcount > 0

        logger.debug(
            "Store %s: %s:%s (%d bytes, written=%s)",
            "upsert" if replace else "insert",
            kind.value,
            identifier,
            len(payload_json),
            written,
        )
        return written
