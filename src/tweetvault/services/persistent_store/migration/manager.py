"""Schema manager for the persistent store."""

from __future__ import annotations

import logging
import sqlite3

from tweetvault.shared.constants import PersistentTables

logger = logging.getLogger(__name__)

_SCHEMA_V1 = f"""
CREATE TABLE IF NOT EXISTS {PersistentTables.POST} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tweet_id TEXT NOT NULL UNIQUE,
    owner_screen_name TEXT,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK (length(tweet_id) > 0)
);

CREATE INDEX IF NOT EXISTS idx_tweet_owner
    ON {PersistentTables.POST}(owner_screen_name);

CREATE TABLE IF NOT EXISTS {PersistentTables.USER_PROFILE} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_name TEXT NOT NULL UNIQUE,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK (length(user_name) > 0)
);

CREATE TABLE IF NOT EXISTS {PersistentTables.TRANSLATED_ENTITIES} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tweet_id TEXT NOT NULL UNIQUE,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK (length(tweet_id) > 0)
);

CREATE TABLE IF NOT EXISTS {PersistentTables.SCHEMA_VERSION} (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP NOT NULL
);
"""

REQUIRED_TABLES: tuple[str, ...] = (
    PersistentTables.POST,
    PersistentTables.USER_PROFILE,
    PersistentTables.TRANSLATED_ENTITIES,
    PersistentTables.SCHEMA_VERSION,
)


class MigrationManager:
    """Creates the schema and tracks its version."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize migration manager.

        Args:
            conn: SQLite database connection
        """
        self.conn = conn
        self._current_version = self._get_current_version()

    def get_current_version(self) -> int:
        return self._current_version

    def _get_current_version(self) -> int:
        """Read the schema version from the database (0 if unset)."""
        cursor = self.conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (PersistentTables.SCHEMA_VERSION,),
        )
        if cursor.fetchone() is None:
            return 0

        cursor = self.conn.execute(
            f"SELECT MAX(version) FROM {PersistentTables.SCHEMA_VERSION}"  # noqa: S608
        )
        row = cursor.fetchone()
        return row[0] if row and row[0] is not None else 0

    def create_tables(self) -> None:
        """Create the schema if needed and record its version.

        Raises:
            RuntimeError: If the database carries a newer schema than
                this version of the package understands
        """
        target = PersistentTables.SCHEMA_VERSION_CURRENT
        if self._current_version > target:
            msg = (
                f"Database schema version {self._current_version} is newer "
                f"than supported version {target}"
            )
            raise RuntimeError(msg)

        if self._current_version == target:
            logger.debug("Schema already at version %d", target)
            return

        self.conn.executescript(_SCHEMA_V1)
        self.conn.execute(
            f"INSERT OR REPLACE INTO {PersistentTables.SCHEMA_VERSION} (version) VALUES (?)",  # noqa: S608
            (target,),
        )
        self._current_version = target

        logger.info("Created persistent store schema (v%d)", target)

    def validate_schema(self) -> bool:
        """Return True if every required table exists."""
        try:
            for table in REQUIRED_TABLES:
                cursor = self.conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
                    (table,),
                )
                if cursor.fetchone() is None:
                    logger.error("Required table '%s' not found", table)
                    return False
        except sqlite3.Error:
            logger.exception("Schema validation failed")
            return False

        return True
