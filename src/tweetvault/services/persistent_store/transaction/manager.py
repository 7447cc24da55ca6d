"""Transaction manager for the persistent store.

The connection runs in autocommit mode, so multi-row writes open an
explicit transaction here.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import sqlite3

logger = logging.getLogger(__name__)


class TransactionManager:
    """Explicit BEGIN/COMMIT/ROLLBACK on an autocommit connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize transaction manager.

        Args:
            conn: SQLite database connection (isolation_level=None)
        """
        self.conn = conn

    def begin(self) -> None:
        """Begin a write transaction, taking the write lock up front."""
        self.conn.execute("BEGIN IMMEDIATE")

    def commit(self) -> None:
        self.conn.execute("COMMIT")

    def rollback(self) -> None:
        self.conn.execute("ROLLBACK")

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Run the enclosed writes atomically.

        Commits on success, rolls back and re-raises on any exception.

        Example:
            >>> with transaction_manager.transaction():
            ...     upserts.upsert(PersistentKind.POST, "1", post_1)
            ...     upserts.upsert(PersistentKind.POST, "2", post_2)
        """
        self.begin()
        try:
            yield
            self.commit()
        except BaseException:
            logger.debug("Rolling back transaction")
            self.rollback()
            raise
