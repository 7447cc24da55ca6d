"""SQLite-backed persistent store.

Keeps post, user profile and translated-entity rows across restarts.
All calls are synchronous; async callers run them in worker threads.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from tweetvault.services.persistent_store.migration import MigrationManager
from tweetvault.services.persistent_store.operations import QueryOperations, UpsertOperations
from tweetvault.services.persistent_store.transaction import TransactionManager
from tweetvault.shared.errors import ErrorCode, ErrorContext, PersistentStoreError
from tweetvault.shared.logging import log_operation_error, log_operation_success
from tweetvault.shared.models import PersistentKind, PersistentRow

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


@runtime_checkable
class PersistentStore(Protocol):
    """Keyed lookup/upsert store for persistent rows."""

    def lookup(self, kind: PersistentKind, identifier: str) -> PersistentRow | None: ...

    def upsert(
        self,
        kind: PersistentKind,
        identifier: str,
        payload: Any,
        *,
        owner: str | None = None,
    ) -> None: ...

    def insert_if_absent(
        self,
        kind: PersistentKind,
        identifier: str,
        payload: Any,
        *,
        owner: str | None = None,
    ) -> bool: ...

    def upsert_many(
        self,
        kind: PersistentKind,
        items: Iterable[tuple[str, Any]],
    ) -> int: ...

    def count(self, kind: PersistentKind, identifier: str | None = None) -> int: ...

    def ping(self) -> None: ...

    def close(self) -> None: ...


class SQLitePersistentStore:
    """Persistent store on a single SQLite connection.

    The connection runs in WAL mode with autocommit and is shared across
    threads; an RLock serialises access to it. Every ``sqlite3.Error`` is
    raised as PersistentStoreError so callers can treat the store as
    unavailable for that call.

    Example:
        >>> store = SQLitePersistentStore("tweetvault.db")
        >>> store.upsert(PersistentKind.USER_PROFILE, "alice", {"name": "Alice"})
        >>> store.lookup(PersistentKind.USER_PROFILE, "alice").payload
        {'name': 'Alice'}
        >>> store.close()
    """

    def __init__(self, db_path: Path | str) -> None:
        """Open the database and create the schema.

        Args:
            db_path: SQLite database file, or ":memory:"

        Raises:
            PersistentStoreError: If the database cannot be opened or migrated
        """
        self.db_path = str(db_path)
        self.conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._initialize_db()

    def _initialize_db(self) -> None:
        context = ErrorContext(
            operation="initialize_db",
            additional_data={"db_path": self.db_path},
        )
        start_time = time.time()

        try:
            if self.db_path != MEMORY_DB:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            self.conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                isolation_level=None,
            )
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.execute("PRAGMA synchronous=NORMAL")

            migrations = MigrationManager(self.conn)
            migrations.create_tables()
            if not migrations.validate_schema():
                msg = "Persistent store schema is incomplete"
                raise RuntimeError(msg)
        except (sqlite3.Error, OSError, RuntimeError) as e:
            if self.conn is not None:
                self.conn.close()
                self.conn = None
            error = PersistentStoreError(
                ErrorCode.STORE_UNAVAILABLE,
                f"Failed to initialize persistent store: {e!s}",
                context,
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, operation="initialize_db")
            raise error from e

        self._query_ops = QueryOperations(self.conn)
        self._upsert_ops = UpsertOperations(self.conn)
        self._transactions = TransactionManager(self.conn)

        log_operation_success(
            logger=logger,
            operation="initialize_db",
            duration_ms=(time.time() - start_time) * 1000,
            context=context,
        )

    @contextmanager
    def _guarded(
        self,
        operation: str,
        code: ErrorCode,
        kind: PersistentKind | None = None,
        identifier: str | None = None,
    ) -> Generator[None, None, None]:
        """Hold the connection lock and translate sqlite3 errors."""
        with self._lock:
            try:
                yield
            except sqlite3.Error as e:
                cache_key = f"{kind.value}:{identifier}" if kind and identifier else None
                error = PersistentStoreError(
                    code,
                    f"Persistent store {operation} failed: {e!s}",
                    ErrorContext(
                        operation=operation,
                        cache_key=cache_key,
                        additional_data={"db_path": self.db_path},
                    ),
                    original_error=e,
                )
                log_operation_error(
                    logger=logger,
                    error=error,
                    operation=operation,
                    level=logging.WARNING,
                )
                raise error from e

    def _require_open(self) -> sqlite3.Connection:
        if self.conn is None:
            raise PersistentStoreError(
                ErrorCode.STORE_UNAVAILABLE,
                "Persistent store is closed",
                ErrorContext(additional_data={"db_path": self.db_path}),
            )
        return self.conn

    def lookup(self, kind: PersistentKind, identifier: str) -> PersistentRow | None:
        """Return the stored row, or None when absent or undecodable."""
        with self._guarded("lookup", ErrorCode.STORE_READ_FAILED, kind, identifier):
            return self._query_ops.lookup(kind, identifier)

    def upsert(
        self,
        kind: PersistentKind,
        identifier: str,
        payload: Any,
        *,
        owner: str | None = None,
    ) -> None:
        """Insert or fully replace the row for (kind, identifier)."""
        with self._guarded("upsert", ErrorCode.STORE_WRITE_FAILED, kind, identifier):
            self._upsert_ops.upsert(kind, identifier, payload, owner=owner)

    def insert_if_absent(
        self,
        kind: PersistentKind,
        identifier: str,
        payload: Any,
        *,
        owner: str | None = None,
    ) -> bool:
        """Insert the row only if (kind, identifier) has none yet.

        An existing row is never replaced, so a concurrent explicit write
        always wins over this one.

        Returns:
            True if the row was inserted
        """
        with self._guarded("insert_if_absent", ErrorCode.STORE_WRITE_FAILED, kind, identifier):
            return self._upsert_ops.upsert(kind, identifier, payload, owner=owner, replace=False)

    def upsert_many(
        self,
        kind: PersistentKind,
        items: Iterable[tuple[str, Any]],
    ) -> int:
        """Upsert several rows of one kind in a single transaction.

        Either every row is written or none is.

        Returns:
            Number of rows written
        """
        written = 0
        with self._guarded("upsert_many", ErrorCode.STORE_WRITE_FAILED, kind):
            self._require_open()
            with self._transactions.transaction():
                for identifier, payload in items:
                    self._upsert_ops.upsert(kind, identifier, payload)
                    written += 1

        logger.debug("Store batch upsert: %d %s rows", written, kind.value)
        return written

    def count(self, kind: PersistentKind, identifier: str | None = None) -> int:
        with self._guarded("count", ErrorCode.STORE_READ_FAILED, kind, identifier):
            return self._query_ops.count(kind, identifier)

    def ping(self) -> None:
        """Check that the store answers queries.

        Raises:
            PersistentStoreError: If the connection is closed or unusable
        """
        with self._guarded("ping", ErrorCode.STORE_UNAVAILABLE):
            self._require_open().execute("SELECT 1").fetchone()

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
                self._query_ops.conn = None
                self._upsert_ops.conn = None
                logger.debug("Closed persistent store connection: %s", self.db_path)
