"""Persistent store availability decision.

Decides once per process whether the persistent store takes part in
reads and writes.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from tweetvault.services.persistent_store import PersistentStore
from tweetvault.shared.errors import ConfigurationError, ErrorCode, ErrorContext
from tweetvault.shared.logging import log_operation_error

logger = logging.getLogger(__name__)

StoreFactory = Callable[[], PersistentStore]


class AvailabilityGuard:
    """Lazily probes the persistent store and remembers the answer.

    The store is unavailable when persistence is disabled, when there is
    no store factory, or when building or pinging the store fails. The
    last case is logged as a ConfigurationError and never raised. Later
    per-request store failures do not change the decision.

    Args:
        store_factory: Builds the store; None means no store is configured
        enabled: Whether persistence is switched on
    """

    def __init__(
        self,
        store_factory: StoreFactory | None,
        *,
        enabled: bool = True,
    ) -> None:
        self._store_factory = store_factory
        self._enabled = enabled
        self._lock = threading.Lock()
        self._checked = False
        self._store: PersistentStore | None = None

    def is_available(self) -> bool:
        """Return whether the persistent store participates.

        Computed on first call (double-checked under a lock) and cached
        for the lifetime of the guard.
        """
        if not self._checked:
            with self._lock:
                if not self._checked:
                    self._store = self._probe()
                    self._checked = True

        return self._store is not None

    @property
    def store(self) -> PersistentStore | None:
        """The probed store, or None when unavailable."""
        self.is_available()
        return self._store

    def _probe(self) -> PersistentStore | None:
        if not self._enabled:
            logger.info("Persistent store disabled by configuration")
            return None

        if self._store_factory is None:
            logger.info("No persistent store configured; reads go to the origin")
            return None

        store: PersistentStore | None = None
        try:
            store = self._store_factory()
            store.ping()
        except Exception as e:  # noqa: BLE001 - any probe failure means unavailable
            error = ConfigurationError(
                ErrorCode.STORE_UNAVAILABLE,
                f"Persistent store unavailable, continuing without it: {e!s}",
                ErrorContext(operation="probe_persistent_store"),
                original_error=e,
            )
            log_operation_error(
                logger=logger,
                error=error,
                operation="probe_persistent_store",
                level=logging.WARNING,
            )
            if store is not None:
                self._close_quietly(store)
            return None

        logger.info("Persistent store available")
        return store

    @staticmethod
    def _close_quietly(store: PersistentStore) -> None:
        try:
            store.close()
        except Exception:  # noqa: BLE001
            logger.debug("Ignoring error while closing unusable store", exc_info=True)

    def close(self) -> None:
        """Close the probed store, if any. The decision is kept."""
        with self._lock:
            store, self._store = self._store, None
            self._checked = True
        if store is not None:
            store.close()
