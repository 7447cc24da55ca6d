"""Per-process request coalescing with time-based expiry.

Concurrent requests for the same key share a single fetch; successful
results are served from memory until their TTL runs out. Failures are
delivered to every waiter and never cached.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from functools import partial
from typing import Any, Protocol

from tweetvault.shared.constants import CoalescerDefaults
from tweetvault.shared.errors import (
    ApplicationError,
    ErrorCode,
    ErrorContext,
    TransientError,
)
from tweetvault.shared.logging import log_cache_event
from tweetvault.shared.models import CacheEntry, CacheKey, CoalescerStats, EntryState

logger = logging.getLogger(__name__)


class RecordFetcher(Protocol):
    """Produces the value for a key on a coalescer miss."""

    async def fetch(self, key: CacheKey) -> Any: ...


def _consume_outcome(future: asyncio.Future[Any]) -> None:
    """Mark an abandoned waiter's outcome as retrieved."""
    if not future.cancelled():
        future.exception()


class RequestCoalescer:
    """Single-flight table of in-flight and recently fetched records.

    For each key at most one fetch runs at a time. A caller that finds a
    fresh entry gets the value without awaiting; a caller that finds a
    pending entry joins the shared fetch; otherwise the caller installs a
    pending entry and starts the fetch as its own task.

    The table check and install happen under a ``threading.Lock``; no
    await happens while it is held.

    Args:
        ttl: Seconds a successful result stays fresh
        sweep_interval: Minimum seconds between opportunistic expiry sweeps
        clock: Monotonic time source in seconds
        name: Label used in logs and stats
    """

    def __init__(
        self,
        ttl: float,
        *,
        sweep_interval: float = CoalescerDefaults.SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        name: str = "coalescer",
    ) -> None:
        if ttl <= 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"TTL must be positive, got: {ttl}",
                context=ErrorContext(
                    operation="coalescer_init",
                    additional_data={"ttl": ttl, "name": name},
                ),
            )

        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._stats = CoalescerStats()
        self._last_sweep = clock()
        self._tasks: set[asyncio.Task[None]] = set()

    async def get(
        self,
        key: CacheKey,
        fetcher: RecordFetcher,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Return the value for key, fetching it at most once concurrently.

        Args:
            key: Record identity
            fetcher: Called on a miss to produce the value
            timeout: Seconds this caller is willing to wait. Expiry only
                abandons the wait; the shared fetch keeps running.

        Returns:
            The fetched (or cached) value

        Raises:
            TransientError: OPERATION_TIMEOUT when ``timeout`` elapses,
                OPERATION_CANCELLED when the shared fetch was cancelled
            Exception: Whatever the fetcher raised, re-raised to every joiner
        """
        now = self._clock()
        self._maybe_sweep(now)

        is_owner = False
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(now):
                self._stats.hits += 1
                value = entry.value
                event = "hit"
            elif entry is not None and entry.state is EntryState.PENDING:
                self._stats.joins += 1
                event = "join"
            else:
                entry = CacheEntry(key=key, handle=Future(), inserted_at=now)
                self._entries[key] = entry
                self._stats.misses += 1
                is_owner = True
                event = "miss"

        log_cache_event(logger, event, str(key), {"coalescer": self.name})

        if event == "hit":
            return value

        if is_owner:
            task = asyncio.get_running_loop().create_task(
                self._run_fetch(entry, fetcher),
                name=f"{self.name}:fetch:{key}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            task.add_done_callback(partial(self._on_fetch_done, entry))

        return await self._wait(entry, timeout)

    async def _run_fetch(self, entry: CacheEntry, fetcher: RecordFetcher) -> None:
        """Run the shared fetch and publish its outcome to every joiner."""
        try:
            value = await fetcher.fetch(entry.key)
        except Exception as e:  # noqa: BLE001 - delivered to every joiner
            self._fail(entry, e)
            return

        with self._lock:
            done_at = self._clock()
            entry.value = value
            entry.state = EntryState.READY
            entry.inserted_at = done_at
            entry.expires_at = done_at + self.ttl
            installed = self._entries.get(entry.key) is entry

        if not entry.handle.done():
            entry.handle.set_result(value)

        log_cache_event(
            logger,
            "ready" if installed else "discard",
            str(entry.key),
            {"coalescer": self.name, "ttl": self.ttl},
        )

    def _on_fetch_done(self, entry: CacheEntry, task: asyncio.Task[None]) -> None:
        """Turn a cancelled fetch into OPERATION_CANCELLED for its waiters."""
        if task.cancelled() and not entry.handle.done():
            self._fail(
                entry,
                TransientError(
                    ErrorCode.OPERATION_CANCELLED,
                    f"Fetch for {entry.key} was cancelled",
                    ErrorContext(operation="coalesced_fetch", cache_key=str(entry.key)),
                ),
            )

    def _fail(self, entry: CacheEntry, error: BaseException) -> None:
        with self._lock:
            entry.state = EntryState.FAILED
            if self._entries.get(entry.key) is entry:
                del self._entries[entry.key]
            self._stats.failures += 1

        if not entry.handle.done():
            entry.handle.set_exception(error)

        log_cache_event(
            logger,
            "failed",
            str(entry.key),
            {"coalescer": self.name, "error": type(error).__name__},
        )

    async def _wait(self, entry: CacheEntry, timeout: float | None) -> Any:
        """Wait on the shared handle without letting this caller cancel it."""
        waiter = asyncio.wrap_future(entry.handle)
        try:
            if timeout is None:
                return await asyncio.shield(waiter)
            return await asyncio.wait_for(asyncio.shield(waiter), timeout)
        except asyncio.TimeoutError as e:
            if waiter.done():
                # The fetch itself failed with a timeout
                raise
            waiter.add_done_callback(_consume_outcome)
            raise TransientError(
                ErrorCode.OPERATION_TIMEOUT,
                f"Timed out after {timeout}s waiting for {entry.key}",
                ErrorContext(
                    operation="coalesced_get",
                    cache_key=str(entry.key),
                    additional_data={"timeout": timeout},
                ),
                original_error=e,
            ) from e
        except asyncio.CancelledError:
            waiter.add_done_callback(_consume_outcome)
            raise

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self.sweep_interval:
            self.purge_expired()

    def invalidate(self, key: CacheKey) -> bool:
        """Drop the entry for key.

        A pending fetch still completes for the callers already waiting on
        it, but its result is not installed.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self._stats.invalidations += 1

        if removed:
            log_cache_event(logger, "evict", str(key), {"coalescer": self.name})
        return removed

    def purge_expired(self) -> int:
        """Remove ready entries past their expiry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._stats.expirations += len(expired)
            self._last_sweep = now

        if expired:
            logger.debug("Purged %d expired entries from %s", len(expired), self.name)
        return len(expired)

    def clear(self) -> None:
        """Drop every entry; pending fetches finish for their waiters."""
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return self._stats.to_dict(size=len(self._entries))

    async def aclose(self) -> None:
        """Cancel outstanding fetches and wait for them to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        """True if key has a pending or fresh entry."""
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[call-overload]
            if entry is None:
                return False
            return entry.state is EntryState.PENDING or entry.is_fresh(self._clock())
