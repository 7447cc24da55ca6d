"""Semaphore Manager for concurrency control.

Limits the number of origin requests in flight at once within one
event loop.
"""

from __future__ import annotations

import asyncio
import logging
import types
from typing import Self

from tweetvault.shared.constants import NetworkConfig
from tweetvault.shared.errors import ApplicationError, ErrorCode, ErrorContext

logger = logging.getLogger(__name__)


class SemaphoreManager:
    """Async semaphore manager for concurrent origin requests.

    Can be used as an async context manager:

        >>> async with semaphore_manager:
        ...     response = await client.get(url)

    Args:
        concurrency_limit: Maximum number of concurrent requests allowed
    """

    def __init__(
        self,
        concurrency_limit: int = NetworkConfig.DEFAULT_CONCURRENT_REQUESTS,
    ) -> None:
        """Initialize the semaphore manager.

        Raises:
            ApplicationError: If concurrency_limit is not positive
        """
        if concurrency_limit <= 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"Concurrency limit must be positive, got: {concurrency_limit}",
                context=ErrorContext(
                    operation="semaphore_manager_init",
                    additional_data={"concurrency_limit": concurrency_limit},
                ),
            )

        self.concurrency_limit = concurrency_limit
        self._semaphore = asyncio.Semaphore(concurrency_limit)
        self._active_count = 0

    async def acquire(self, timeout: float | None = None) -> bool:
        """Acquire a slot, waiting at most ``timeout`` seconds.

        Returns:
            True if a slot was acquired, False if the timeout elapsed
        """
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(
                "Semaphore acquire timed out after %ss (active=%d/%d)",
                timeout,
                self._active_count,
                self.concurrency_limit,
            )
            return False

        self._active_count += 1
        return True

    def release(self) -> None:
        """Release a slot taken with acquire()."""
        if self._active_count <= 0:
            raise ApplicationError(
                code=ErrorCode.CONCURRENCY_ERROR,
                message="Semaphore released more times than acquired",
                context=ErrorContext(operation="semaphore_release"),
            )
        self._active_count -= 1
        self._semaphore.release()

    def get_active_count(self) -> int:
        return self._active_count

    async def __aenter__(self) -> Self:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.release()
