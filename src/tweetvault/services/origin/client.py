"""HTTP client for the origin API.

This module fetches records from the upstream HTTP source, applying a
token-bucket rate limit and a concurrency cap, and maps HTTP failures
onto the TweetVault error hierarchy. It does not retry; callers own the
backoff policy.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol
from urllib.parse import quote

import httpx
import orjson

from tweetvault.config.models import OriginSettings
from tweetvault.services.rate_limiter import TokenBucketRateLimiter
from tweetvault.services.semaphore_manager import SemaphoreManager
from tweetvault.shared.constants import HTTPStatus, NetworkConfig
from tweetvault.shared.errors import (
    ErrorCode,
    create_not_found_error,
    create_transient_error,
)
from tweetvault.shared.logging import log_api_call
from tweetvault.shared.models import RecordKind

logger = logging.getLogger(__name__)


class OriginClient(Protocol):
    """Fetches a record from the origin by kind and identifier."""

    async def fetch(self, kind: RecordKind, identifier: str) -> Any: ...

    async def aclose(self) -> None: ...


def _parse_retry_after(value: str | None) -> float | None:
    """Seconds from a Retry-After header; None for dates or garbage."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return max(seconds, 0.0)


class HttpOriginClient:
    """Origin client over ``httpx.AsyncClient``.

    Error mapping:
        404 or a JSON ``null`` body -> NotFoundError
        429 -> TransientError(API_RATE_LIMIT) carrying Retry-After
        5xx -> TransientError(API_SERVER_ERROR)
        other 4xx -> TransientError(API_REQUEST_FAILED)
        timeout -> TransientError(API_TIMEOUT)
        transport failure -> TransientError(NETWORK_ERROR)
        undecodable body -> TransientError(API_INVALID_RESPONSE)

    Args:
        settings: Origin configuration
        rate_limiter: Token bucket; built from settings when omitted
        semaphore_manager: Concurrency cap; built from settings when omitted
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``)
    """

    def __init__(
        self,
        settings: OriginSettings,
        *,
        rate_limiter: TokenBucketRateLimiter | None = None,
        semaphore_manager: SemaphoreManager | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter(
            capacity=settings.rate_limit_burst,
            refill_rate=settings.rate_limit_rps,
        )
        self.semaphore_manager = semaphore_manager or SemaphoreManager(
            concurrency_limit=settings.concurrent_requests,
        )

        headers = {"Accept": "application/json"}
        if settings.api_token:
            headers["Authorization"] = f"Bearer {settings.api_token}"

        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            headers=headers,
            timeout=httpx.Timeout(
                settings.timeout,
                connect=min(settings.timeout, NetworkConfig.DEFAULT_CONNECT_TIMEOUT),
            ),
            limits=httpx.Limits(
                max_connections=settings.concurrent_requests,
                max_keepalive_connections=NetworkConfig.DEFAULT_MAX_KEEPALIVE,
            ),
            follow_redirects=True,
            transport=transport,
        )

    def build_path(self, kind: RecordKind, identifier: str) -> str:
        """Request path for a record, with the identifier URL-quoted."""
        return self.settings.path_for(kind).format(id=quote(identifier, safe=""))

    async def fetch(self, kind: RecordKind, identifier: str) -> Any:
        """Fetch one record from the origin.

        Args:
            kind: Record kind
            identifier: Post id or username

        Returns:
            Decoded JSON payload

        Raises:
            NotFoundError: The origin says the record does not exist
            TransientError: Any retryable failure (see class docstring)
        """
        path = self.build_path(kind, identifier)
        cache_key = f"{kind.value}:{identifier}"

        await self.rate_limiter.acquire()

        start_time = time.time()
        async with self.semaphore_manager:
            try:
                response = await self._client.get(path)
            except httpx.TimeoutException as e:
                raise create_transient_error(
                    ErrorCode.API_TIMEOUT,
                    f"Origin request timed out: {path}",
                    operation="origin_fetch",
                    cache_key=cache_key,
                    original_error=e,
                ) from e
            except httpx.TransportError as e:
                raise create_transient_error(
                    ErrorCode.NETWORK_ERROR,
                    f"Origin request failed: {e!s}",
                    operation="origin_fetch",
                    cache_key=cache_key,
                    original_error=e,
                ) from e

        log_api_call(
            logger,
            endpoint=path,
            status_code=response.status_code,
            duration_ms=(time.time() - start_time) * 1000,
            context={
                "cache_key": cache_key,
                "active_requests": self.semaphore_manager.get_active_count(),
                "tokens_available": self.rate_limiter.get_tokens_available(),
            },
        )

        self._raise_for_status(response, kind, identifier, cache_key)

        try:
            payload = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise create_transient_error(
                ErrorCode.API_INVALID_RESPONSE,
                f"Origin returned invalid JSON for {cache_key}",
                operation="origin_fetch",
                cache_key=cache_key,
                original_error=e,
            ) from e

        if payload is None:
            raise create_not_found_error(kind.value, identifier, operation="origin_fetch")

        return payload

    def _raise_for_status(
        self,
        response: httpx.Response,
        kind: RecordKind,
        identifier: str,
        cache_key: str,
    ) -> None:
        status = response.status_code
        if status < HTTPStatus.CLIENT_ERROR_MIN:
            return

        if status == HTTPStatus.NOT_FOUND:
            raise create_not_found_error(kind.value, identifier, operation="origin_fetch")

        if status == HTTPStatus.TOO_MANY_REQUESTS:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            raise create_transient_error(
                ErrorCode.API_RATE_LIMIT,
                "Origin rate limit exceeded",
                operation="origin_fetch",
                cache_key=cache_key,
                retry_after=retry_after,
            )

        code = (
            ErrorCode.API_SERVER_ERROR
            if status >= HTTPStatus.SERVER_ERROR_MIN
            else ErrorCode.API_REQUEST_FAILED
        )
        raise create_transient_error(
            code,
            f"Origin responded with HTTP {status} for {cache_key}",
            operation="origin_fetch",
            cache_key=cache_key,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
