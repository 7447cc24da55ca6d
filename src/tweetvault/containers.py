"""Dependency Injection container for TweetVault.

This module wires one process-scoped cache using dependency-injector:

- Settings (Singleton)
- Rate limiting components (TokenBucketRateLimiter, SemaphoreManager)
- HTTP origin client
- Persistent store factory and availability guard
- Cache orchestrator
"""

from __future__ import annotations

from functools import partial

from dependency_injector import containers, providers

from tweetvault.config.loader import load_settings
from tweetvault.services import (
    AvailabilityGuard,
    CacheOrchestrator,
    HttpOriginClient,
    SemaphoreManager,
    SQLitePersistentStore,
    TokenBucketRateLimiter,
)
from tweetvault.services.availability import StoreFactory
from tweetvault.shared.logging import setup_structured_logger


def build_store_factory(db_path: str | None) -> StoreFactory | None:
    """Return a factory opening the SQLite store, or None without a path."""
    if not db_path:
        return None
    return partial(SQLitePersistentStore, db_path)


class Container(containers.DeclarativeContainer):
    """Dependency Injection container for TweetVault services.

    Example:
        >>> container = Container()
        >>> container.logger()
        >>> cache = container.orchestrator()
        >>> profile = await cache.get("user-profile", "alice")
        >>> await cache.aclose()
    """

    # Configuration
    config = providers.Singleton(load_settings)

    logger = providers.Callable(
        setup_structured_logger,
        name="tweetvault",
        level=providers.Callable(lambda config: config.logging.level, config=config),
        log_file=providers.Callable(lambda config: config.logging.file, config=config),
        use_rich_console=providers.Callable(
            lambda config: config.logging.use_rich_console,
            config=config,
        ),
    )

    # Rate limiting components
    rate_limiter = providers.Singleton(
        TokenBucketRateLimiter,
        capacity=providers.Callable(
            lambda config: config.origin.rate_limit_burst,
            config=config,
        ),
        refill_rate=providers.Callable(
            lambda config: config.origin.rate_limit_rps,
            config=config,
        ),
    )

    semaphore_manager = providers.Singleton(
        SemaphoreManager,
        concurrency_limit=providers.Callable(
            lambda config: config.origin.concurrent_requests,
            config=config,
        ),
    )

    # Origin client
    origin_client = providers.Singleton(
        HttpOriginClient,
        settings=providers.Callable(lambda config: config.origin, config=config),
        rate_limiter=rate_limiter,
        semaphore_manager=semaphore_manager,
    )

    # Persistent store
    store_factory = providers.Callable(
        build_store_factory,
        db_path=providers.Callable(lambda config: config.cache.db_path, config=config),
    )

    availability_guard = providers.Singleton(
        AvailabilityGuard,
        store_factory=store_factory,
        enabled=providers.Callable(
            lambda config: config.cache.persistent_enabled,
            config=config,
        ),
    )

    # Cache
    orchestrator = providers.Singleton(
        CacheOrchestrator,
        origin=origin_client,
        guard=availability_guard,
        cache_settings=providers.Callable(lambda config: config.cache, config=config),
    )
