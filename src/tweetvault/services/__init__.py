"""TweetVault services."""

from .availability import AvailabilityGuard
from .coalescer import RecordFetcher, RequestCoalescer
from .orchestrator import CacheOrchestrator, ReadThroughFetcher
from .origin import HttpOriginClient, OriginClient
from .persistent_store import PersistentStore, SQLitePersistentStore
from .rate_limiter import TokenBucketRateLimiter
from .semaphore_manager import SemaphoreManager

__all__ = [
    "AvailabilityGuard",
    "CacheOrchestrator",
    "HttpOriginClient",
    "OriginClient",
    "PersistentStore",
    "ReadThroughFetcher",
    "RecordFetcher",
    "RequestCoalescer",
    "SQLitePersistentStore",
    "SemaphoreManager",
    "TokenBucketRateLimiter",
]
