"""
Pytest configuration and shared fixtures for TweetVault tests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from tweetvault.services.availability import AvailabilityGuard
from tweetvault.services.persistent_store import SQLitePersistentStore
from tweetvault.shared.errors import create_not_found_error
from tweetvault.shared.models import CacheKey, RecordKind


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeOriginClient:
    """In-memory origin keyed by (kind, identifier).

    Unknown records raise NotFoundError. Set ``gate`` to hold every fetch
    until the event is set; set ``errors`` to make a key fail.
    """

    def __init__(self, records: dict[tuple[RecordKind, str], Any] | None = None) -> None:
        self.records = dict(records or {})
        self.errors: dict[tuple[RecordKind, str], Exception] = {}
        self.calls: list[tuple[RecordKind, str]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def fetch(self, kind: RecordKind, identifier: str) -> Any:
        self.calls.append((kind, identifier))
        if self.gate is not None:
            await self.gate.wait()
        if (kind, identifier) in self.errors:
            raise self.errors[(kind, identifier)]
        if (kind, identifier) not in self.records:
            raise create_not_found_error(kind.value, identifier, operation="fake_fetch")
        return self.records[(kind, identifier)]

    async def aclose(self) -> None:
        self.closed = True


class CountingFetcher:
    """RecordFetcher returning a fixed value (or raising) and counting calls."""

    def __init__(self, value: Any = "value", error: Exception | None = None) -> None:
        self.value = value
        self.error = error
        self.calls: list[CacheKey] = []
        self.gate: asyncio.Event | None = None

    async def fetch(self, key: CacheKey) -> Any:
        self.calls.append(key)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def origin() -> FakeOriginClient:
    return FakeOriginClient()


@pytest.fixture
def store(tmp_path: Path) -> Generator[SQLitePersistentStore, None, None]:
    """SQLite store in a temporary directory."""
    sqlite_store = SQLitePersistentStore(tmp_path / "tweetvault.db")
    yield sqlite_store
    sqlite_store.close()


@pytest.fixture
def guard(store: SQLitePersistentStore) -> AvailabilityGuard:
    return AvailabilityGuard(lambda: store)


@pytest.fixture
def unavailable_guard() -> AvailabilityGuard:
    return AvailabilityGuard(None)


@pytest.fixture
def make_fetcher() -> type[CountingFetcher]:
    return CountingFetcher
