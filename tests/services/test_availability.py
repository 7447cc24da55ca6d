"""Tests for AvailabilityGuard."""

from __future__ import annotations

import logging
import threading
from unittest.mock import Mock

import pytest

from tweetvault.services.availability import AvailabilityGuard
from tweetvault.services.persistent_store import SQLitePersistentStore
from tweetvault.shared.errors import ErrorCode, PersistentStoreError


class TestAvailabilityGuard:
    """The store availability decision."""

    def test_available_when_factory_and_ping_succeed(
        self, store: SQLitePersistentStore
    ) -> None:
        guard = AvailabilityGuard(lambda: store)

        assert guard.is_available() is True
        assert guard.store is store

    def test_unavailable_without_factory(self) -> None:
        guard = AvailabilityGuard(None)

        assert guard.is_available() is False
        assert guard.store is None

    def test_unavailable_when_disabled(self) -> None:
        factory = Mock()
        guard = AvailabilityGuard(factory, enabled=False)

        assert guard.is_available() is False
        factory.assert_not_called()

    def test_failed_ping_logged_not_raised(self, caplog: pytest.LogCaptureFixture) -> None:
        # Given
        broken = Mock()
        broken.ping.side_effect = PersistentStoreError(
            ErrorCode.STORE_UNAVAILABLE,
            "connection refused",
        )
        guard = AvailabilityGuard(lambda: broken)

        # When
        with caplog.at_level(logging.WARNING, logger="tweetvault.services.availability"):
            available = guard.is_available()

        # Then
        assert available is False
        assert guard.store is None
        broken.close.assert_called_once()
        assert any(
            getattr(record, "error_code", None) == ErrorCode.STORE_UNAVAILABLE.value
            for record in caplog.records
        )

    def test_factory_exception_means_unavailable(self) -> None:
        def factory() -> SQLitePersistentStore:
            raise RuntimeError("bad DSN")

        guard = AvailabilityGuard(factory)

        assert guard.is_available() is False

    def test_decision_computed_once(self) -> None:
        # Given
        store = Mock()
        factory = Mock(return_value=store)
        guard = AvailabilityGuard(factory)

        # When
        results = []
        threads = [
            threading.Thread(target=lambda: results.append(guard.is_available()))
            for _ in range(10)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # Then
        assert results == [True] * 10
        factory.assert_called_once()
        store.ping.assert_called_once()

    def test_per_request_failures_do_not_flip_flag(self) -> None:
        store = Mock()
        guard = AvailabilityGuard(lambda: store)
        assert guard.is_available() is True

        store.lookup.side_effect = PersistentStoreError(ErrorCode.STORE_READ_FAILED, "gone")

        assert guard.is_available() is True

    def test_close_releases_store(self) -> None:
        store = Mock()
        guard = AvailabilityGuard(lambda: store)
        guard.is_available()

        guard.close()

        store.close.assert_called_once()
        assert guard.is_available() is False
