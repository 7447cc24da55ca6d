"""Tests for CacheOrchestrator read and write paths."""

from __future__ import annotations

import asyncio
from unittest.mock import Mock

import pytest

from tweetvault.config.models import CacheSettings
from tweetvault.services.availability import AvailabilityGuard
from tweetvault.services.orchestrator import (
    CacheOrchestrator,
    merge_translations,
    post_identifier,
)
from tweetvault.shared.errors import (
    DomainError,
    ErrorCode,
    NotFoundError,
    PersistentStoreError,
    TransientError,
)
from tweetvault.shared.models import PersistentKind, RecordKind, TranslationEntity

ALICE = {"id": "1", "name": "Alice"}


async def _wait_until(condition) -> None:
    while not condition():
        await asyncio.sleep(0.001)


@pytest.fixture
def settings() -> CacheSettings:
    return CacheSettings(user_profile_ttl=60, post_ttl=60, post_replies_ttl=30)


@pytest.fixture
def orchestrator(origin, guard, settings, clock) -> CacheOrchestrator:
    return CacheOrchestrator(origin, guard, settings, clock=clock)


class TestReadPath:
    """coalescer -> store -> origin."""

    @pytest.mark.asyncio
    async def test_alice_scenario(self, origin, store, guard, settings, clock) -> None:
        # Given an empty store and an origin that knows alice
        origin.records[(RecordKind.USER_PROFILE, "alice")] = ALICE
        lookups = Mock(wraps=store.lookup)
        store.lookup = lookups
        orchestrator = CacheOrchestrator(origin, guard, settings, clock=clock)

        # When - first call goes to the origin and writes back
        first = await orchestrator.get(RecordKind.USER_PROFILE, "alice")

        # Then
        assert first == ALICE
        assert len(origin.calls) == 1
        assert lookups.call_count == 1
        row = store.lookup(PersistentKind.USER_PROFILE, "alice")
        assert row is not None and row.payload == ALICE

        # When - second call inside the TTL is served by the coalescer
        lookups.reset_mock()
        second = await orchestrator.get(RecordKind.USER_PROFILE, "alice")

        # Then
        assert second == ALICE
        assert len(origin.calls) == 1
        lookups.assert_not_called()

        # When - third call after expiry is served by the store
        clock.advance(61)
        third = await orchestrator.get(RecordKind.USER_PROFILE, "alice")

        # Then
        assert third == ALICE
        assert len(origin.calls) == 1
        assert lookups.call_count == 1

    @pytest.mark.asyncio
    async def test_persistent_row_preferred_over_origin(self, orchestrator, origin, store) -> None:
        # Given an old row and a different origin value
        store.upsert(PersistentKind.POST, "10", {"id_str": "10", "text": "stored"})
        origin.records[(RecordKind.POST, "10")] = {"id_str": "10", "text": "fresh"}

        # When
        result = await orchestrator.get("post", "10")

        # Then
        assert result == {"id_str": "10", "text": "stored"}
        assert origin.calls == []

    @pytest.mark.asyncio
    async def test_unbacked_kind_skips_store(self, orchestrator, origin, store) -> None:
        origin.records[(RecordKind.USER_TIMELINE, "alice")] = [{"id_str": "1"}]

        result = await orchestrator.get(RecordKind.USER_TIMELINE, "alice")

        assert result == [{"id_str": "1"}]
        assert store.count(PersistentKind.POST) == 0
        assert store.count(PersistentKind.USER_PROFILE) == 0

    @pytest.mark.asyncio
    async def test_degraded_mode_uses_origin(self, origin, unavailable_guard, clock) -> None:
        # Given
        origin.records[(RecordKind.USER_PROFILE, "alice")] = ALICE
        orchestrator = CacheOrchestrator(origin, unavailable_guard, clock=clock)

        # When
        result = await orchestrator.get(RecordKind.USER_PROFILE, "alice")

        # Then
        assert result == ALICE
        assert origin.calls == [(RecordKind.USER_PROFILE, "alice")]

    @pytest.mark.asyncio
    async def test_store_read_error_falls_back_without_flipping_guard(
        self, origin, clock
    ) -> None:
        # Given
        store = Mock()
        store.lookup.side_effect = PersistentStoreError(ErrorCode.STORE_READ_FAILED, "gone")
        guard = AvailabilityGuard(lambda: store)
        origin.records[(RecordKind.USER_PROFILE, "alice")] = ALICE
        orchestrator = CacheOrchestrator(origin, guard, clock=clock)

        # When
        result = await orchestrator.get(RecordKind.USER_PROFILE, "alice")

        # Then
        assert result == ALICE
        assert guard.is_available() is True
        store.insert_if_absent.assert_not_called()

    @pytest.mark.asyncio
    async def test_write_back_failure_does_not_fail_read(self, origin, clock, mocker) -> None:
        # Given
        store = mocker.Mock()
        store.lookup.return_value = None
        store.insert_if_absent.side_effect = PersistentStoreError(ErrorCode.STORE_WRITE_FAILED, "full")
        guard = AvailabilityGuard(lambda: store)
        origin.records[(RecordKind.POST, "5")] = {"id_str": "5"}
        orchestrator = CacheOrchestrator(origin, guard, clock=clock)

        # When
        result = await orchestrator.get(RecordKind.POST, "5")

        # Then
        assert result == {"id_str": "5"}
        store.insert_if_absent.assert_called_once()
        assert orchestrator.get_stats()["coalescers"]["post"]["size"] == 1

    @pytest.mark.asyncio
    async def test_not_found_is_not_cached_or_persisted(self, orchestrator, origin, store) -> None:
        # Given no record at the origin
        # When
        with pytest.raises(NotFoundError):
            await orchestrator.get(RecordKind.USER_PROFILE, "ghost")
        with pytest.raises(NotFoundError):
            await orchestrator.get(RecordKind.USER_PROFILE, "ghost")

        # Then
        assert len(origin.calls) == 2
        assert store.count(PersistentKind.USER_PROFILE) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("empty", [None, {}, []])
    async def test_empty_origin_payload_is_not_found(self, orchestrator, origin, empty) -> None:
        origin.records[(RecordKind.POST_REPLIES, "1")] = empty

        with pytest.raises(NotFoundError):
            await orchestrator.get(RecordKind.POST_REPLIES, "1")

    @pytest.mark.asyncio
    async def test_transient_error_retried_on_next_call(self, orchestrator, origin) -> None:
        # Given
        key = (RecordKind.USER_PROFILE, "alice")
        origin.errors[key] = TransientError(ErrorCode.API_RATE_LIMIT, "slow down")
        origin.records[key] = ALICE

        # When
        with pytest.raises(TransientError):
            await orchestrator.get(RecordKind.USER_PROFILE, "alice")
        del origin.errors[key]
        result = await orchestrator.get(RecordKind.USER_PROFILE, "alice")

        # Then
        assert result == ALICE
        assert len(origin.calls) == 2

    @pytest.mark.asyncio
    async def test_concurrent_reads_single_origin_call(self, orchestrator, origin) -> None:
        # Given
        origin.records[(RecordKind.POST_REPLIES, "7")] = [{"id_str": "8"}]
        origin.gate = asyncio.Event()

        # When
        tasks = [
            asyncio.create_task(orchestrator.get(RecordKind.POST_REPLIES, "7"))
            for _ in range(8)
        ]
        for _ in range(5):
            await asyncio.sleep(0)
        origin.gate.set()
        results = await asyncio.gather(*tasks)

        # Then
        assert len(origin.calls) == 1
        assert all(result == [{"id_str": "8"}] for result in results)

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self, orchestrator) -> None:
        with pytest.raises(DomainError) as exc_info:
            await orchestrator.get("hashtag", "x")

        assert exc_info.value.code == ErrorCode.INVALID_RECORD_KIND

    @pytest.mark.asyncio
    async def test_empty_identifier_rejected(self, orchestrator) -> None:
        with pytest.raises(DomainError) as exc_info:
            await orchestrator.get(RecordKind.POST, "")

        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR


class TestWritePath:
    """Direct writes to the persistent store."""

    @pytest.mark.asyncio
    async def test_put_translated_entities_is_idempotent(self, orchestrator, store) -> None:
        # Given
        entities = [
            {"index": 0, "type": "hashtag", "text": "#hi", "translation": "#salut"},
            TranslationEntity(index=1, type="url", text="https://t.co/x"),
        ]
        expected = [
            {"index": 0, "type": "hashtag", "text": "#hi", "translation": "#salut"},
            {"index": 1, "type": "url", "text": "https://t.co/x"},
        ]

        # When
        await orchestrator.put_translated_entities("100", entities)
        first = store.lookup(PersistentKind.TRANSLATED_ENTITIES, "100")
        await orchestrator.put_translated_entities("100", entities)
        second = store.lookup(PersistentKind.TRANSLATED_ENTITIES, "100")

        # Then
        assert store.count(PersistentKind.TRANSLATED_ENTITIES, "100") == 1
        assert first is not None and second is not None
        assert first.payload == second.payload == expected
        assert await orchestrator.get_translated_entities("100") == expected

    @pytest.mark.asyncio
    async def test_translated_entities_keep_unknown_fields(self, orchestrator) -> None:
        await orchestrator.put_translated_entities(
            "5",
            [{"index": 0, "type": "mention", "screen_name": "bob"}],
        )

        stored = await orchestrator.get_translated_entities("5")

        assert stored == [{"index": 0, "type": "mention", "screen_name": "bob"}]

    @pytest.mark.asyncio
    async def test_invalid_entity_rejected(self, orchestrator, store) -> None:
        with pytest.raises(DomainError) as exc_info:
            await orchestrator.put_translated_entities("1", [{"type": "hashtag"}])

        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert store.count(PersistentKind.TRANSLATED_ENTITIES) == 0

    @pytest.mark.asyncio
    async def test_missing_translated_entities_is_none(self, orchestrator) -> None:
        assert await orchestrator.get_translated_entities("nope") is None

    @pytest.mark.asyncio
    async def test_write_with_store_unavailable_raises(self, origin, unavailable_guard) -> None:
        orchestrator = CacheOrchestrator(origin, unavailable_guard)

        with pytest.raises(TransientError) as exc_info:
            await orchestrator.put_translated_entities("1", [{"index": 0, "type": "url"}])

        assert exc_info.value.code == ErrorCode.RESOURCE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_write_errors_propagate(self, origin, mocker) -> None:
        # Given
        error = PersistentStoreError(ErrorCode.STORE_WRITE_FAILED, "disk full")
        store = mocker.Mock()
        store.upsert.side_effect = error
        orchestrator = CacheOrchestrator(origin, AvailabilityGuard(lambda: store))

        # When / Then
        with pytest.raises(PersistentStoreError) as exc_info:
            await orchestrator.put(PersistentKind.USER_PROFILE, "alice", ALICE)
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_put_evicts_coalesced_copy(self, orchestrator, origin) -> None:
        # Given a coalesced profile
        origin.records[(RecordKind.USER_PROFILE, "alice")] = ALICE
        await orchestrator.get(RecordKind.USER_PROFILE, "alice")

        # When
        updated = {"id": "1", "name": "Alice B."}
        await orchestrator.put("user-profile", "alice", updated)
        result = await orchestrator.get(RecordKind.USER_PROFILE, "alice")

        # Then - served from the store, not the stale coalesced value
        assert result == updated
        assert len(origin.calls) == 1

    @pytest.mark.asyncio
    async def test_put_posts_batch(self, orchestrator, store, origin) -> None:
        # Given
        posts = [
            {"id_str": "1", "user": {"screen_name": "alice"}},
            {"id": 2, "user": {"screen_name": "alice"}},
        ]

        # When
        written = await orchestrator.put_posts(posts)
        result = await orchestrator.get(RecordKind.POST, "2")

        # Then
        assert written == 2
        assert store.count(PersistentKind.POST) == 2
        assert result == {"id": 2, "user": {"screen_name": "alice"}}
        assert origin.calls == []

    @pytest.mark.asyncio
    async def test_put_posts_rejects_post_without_id(self, orchestrator, store) -> None:
        with pytest.raises(DomainError):
            await orchestrator.put_posts([{"id_str": "1"}, {"text": "no id"}])

        assert store.count(PersistentKind.POST) == 0

    @pytest.mark.asyncio
    async def test_non_list_translated_entities_rejected(self, orchestrator, store) -> None:
        with pytest.raises(DomainError) as exc_info:
            await orchestrator.put("translated-entities", "1", {"index": 0, "type": "url"})

        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert store.count(PersistentKind.TRANSLATED_ENTITIES) == 0

    @pytest.mark.asyncio
    async def test_explicit_write_during_origin_fetch_is_kept(
        self, orchestrator, origin, store
    ) -> None:
        # Given a read waiting on the origin after a store miss
        origin.records[(RecordKind.POST, "10")] = {"id_str": "10", "text": "origin"}
        origin.gate = asyncio.Event()
        read = asyncio.create_task(orchestrator.get(RecordKind.POST, "10"))
        await asyncio.wait_for(_wait_until(lambda: origin.calls), timeout=5)

        # When an explicit write lands before the origin answers
        await orchestrator.put(PersistentKind.POST, "10", {"id_str": "10", "text": "explicit"})
        origin.gate.set()
        await read

        # Then
        row = store.lookup(PersistentKind.POST, "10")
        assert row is not None
        assert row.payload["text"] == "explicit"
        result = await orchestrator.get(RecordKind.POST, "10")
        assert result["text"] == "explicit"
        assert len(origin.calls) == 1

    def test_post_identifier_prefers_id_str(self) -> None:
        assert post_identifier({"id_str": "9", "id": 8}) == "9"
        assert post_identifier({"id": 8}) == "8"


class TestPostWithTranslations:
    """Posts overlaid with their stored translated entities."""

    POST = {
        "id_str": "5",
        "text": "hi #x",
        "entities": [
            {"index": 0, "type": "text", "text": "hi "},
            {"index": 1, "type": "hashtag", "text": "#x"},
        ],
    }

    @pytest.mark.asyncio
    async def test_translations_merged_by_index(self, orchestrator, origin) -> None:
        # Given
        origin.records[(RecordKind.POST, "5")] = self.POST
        await orchestrator.put_translated_entities(
            "5",
            [
                {"index": 1, "type": "hashtag", "translation": "#y"},
                {"index": 9, "type": "media_alt", "translation": "a cat"},
            ],
        )

        # When
        merged = await orchestrator.get_post_with_translations("5")
        plain = await orchestrator.get(RecordKind.POST, "5")

        # Then
        assert merged["entities"] == [
            {"index": 0, "type": "text", "text": "hi "},
            {"index": 1, "type": "hashtag", "text": "#x", "translation": "#y"},
            {"index": 9, "type": "media_alt", "translation": "a cat"},
        ]
        assert len(plain["entities"]) == 2
        assert "translation" not in plain["entities"][1]
        assert len(origin.calls) == 1

    @pytest.mark.asyncio
    async def test_post_without_translations_unchanged(self, orchestrator, origin) -> None:
        origin.records[(RecordKind.POST, "5")] = self.POST

        result = await orchestrator.get_post_with_translations("5")

        assert result == self.POST

    @pytest.mark.asyncio
    async def test_translation_lookup_error_serves_plain_post(self, origin, clock, mocker) -> None:
        # Given a store that fails only for translated entities
        def lookup(kind, identifier):
            if kind is PersistentKind.TRANSLATED_ENTITIES:
                raise PersistentStoreError(ErrorCode.STORE_READ_FAILED, "gone")
            return None

        store = mocker.Mock()
        store.lookup.side_effect = lookup
        store.insert_if_absent.return_value = True
        guard = AvailabilityGuard(lambda: store)
        origin.records[(RecordKind.POST, "5")] = self.POST
        orchestrator = CacheOrchestrator(origin, guard, clock=clock)

        # When
        result = await orchestrator.get_post_with_translations("5")

        # Then
        assert result == self.POST
        assert guard.is_available() is True

    @pytest.mark.asyncio
    async def test_degraded_mode_serves_plain_post(self, origin, unavailable_guard, clock) -> None:
        origin.records[(RecordKind.POST, "5")] = self.POST
        orchestrator = CacheOrchestrator(origin, unavailable_guard, clock=clock)

        result = await orchestrator.get_post_with_translations("5")

        assert result == self.POST

    @pytest.mark.asyncio
    async def test_missing_post_raises_not_found(self, orchestrator) -> None:
        with pytest.raises(NotFoundError):
            await orchestrator.get_post_with_translations("404")

    def test_merge_keeps_first_entity_per_index(self) -> None:
        post = {"entities": [{"index": 0, "text": "a"}, {"index": 0, "text": "b"}]}

        merged = merge_translations(post, [{"index": 0, "translation": "A"}])

        assert merged["entities"] == [
            {"index": 0, "text": "a", "translation": "A"},
            {"index": 0, "text": "b"},
        ]
        assert "translation" not in post["entities"][0]

    def test_merge_leaves_non_mapping_post(self) -> None:
        assert merge_translations(["x"], [{"index": 0, "translation": "y"}]) == ["x"]


class TestMaintenance:
    """Invalidation, expiry, stats and shutdown."""

    @pytest.mark.asyncio
    async def test_invalidate_and_purge(self, orchestrator, origin, clock) -> None:
        origin.records[(RecordKind.POST_REPLIES, "1")] = [{"id": 2}]
        origin.records[(RecordKind.USER_TIMELINE, "bob")] = [{"id": 3}]
        await orchestrator.get(RecordKind.POST_REPLIES, "1")
        await orchestrator.get(RecordKind.USER_TIMELINE, "bob")

        assert orchestrator.invalidate(RecordKind.USER_TIMELINE, "bob") is True
        clock.advance(31)
        assert orchestrator.purge_expired() == 1

        stats = orchestrator.get_stats()
        assert stats["persistent_available"] is True
        assert stats["coalescers"]["post-replies"]["size"] == 0

    @pytest.mark.asyncio
    async def test_aclose_releases_resources(self, origin, clock, mocker) -> None:
        store = mocker.Mock()
        guard = AvailabilityGuard(lambda: store)
        guard.is_available()
        orchestrator = CacheOrchestrator(origin, guard, clock=clock)

        await orchestrator.aclose()

        assert origin.closed is True
        store.close.assert_called_once()
