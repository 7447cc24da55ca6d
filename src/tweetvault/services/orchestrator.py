"""Cache orchestration between the coalescer, persistent store and origin.

Read path: coalescer -> persistent store -> origin, with a best-effort
write-back of origin results. Write path: straight to the persistent
store, evicting any coalesced copy of the written record.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from tweetvault.config.models import CacheSettings
from tweetvault.services.coalescer import RequestCoalescer
from tweetvault.shared.constants import EntityTypes
from tweetvault.shared.errors import (
    ErrorCode,
    ErrorContext,
    InfrastructureError,
    TransientError,
    TweetVaultError,
    create_not_found_error,
    create_validation_error,
)
from tweetvault.shared.logging import (
    log_cache_event,
    log_operation_error,
    log_operation_start,
    log_operation_success,
)
from tweetvault.shared.models import (
    CacheKey,
    PersistentKind,
    RecordKind,
    TranslationEntity,
)

if TYPE_CHECKING:
    from tweetvault.services.availability import AvailabilityGuard
    from tweetvault.services.origin import OriginClient
    from tweetvault.services.persistent_store import PersistentStore

logger = logging.getLogger(__name__)


def is_empty_payload(payload: Any) -> bool:
    """True for None, {} and []."""
    return payload is None or payload == {} or payload == []


def post_identifier(post: Mapping[str, Any]) -> str:
    """Identifier of a post payload: ``id_str`` if present, else ``id``.

    Raises:
        DomainError: If the post carries neither
    """
    for field in ("id_str", "id"):
        value = post.get(field)
        if value is not None and str(value):
            return str(value)
    raise create_validation_error(
        "Post payload has neither 'id_str' nor 'id'",
        field="id_str",
        operation="post_identifier",
    )


def translated_entity_payload(entities: Any, operation: str) -> list[dict[str, Any]]:
    """Validate a translated-entity set and dump it for storage.

    Raises:
        DomainError: If entities is not a sequence of valid entities
    """
    if isinstance(entities, (str, bytes, Mapping)) or not isinstance(entities, Iterable):
        raise create_validation_error(
            f"Translated entities must be a list, got {type(entities).__name__}",
            field="entities",
            operation=operation,
        )

    try:
        validated = [
            entity
            if isinstance(entity, TranslationEntity)
            else TranslationEntity.model_validate(entity)
            for entity in entities
        ]
    except ValidationError as e:
        raise create_validation_error(
            f"Invalid translated entity: {e.error_count()} error(s)",
            field="entities",
            operation=operation,
            original_error=e,
        ) from e

    return [entity.model_dump(exclude_none=True) for entity in validated]


def merge_translations(post: Any, entities: Iterable[Mapping[str, Any]]) -> Any:
    """Overlay a stored translated-entity set onto a copy of a post payload.

    Each stored entity whose ``index`` matches one of the post's entities
    sets that entity's ``translation``; ``media_alt`` entities are also
    appended to the post's entity list. Entities are otherwise copied as
    they are. The given post is not modified.
    """
    if not isinstance(post, Mapping):
        return post

    merged = copy.deepcopy(dict(post))
    existing = merged.get("entities")
    post_entities: list[Any] = existing if isinstance(existing, list) else []

    by_index: dict[Any, dict[str, Any]] = {}
    for entity in post_entities:
        if isinstance(entity, dict):
            by_index.setdefault(entity.get("index"), entity)

    appended: list[dict[str, Any]] = []
    for entity in entities:
        target = by_index.get(entity.get("index"))
        if target is not None:
            target["translation"] = entity.get("translation")
        if entity.get("type") == EntityTypes.MEDIA_ALT:
            appended.append(copy.deepcopy(dict(entity)))

    if appended:
        merged["entities"] = [*post_entities, *appended]
    return merged


class ReadThroughFetcher:
    """Coalescer fetcher for one record kind.

    Tries the persistent store first when the kind has persistent backing
    and the store is available, then the origin. An origin result for a
    missing row is written back only if the row is still missing, so an
    explicit write made during the fetch is kept. A failed write-back is
    logged and the value is still returned.
    """

    def __init__(
        self,
        kind: RecordKind,
        origin: OriginClient,
        guard: AvailabilityGuard,
    ) -> None:
        self.kind = kind
        self.persistent_kind = kind.persistent_kind
        self._origin = origin
        self._guard = guard

    async def fetch(self, key: CacheKey) -> Any:
        store = self._store()
        row_missing = False

        if store is not None and self.persistent_kind is not None:
            try:
                row = await asyncio.to_thread(store.lookup, self.persistent_kind, key.identifier)
            except InfrastructureError as e:
                # Unavailable for this call only
                self._log_store_error(e, "persistent_lookup", key)
                store = None
            else:
                if row is not None and row.has_payload:
                    log_cache_event(logger, "store_hit", str(key))
                    return row.payload
                row_missing = True
                log_cache_event(logger, "store_miss", str(key))

        payload = await self._origin.fetch(self.kind, key.identifier)
        if is_empty_payload(payload):
            raise create_not_found_error(
                self.kind.value,
                key.identifier,
                operation="origin_fetch",
            )

        if store is not None and row_missing and self.persistent_kind is not None:
            await self._write_back(store, self.persistent_kind, key, payload)

        return payload

    def _store(self) -> PersistentStore | None:
        if self.persistent_kind is None or not self._guard.is_available():
            return None
        return self._guard.store

    async def _write_back(
        self,
        store: PersistentStore,
        kind: PersistentKind,
        key: CacheKey,
        payload: Any,
    ) -> None:
        try:
            inserted = await asyncio.to_thread(
                store.insert_if_absent,
                kind,
                key.identifier,
                payload,
            )
        except TweetVaultError as e:
            self._log_store_error(e, "write_back", key)
        else:
            log_cache_event(logger, "write_back" if inserted else "write_back_skipped", str(key))

    @staticmethod
    def _log_store_error(error: TweetVaultError, operation: str, key: CacheKey) -> None:
        log_operation_error(
            logger=logger,
            error=error,
            operation=operation,
            additional_context={"cache_key": str(key)},
            level=logging.WARNING,
        )


class CacheOrchestrator:
    """Entry point for reading and writing records through the cache tiers.

    Owns one RequestCoalescer and one ReadThroughFetcher per record kind.
    Reads prefer a persisted row over a fresh origin fetch; rows are
    returned as stored, however old.

    Args:
        origin: Origin client
        guard: Persistent store availability guard
        cache_settings: TTLs and sweep interval; defaults when omitted
        clock: Monotonic time source shared by the coalescers
    """

    def __init__(
        self,
        origin: OriginClient,
        guard: AvailabilityGuard,
        cache_settings: CacheSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = cache_settings or CacheSettings()
        self._origin = origin
        self._guard = guard
        self._coalescers: dict[RecordKind, RequestCoalescer] = {
            kind: RequestCoalescer(
                ttl=settings.ttl_for(kind),
                sweep_interval=settings.sweep_interval,
                clock=clock,
                name=kind.value,
            )
            for kind in RecordKind
        }
        self._fetchers: dict[RecordKind, ReadThroughFetcher] = {
            kind: ReadThroughFetcher(kind, origin, guard) for kind in RecordKind
        }

    def coalescer(self, kind: RecordKind) -> RequestCoalescer:
        return self._coalescers[kind]

    async def get(
        self,
        kind: RecordKind | str,
        identifier: str,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Read a record through the cache tiers.

        Args:
            kind: Record kind
            identifier: Post id or username (compared exactly)
            timeout: Seconds this caller is willing to wait

        Returns:
            The record payload

        Raises:
            NotFoundError: The origin has no such record
            TransientError: Retryable origin failure or caller timeout
            DomainError: Unknown kind or empty identifier
        """
        record_kind = RecordKind.parse(kind)
        self._validate_identifier(identifier, "get")
        key = CacheKey(record_kind, identifier)

        start_time = time.time()
        value = await self._coalescers[record_kind].get(
            key,
            self._fetchers[record_kind],
            timeout=timeout,
        )
        log_operation_success(
            logger=logger,
            operation="cache_get",
            duration_ms=(time.time() - start_time) * 1000,
            context={"cache_key": str(key)},
        )
        return value

    async def put(
        self,
        kind: PersistentKind | str,
        identifier: str,
        payload: Any,
    ) -> None:
        """Write a row straight to the persistent store.

        Bypasses the coalescer, then evicts any coalesced copy of the
        same record so the next read sees the new payload. A
        translated-entities payload must be a list of valid entities.

        Raises:
            DomainError: Invalid translated-entities payload
            TransientError: RESOURCE_UNAVAILABLE when the store is unavailable
            PersistentStoreError: The write failed
        """
        persistent_kind = PersistentKind.parse(kind)
        self._validate_identifier(identifier, "put")
        if persistent_kind is PersistentKind.TRANSLATED_ENTITIES:
            payload = translated_entity_payload(payload, "put")
        store = self._require_store("put")

        await asyncio.to_thread(store.upsert, persistent_kind, identifier, payload)
        self._evict(persistent_kind, identifier)

    async def put_translated_entities(
        self,
        post_id: str,
        entities: Iterable[TranslationEntity | Mapping[str, Any]],
    ) -> None:
        """Replace the stored translated entities of a post.

        Raises:
            DomainError: An entity failed validation
            TransientError: The store is unavailable or the write failed
        """
        await self.put(PersistentKind.TRANSLATED_ENTITIES, post_id, entities)

    async def get_translated_entities(self, post_id: str) -> list[dict[str, Any]] | None:
        """Return the stored translated entities of a post, or None.

        Raises:
            TransientError: The store is unavailable or the read failed
        """
        self._validate_identifier(post_id, "get_translated_entities")
        store = self._require_store("get_translated_entities")

        row = await asyncio.to_thread(
            store.lookup,
            PersistentKind.TRANSLATED_ENTITIES,
            post_id,
        )
        if row is None:
            return None
        return row.payload

    async def get_post_with_translations(
        self,
        post_id: str,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Read a post and overlay its stored translated entities.

        The post is read through the cache tiers like ``get``. The merged
        result is built on a copy and is never cached; without a stored
        set, or when the store is unavailable or fails, the post is
        returned as read.

        Raises:
            NotFoundError: The origin has no such post
            TransientError: Retryable origin failure or caller timeout
        """
        post = await self.get(RecordKind.POST, post_id, timeout=timeout)

        entities = await self._stored_translations(post_id)
        if not entities:
            return post
        return merge_translations(post, entities)

    async def _stored_translations(self, post_id: str) -> list[dict[str, Any]] | None:
        store = self._guard.store
        if store is None:
            return None

        try:
            row = await asyncio.to_thread(
                store.lookup,
                PersistentKind.TRANSLATED_ENTITIES,
                post_id,
            )
        except InfrastructureError as e:
            log_operation_error(
                logger=logger,
                error=e,
                operation="lookup_translations",
                additional_context={"post_id": post_id},
                level=logging.WARNING,
            )
            return None

        if row is None or not isinstance(row.payload, list):
            return None
        return [entity for entity in row.payload if isinstance(entity, Mapping)]

    async def put_posts(self, posts: Iterable[Mapping[str, Any]]) -> int:
        """Upsert several post payloads in one transaction.

        Returns:
            Number of posts written

        Raises:
            DomainError: A post carries no identifier
            TransientError: The store is unavailable or the batch failed
        """
        items = [(post_identifier(post), dict(post)) for post in posts]
        if not items:
            return 0

        store = self._require_store("put_posts")
        log_operation_start(logger, "put_posts", {"count": len(items)})
        written = await asyncio.to_thread(store.upsert_many, PersistentKind.POST, items)

        for identifier, _ in items:
            self._evict(PersistentKind.POST, identifier)
        return written

    def invalidate(self, kind: RecordKind | str, identifier: str) -> bool:
        """Drop the coalesced entry for a record; the store is untouched."""
        record_kind = RecordKind.parse(kind)
        return self._coalescers[record_kind].invalidate(CacheKey(record_kind, identifier))

    def purge_expired(self) -> int:
        """Remove expired entries from every coalescer."""
        return sum(coalescer.purge_expired() for coalescer in self._coalescers.values())

    def get_stats(self) -> dict[str, Any]:
        return {
            "persistent_available": self._guard.is_available(),
            "coalescers": {
                kind.value: coalescer.get_stats() for kind, coalescer in self._coalescers.items()
            },
        }

    async def aclose(self) -> None:
        """Cancel in-flight fetches and release the origin and store."""
        for coalescer in self._coalescers.values():
            await coalescer.aclose()
        await self._origin.aclose()
        await asyncio.to_thread(self._guard.close)

    def _evict(self, kind: PersistentKind, identifier: str) -> None:
        record_kind = kind.record_kind
        if record_kind is not None:
            self._coalescers[record_kind].invalidate(CacheKey(record_kind, identifier))

    def _require_store(self, operation: str) -> PersistentStore:
        store = self._guard.store
        if store is None:
            raise TransientError(
                ErrorCode.RESOURCE_UNAVAILABLE,
                "Persistent store is not available",
                ErrorContext(operation=operation),
            )
        return store

    @staticmethod
    def _validate_identifier(identifier: str, operation: str) -> None:
        if not isinstance(identifier, str) or not identifier:
            raise create_validation_error(
                "Identifier must be a non-empty string",
                field="identifier",
                operation=operation,
            )
