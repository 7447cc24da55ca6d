"""Persistent record models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .cache import PersistentKind

__all__ = ["PersistentRow", "TranslationEntity"]


@dataclass(frozen=True)
class PersistentRow:
    """A row read back from the persistent store.

    Attributes:
        kind: Table the row came from
        identifier: Unique key (post id or username)
        payload: Decoded JSON payload
        created_at: When the row was first written
        updated_at: When the payload was last replaced
    """

    kind: PersistentKind
    identifier: str
    payload: Any
    created_at: datetime
    updated_at: datetime

    @property
    def has_payload(self) -> bool:
        """False for None and empty containers."""
        return not (self.payload is None or self.payload in ({}, []))


class TranslationEntity(BaseModel):
    """A translated entity of a post (hashtag, mention, url, ...).

    Unknown fields are kept as-is so the stored set round-trips whatever
    the translator produced.
    """

    model_config = ConfigDict(extra="allow")

    index: int = Field(ge=0, description="Position of the entity in the post")
    type: str = Field(min_length=1, description="Entity type")
    text: str | None = Field(default=None, description="Original entity text")
    translation: str | None = Field(default=None, description="Translated text")
