"""Cache configuration model.

This module contains the cache configuration model: per-kind TTLs of
the in-process coalescer and the persistent store switch and location.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from tweetvault.shared.constants import CoalescerDefaults
from tweetvault.shared.models import RecordKind


class CacheSettings(BaseModel):
    """Cache configuration.

    TTLs are in seconds and apply to the in-process layer only; rows in
    the persistent store never expire.
    """

    post_ttl: float = Field(
        default=CoalescerDefaults.POST_TTL,
        gt=0,
        description="TTL of coalesced post reads",
    )
    post_replies_ttl: float = Field(
        default=CoalescerDefaults.POST_REPLIES_TTL,
        gt=0,
        description="TTL of coalesced reply-thread reads",
    )
    user_timeline_ttl: float = Field(
        default=CoalescerDefaults.USER_TIMELINE_TTL,
        gt=0,
        description="TTL of coalesced timeline reads",
    )
    user_profile_ttl: float = Field(
        default=CoalescerDefaults.USER_PROFILE_TTL,
        gt=0,
        description="TTL of coalesced profile reads",
    )
    sweep_interval: float = Field(
        default=CoalescerDefaults.SWEEP_INTERVAL,
        gt=0,
        description="Minimum seconds between opportunistic expiry sweeps",
    )
    persistent_enabled: bool = Field(
        default=True,
        description="Use the persistent store when it is reachable",
    )
    db_path: str | None = Field(
        default=None,
        description="SQLite database path; no persistent store when unset",
    )

    def ttl_for(self, kind: RecordKind) -> float:
        """Return the configured TTL for a record kind."""
        return {
            RecordKind.POST: self.post_ttl,
            RecordKind.POST_REPLIES: self.post_replies_ttl,
            RecordKind.USER_TIMELINE: self.user_timeline_ttl,
            RecordKind.USER_PROFILE: self.user_profile_ttl,
        }[kind]


__all__ = ["CacheSettings"]
