"""Persistent store operations module.

Separate operation classes for querying and upserting rows.
"""

from tweetvault.services.persistent_store.operations.query import QueryOperations
from tweetvault.services.persistent_store.operations.upsert import UpsertOperations, post_owner

__all__ = ["QueryOperations", "UpsertOperations", "post_owner"]
