"""Persistent store schema module."""

from tweetvault.services.persistent_store.migration.manager import MigrationManager

__all__ = ["MigrationManager"]
