"""Persistent store transaction module."""

from tweetvault.services.persistent_store.transaction.manager import TransactionManager

__all__ = ["TransactionManager"]
