"""Origin API access."""

from tweetvault.services.origin.client import HttpOriginClient, OriginClient

__all__ = ["HttpOriginClient", "OriginClient"]
