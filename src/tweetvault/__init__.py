"""TweetVault - tiered fetch-coalescing cache for social records."""

__version__ = "0.1.0"
