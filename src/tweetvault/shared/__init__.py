"""Shared utilities, models, and constants for TweetVault."""
