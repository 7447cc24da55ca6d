"""
Cache Configuration Constants

Default time-to-live values for the in-process coalescer and the table
names of the persistent store.
"""

# Base time units for TTL calculations
BASE_SECOND = 1
BASE_MINUTE = 60 * BASE_SECOND
BASE_HOUR = 60 * BASE_MINUTE


class CoalescerDefaults:
    """Default TTLs for coalesced reads, per record kind."""

    POST_TTL = BASE_HOUR
    POST_REPLIES_TTL = 5 * BASE_MINUTE
    USER_TIMELINE_TTL = 5 * BASE_MINUTE
    USER_PROFILE_TTL = BASE_HOUR

    # Expired ready entries are swept at most this often
    SWEEP_INTERVAL = 5 * BASE_MINUTE


class PersistentTables:
    """Persistent store table names."""

    POST = "tweet"
    USER_PROFILE = "tweet_user"
    TRANSLATED_ENTITIES = "tweet_entities"
    SCHEMA_VERSION = "schema_version"

    SCHEMA_VERSION_CURRENT = 1


class EntityTypes:
    """Translated entity types with special merge handling."""

    # Alt text of attached media; appended to the post rather than matched
    MEDIA_ALT = "media_alt"
