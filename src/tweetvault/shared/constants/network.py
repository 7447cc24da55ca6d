"""
Network Configuration Constants

Defaults for talking to the origin API: timeouts, rate limiting,
concurrency, and the request path of each record kind.
"""


class NetworkConfig:
    """Origin request defaults."""

    DEFAULT_TIMEOUT = 30.0
    DEFAULT_CONNECT_TIMEOUT = 15.0

    # Token bucket
    DEFAULT_TOKEN_BUCKET_CAPACITY = 10
    DEFAULT_TOKEN_REFILL_RATE = 10.0
    TOKEN_POLL_INTERVAL = 0.1

    # Concurrency
    DEFAULT_CONCURRENT_REQUESTS = 4
    DEFAULT_MAX_KEEPALIVE = 5


class OriginPaths:
    """Default request path templates, keyed by record kind value."""

    POST = "/tweet/{id}"
    POST_REPLIES = "/tweet/{id}/replies"
    USER_TIMELINE = "/user/{id}/timeline"
    USER_PROFILE = "/user/{id}"

    @classmethod
    def defaults(cls) -> dict[str, str]:
        """Return the default templates keyed by record kind value."""
        return {
            "post": cls.POST,
            "post-replies": cls.POST_REPLIES,
            "user-timeline": cls.USER_TIMELINE,
            "user-profile": cls.USER_PROFILE,
        }


class HTTPStatus:
    """HTTP status codes the origin client maps to errors."""

    NOT_FOUND = 404
    TOO_MANY_REQUESTS = 429
    CLIENT_ERROR_MIN = 400
    SERVER_ERROR_MIN = 500
