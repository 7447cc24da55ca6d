"""Origin API configuration model."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from tweetvault.shared.constants import NetworkConfig, OriginPaths
from tweetvault.shared.models import RecordKind


class OriginSettings(BaseModel):
    """Origin API configuration.

    Security: api_token is masked in __repr__ so settings can be logged.
    """

    base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the origin API",
    )
    api_token: str = Field(
        default="",
        repr=False,
        description="Bearer token sent to the origin (optional)",
    )
    timeout: float = Field(
        default=NetworkConfig.DEFAULT_TIMEOUT,
        gt=0,
        description="Request timeout in seconds",
    )
    rate_limit_rps: float = Field(
        default=NetworkConfig.DEFAULT_TOKEN_REFILL_RATE,
        gt=0,
        description="Rate limit in requests per second",
    )
    rate_limit_burst: int = Field(
        default=NetworkConfig.DEFAULT_TOKEN_BUCKET_CAPACITY,
        gt=0,
        description="Token bucket capacity",
    )
    concurrent_requests: int = Field(
        default=NetworkConfig.DEFAULT_CONCURRENT_REQUESTS,
        gt=0,
        description="Maximum number of concurrent origin requests",
    )
    paths: dict[str, str] = Field(
        default_factory=OriginPaths.defaults,
        description="Request path template per record kind; '{id}' is substituted",
    )

    @field_validator("paths")
    @classmethod
    def _validate_paths(cls, value: dict[str, str]) -> dict[str, str]:
        merged = OriginPaths.defaults()
        for kind, template in value.items():
            if kind not in merged:
                msg = f"unknown record kind in paths: {kind!r}"
                raise ValueError(msg)
            if "{id}" not in template:
                msg = f"path template for {kind!r} must contain '{{id}}'"
                raise ValueError(msg)
            merged[kind] = template
        return merged

    def path_for(self, kind: RecordKind) -> str:
        """Return the path template for a record kind."""
        return self.paths[kind.value]

    def __repr__(self) -> str:
        masked_token = "****" if self.api_token else "[empty]"
        return (
            f"OriginSettings("
            f"base_url={self.base_url!r}, "
            f"api_token={masked_token}, "
            f"timeout={self.timeout}, "
            f"rate_limit_rps={self.rate_limit_rps}, "
            f"concurrent_requests={self.concurrent_requests})"
        )


__all__ = ["OriginSettings"]
