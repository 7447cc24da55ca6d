"""TweetVault Error Handling Module

This module defines the error handling system for TweetVault, providing
structured error classes with context information for logging and callers.

The error hierarchy follows these principles:
- One Source of Truth: All error codes are defined in ErrorCode enum
- Structured Context: ErrorContext provides additional information
- Cacheability is encoded in the type: NotFoundError and TransientError are
  never cached, ConfigurationError never reaches a request caller
- Proper Exception Chaining: Original exceptions are preserved
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Union

# Type alias for primitive context values (str, int, float, bool only)
PrimitiveContextValue = Union[str, int, float, bool]

# Default keys to mask in safe_dict for PII protection
SAFE_DICT_MASK_KEYS: tuple[str, ...] = ("user_id",)


class ErrorCode(str, Enum):
    """Error codes for TweetVault.

    This enum serves as the single source of truth for all error codes
    used throughout the package.
    """

    # Record lookup
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"

    # Network and origin API errors
    NETWORK_ERROR = "NETWORK_ERROR"
    API_RATE_LIMIT = "API_RATE_LIMIT"
    API_REQUEST_FAILED = "API_REQUEST_FAILED"
    API_TIMEOUT = "API_TIMEOUT"
    API_SERVER_ERROR = "API_SERVER_ERROR"
    API_INVALID_RESPONSE = "API_INVALID_RESPONSE"

    # Persistent store errors
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    STORE_READ_FAILED = "STORE_READ_FAILED"
    STORE_WRITE_FAILED = "STORE_WRITE_FAILED"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_RECORD_KIND = "INVALID_RECORD_KIND"

    # Configuration errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Concurrency and lifecycle errors
    CONCURRENCY_ERROR = "CONCURRENCY_ERROR"
    RESOURCE_UNAVAILABLE = "RESOURCE_UNAVAILABLE"
    OPERATION_CANCELLED = "OPERATION_CANCELLED"
    OPERATION_TIMEOUT = "OPERATION_TIMEOUT"


def _coerce_primitives(value: Any | None) -> dict[str, PrimitiveContextValue] | None:
    """Coerce additional_data values to primitives.

    Converts Path, Enum, Decimal to primitive types.

    Args:
        value: Input dictionary or None

    Returns:
        Dictionary with primitive values only, or None

    Raises:
        TypeError: If value is not a dict or contains unconvertible types
    """
    if value is None:
        return None

    if not isinstance(value, dict):
        error_msg = f"additional_data must be dict, got {type(value).__name__}"
        raise TypeError(error_msg)

    coerced: dict[str, PrimitiveContextValue] = {}
    for key, val in value.items():
        if isinstance(val, (str, int, float, bool)):
            coerced[key] = val
        elif isinstance(val, Path):
            coerced[key] = str(val)
        elif isinstance(val, Enum):
            coerced[key] = val.value
        elif isinstance(val, Decimal):
            coerced[key] = float(val)
        else:
            error_msg = (
                f"Cannot coerce {type(val).__name__} to primitive type. "
                f"Only str, int, float, bool, Path, Enum, Decimal are allowed."
            )
            raise TypeError(error_msg)

    return coerced


@dataclass(frozen=True)
class ErrorContext:
    """Context information for errors.

    Only primitive types (str, int, float, bool) are allowed in
    additional_data so that the context is always safe to serialize.

    Attributes:
        operation: Optional operation name that caused the error
        cache_key: Optional cache key ("kind:identifier") involved
        user_id: Optional user ID (masked in safe_dict)
        additional_data: Optional dict with primitive values only
    """

    operation: str | None = None
    cache_key: str | None = None
    user_id: str | None = None
    additional_data: dict[str, PrimitiveContextValue] | None = None

    def __post_init__(self) -> None:
        """Coerce additional_data to primitives."""
        if self.additional_data is not None:
            coerced = _coerce_primitives(self.additional_data)
            object.__setattr__(self, "additional_data", coerced)

    def safe_dict(self, *, mask_keys: tuple[str, ...] | None = None) -> dict[str, Any]:
        """Export context as dict with PII masking.

        Args:
            mask_keys: Fields to exclude from output. Defaults to SAFE_DICT_MASK_KEYS.

        Returns:
            Dictionary with masked sensitive fields and guaranteed additional_data key.

        Example:
            >>> ErrorContext(user_id="12345", operation="get").safe_dict()
            {'operation': 'get', 'additional_data': {}}
        """
        if mask_keys is None:
            mask_keys = SAFE_DICT_MASK_KEYS

        data: dict[str, Any] = {}
        if self.operation is not None and "operation" not in mask_keys:
            data["operation"] = self.operation
        if self.cache_key is not None and "cache_key" not in mask_keys:
            data["cache_key"] = self.cache_key
        if self.user_id is not None and "user_id" not in mask_keys:
            data["user_id"] = self.user_id

        if self.additional_data is not None and "additional_data" not in mask_keys:
            data["additional_data"] = self.additional_data
        else:
            data["additional_data"] = {}

        return data


class TweetVaultError(Exception):
    """Base exception class for all TweetVault errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        """Initialize TweetVaultError.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            context: Additional context information
            original_error: Original exception that caused this error
        """
        self.code = code
        self.message = message
        self.context = context or ErrorContext()
        self.original_error = original_error

        super().__init__(f"{code.value}: {message}")

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging with PII masking."""
        return {
            "code": self.code.value,
            "message": self.message,
            "context": self.context.safe_dict(),
            "original_error": str(self.original_error) if self.original_error else None,
        }


class DomainError(TweetVaultError):
    """Domain-specific errors.

    Raised when a record or request violates a domain rule, e.g. an
    unknown record kind or a malformed translated entity.
    """


class InfrastructureError(TweetVaultError):
    """Infrastructure-related errors.

    Raised when interacting with external systems: the origin API,
    the network, or the persistent store.
    """


class ApplicationError(TweetVaultError):
    """Application-level errors (configuration, wiring, lifecycle)."""


class NotFoundError(DomainError):
    """The origin confirmed that the requested record does not exist.

    Terminal: never retried, never cached, never persisted.
    """


class TransientError(InfrastructureError):
    """A failure that is safe to retry later.

    Covers network failures, origin rate limiting and server errors,
    timeouts, and persistent store unavailability. Never cached.

    Attributes:
        retry_after: Seconds suggested by the origin before retrying, if known
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: BaseException | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(code, message, context, original_error)
        self.retry_after = retry_after


class PersistentStoreError(TransientError):
    """The persistent store failed for this call.

    Read paths treat this as "store unavailable for this call" and fall
    back to the origin; write paths surface it to the caller.
    """


class ConfigurationError(ApplicationError):
    """The persistent store or another component is misconfigured.

    Raised while probing at startup; it makes the availability guard
    report the store as unavailable and never reaches a request caller.
    """


def create_not_found_error(
    kind: str,
    identifier: str,
    operation: str | None = None,
    original_error: BaseException | None = None,
) -> NotFoundError:
    """Create a not-found error for a (kind, identifier) pair."""
    context = ErrorContext(
        operation=operation,
        cache_key=f"{kind}:{identifier}",
    )
    return NotFoundError(
        ErrorCode.RECORD_NOT_FOUND,
        f"Record not found: {kind} {identifier!r}",
        context,
        original_error,
    )


def create_transient_error(
    code: ErrorCode,
    message: str,
    operation: str | None = None,
    cache_key: str | None = None,
    original_error: BaseException | None = None,
    retry_after: float | None = None,
) -> TransientError:
    """Create a retryable error with context."""
    context = ErrorContext(
        operation=operation,
        cache_key=cache_key,
    )
    return TransientError(
        code,
        message,
        context,
        original_error,
        retry_after=retry_after,
    )


def create_validation_error(
    message: str,
    field: str | None = None,
    operation: str | None = None,
    original_error: BaseException | None = None,
) -> DomainError:
    """Create a validation error with context."""
    additional_data: dict[str, PrimitiveContextValue] | None = (
        {"field": field} if field else None
    )
    context = ErrorContext(
        operation=operation,
        additional_data=additional_data,
    )
    return DomainError(
        ErrorCode.VALIDATION_ERROR,
        message,
        context,
        original_error,
    )


def create_config_error(
    message: str,
    config_key: str | None = None,
    operation: str | None = None,
    original_error: BaseException | None = None,
) -> ConfigurationError:
    """Create a configuration error with context."""
    additional_data: dict[str, PrimitiveContextValue] | None = (
        {"config_key": config_key} if config_key else None
    )
    context = ErrorContext(
        operation=operation,
        additional_data=additional_data,
    )
    return ConfigurationError(
        ErrorCode.CONFIGURATION_ERROR,
        message,
        context,
        original_error,
    )
