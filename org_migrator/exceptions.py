"""Error taxonomy for the migration engine."""

import re
from typing import Iterable, List, Optional

# Remote error codes treated as transient when a caller has no retry policy of its own
DEFAULT_RETRYABLE_CODES = (
    "UNABLE_TO_LOCK_ROW",
    "REQUEST_LIMIT_EXCEEDED",
    "SERVER_UNAVAILABLE",
    "TIMEOUT",
)

AUTH_ERROR_PATTERNS = [
    re.compile(r"invalid_grant", re.IGNORECASE),
    re.compile(r"INVALID_SESSION_ID"),
    re.compile(r"TOKEN_EXPIRED"),
    re.compile(r"expired access/refresh token", re.IGNORECASE),
    re.compile(r"session expired or invalid", re.IGNORECASE),
    re.compile(r"INVALID_AUTH_HEADER"),
    re.compile(r"authentication failure", re.IGNORECASE),
]


class MigrationError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(MigrationError):
    """Malformed template or engine configuration.

    Raised before any org access and never retried.
    """


class SchemaResolutionError(MigrationError):
    """The target org is missing an expected field or record type."""

    def __init__(self, message: str, object_name: Optional[str] = None, field_name: Optional[str] = None):
        super().__init__(message)
        self.object_name = object_name
        self.field_name = field_name


class ConcurrencyError(MigrationError):
    """A run was started while another run is still active."""


class LookupCacheConflictError(MigrationError):
    """A lookup cache key was written twice with different target ids."""

    def __init__(self, object_name: str, key: str, existing: str, new: str):
        super().__init__(
            f"Lookup cache already maps {object_name}[{key}] to {existing}, refusing to overwrite with {new}"
        )
        self.object_name = object_name
        self.key = key
        self.existing = existing
        self.new = new


class ApiError(MigrationError):
    """Error reported by a remote org API."""

    def __init__(self, message: str, code: Optional[str] = None, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.fields = fields or []

    def __str__(self) -> str:
        if self.code:
            return f"{self.code}: {self.message}"
        return self.message


class TransientApiError(ApiError):
    """Retryable remote failure (lock contention, timeout, rate limit)."""


class PermanentApiError(ApiError):
    """Field-level rejection or any other non-retryable remote failure."""


class AuthError(ApiError):
    """Expired or invalid credentials for an org connection."""


def is_auth_error(text: Optional[str]) -> bool:
    """Check whether remote error text indicates an expired or invalid credential."""
    if not text:
        return False
    return any(pattern.search(text) for pattern in AUTH_ERROR_PATTERNS)


def classify_error(
    code: Optional[str],
    message: str,
    retryable_codes: Optional[Iterable[str]] = None,
    fields: Optional[List[str]] = None,
) -> ApiError:
    """
    Map a remote error code and message onto the error taxonomy.

    Args:
        code: Remote status/error code (e.g. ``UNABLE_TO_LOCK_ROW``)
        message: Remote error message
        retryable_codes: Codes considered transient; defaults to DEFAULT_RETRYABLE_CODES
        fields: Fields the remote error refers to

    Returns:
        An AuthError, TransientApiError or PermanentApiError instance
    """
    if is_auth_error(code) or is_auth_error(message):
        return AuthError(message, code=code, fields=fields)

    codes = DEFAULT_RETRYABLE_CODES if retryable_codes is None else tuple(retryable_codes)
    if code and code in codes:
        return TransientApiError(message, code=code, fields=fields)

    return PermanentApiError(message, code=code, fields=fields)
