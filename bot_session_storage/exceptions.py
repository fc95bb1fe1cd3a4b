"""
Custom exceptions for the bot session store.

Every backend raises these so callers (and the HTTP transport) can map
failures to responses without knowing which storage technology is in use.
"""

from __future__ import annotations

from enum import Enum


class SessionOutcome(Enum):
    """Outcome of a session store operation.

    The transport maps these to protocol responses; the store itself only
    returns WRITTEN/DELETED and signals the rest through exceptions or None.
    """

    NOT_FOUND = "not_found"
    KEY_TOO_LONG = "key_too_long"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    QUOTA_EXCEEDED = "quota_exceeded"
    WRITTEN = "written"
    DELETED = "deleted"


class SessionStorageError(Exception):
    """Base exception for all session storage errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SessionValidationError(SessionStorageError):
    """Raised when an argument fails validation before any storage I/O."""

    outcome: SessionOutcome | None = None

    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class SessionKeyTooLongError(SessionValidationError):
    """Raised when a session key reaches the maximum key length."""

    outcome = SessionOutcome.KEY_TOO_LONG

    def __init__(self, length: int, max_length: int):
        super().__init__(
            f"Session key too long: {length} >= {max_length} UTF-16 code units",
            field="key",
            details={"length": length, "max_length": max_length},
        )
        self.length = length
        self.max_length = max_length


class PayloadTooLargeError(SessionValidationError):
    """Raised when a payload stream passes the byte cap.

    The size is only known up to the point the cap was crossed, so only
    the limit is reported.
    """

    outcome = SessionOutcome.PAYLOAD_TOO_LARGE

    def __init__(self, max_bytes: int):
        super().__init__(
            f"Payload exceeds maximum size of {max_bytes} bytes",
            field="data",
            details={"max_bytes": max_bytes},
        )
        self.max_bytes = max_bytes


class QuotaExceededError(SessionStorageError):
    """Raised when a tenant already holds the maximum number of keys."""

    outcome = SessionOutcome.QUOTA_EXCEEDED

    def __init__(self, tenant_id: int, max_session_count: int):
        super().__init__(
            f"Tenant {tenant_id} has reached the limit of {max_session_count} sessions",
            {"tenant_id": tenant_id, "max_session_count": max_session_count},
        )
        self.tenant_id = tenant_id
        self.max_session_count = max_session_count


class StorageIOError(SessionStorageError):
    """Raised when a storage operation fails.

    This is the "storage unavailable" failure: the core never retries it.
    """

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class StorageConnectionError(SessionStorageError):
    """Raised when connection to remote storage fails.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class AuthenticationError(SessionStorageError):
    """Raised when authentication to remote storage fails."""

    def __init__(self, endpoint: str, reason: str | None = None):
        details = {"endpoint": endpoint}
        if reason:
            details["reason"] = reason
        super().__init__(f"Authentication failed for {endpoint}", details)
        self.endpoint = endpoint
        self.reason = reason


class StoreNotInitializedError(SessionStorageError):
    """Raised when a store or backend is used before initialize() completed.

    This is a programming error, not something callers should handle.
    """

    def __init__(self, component: str):
        super().__init__(f"{component} used before initialize()", {"component": component})
        self.component = component
