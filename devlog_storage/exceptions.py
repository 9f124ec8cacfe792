"""
Custom exceptions for devlog storage.

All storage providers raise these exceptions so callers can handle
failures consistently regardless of the backend in use.
"""

from __future__ import annotations

from typing import Any


class DevlogStorageError(Exception):
    """Base exception for all devlog storage errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidIdentifierError(DevlogStorageError):
    """Raised when a structurally malformed devlog id reaches an operation that needs one."""

    def __init__(self, value: Any, operation: str | None = None):
        details: dict[str, Any] = {"value": repr(value)}
        if operation:
            details["operation"] = operation
        super().__init__(f"Invalid devlog id: {value!r}", details)
        self.value = value
        self.operation = operation


class DevlogNotFoundError(DevlogStorageError):
    """Raised when a well-formed id has no corresponding record.

    Providers translate this into an absent result for ``get``/``exists``.
    """

    def __init__(self, devlog_id: int, source: str | None = None):
        details: dict[str, Any] = {"devlog_id": devlog_id}
        if source:
            details["source"] = source
        super().__init__(f"Devlog entry not found: {devlog_id}", details)
        self.devlog_id = devlog_id
        self.source = source


class RateLimitExceededError(DevlogStorageError):
    """Raised when the rate limiter exhausts its retry budget."""

    def __init__(self, attempts: int, cause: Exception | None = None):
        details: dict[str, Any] = {"attempts": attempts}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Rate limit exceeded after {attempts} attempts", details)
        self.attempts = attempts
        self.cause = cause


class RemoteAPIError(DevlogStorageError):
    """Raised when the remote issue tracker rejects a request."""

    def __init__(
        self,
        status: int | None,
        message: str,
        body: str | None = None,
        rate_limited: bool = False,
    ):
        details: dict[str, Any] = {"status": status, "rate_limited": rate_limited}
        if body:
            details["body"] = body[:500]
        super().__init__(message, details)
        self.status = status
        self.body = body
        self.rate_limited = rate_limited


class RemoteUnavailableError(RemoteAPIError):
    """Raised for network failures, timeouts and 5xx responses.

    Never tagged as rate limited, so the rate limiter propagates it unretried.
    """

    def __init__(self, endpoint: str, status: int | None = None, cause: Exception | None = None):
        message = f"Remote unavailable: {endpoint}"
        if status is not None:
            message += f" (HTTP {status})"
        elif cause is not None:
            message += f" ({type(cause).__name__})"
        super().__init__(status, message)
        self.details["endpoint"] = endpoint
        if cause:
            self.details["cause"] = str(cause)
        self.endpoint = endpoint
        self.cause = cause


class SyncConflictError(DevlogStorageError):
    """Raised when cache and remote copies disagree and no automatic strategy applies."""

    def __init__(self, conflicting_ids: list[int]):
        super().__init__(
            f"Sync conflict on {len(conflicting_ids)} entries: {conflicting_ids}",
            {"conflicting_ids": conflicting_ids},
        )
        self.conflicting_ids = conflicting_ids


class ConfigurationError(DevlogStorageError):
    """Raised when a storage descriptor is unsupported or incomplete."""

    def __init__(self, message: str, field: str | None = None):
        details = {}
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class StorageConnectionError(DevlogStorageError):
    """Raised when a local database connection cannot be opened."""

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class StorageIOError(DevlogStorageError):
    """Raised when a local storage I/O operation fails."""

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
