"""
Academy Progress - Error Types
Only ValidationError is meant to reach callers; the rest are absorbed by the
layer that raises them (queue, log, continue degraded).
"""

from typing import Optional, Any


class ProgressError(Exception):
    """Base progress error with a machine-readable code."""

    def __init__(self, message: str, code: str = "progress_error", details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)


class ValidationError(ProgressError):
    """Write rejected before any persistence attempt (missing identity fields)."""

    def __init__(self, message: str = "Missing required progress data", details: Optional[Any] = None):
        super().__init__(message, "validation_error", details)


class TransientSyncError(ProgressError):
    """Remote I/O failure. Recovered through the offline queue."""

    def __init__(self, message: str = "Remote sync failed", code: str = "transient_sync_error",
                 details: Optional[Any] = None):
        super().__init__(message, code, details)


class RemoteUnavailableError(TransientSyncError):
    """Remote store could not be reached (offline, DNS, connect or read timeout)."""

    def __init__(self, message: str = "Remote store unreachable", details: Optional[Any] = None):
        super().__init__(message, "remote_unavailable", details)


class RemoteRejectedError(TransientSyncError):
    """Remote store answered but refused the request (throttling, conflict, 5xx)."""

    def __init__(self, message: str = "Remote store rejected the request",
                 status_code: Optional[int] = None, details: Optional[Any] = None):
        self.status_code = status_code
        super().__init__(message, "remote_rejected", details)


class PermanentSyncError(ProgressError):
    """A queued operation exceeded the retry ceiling and was dropped."""

    def __init__(self, operation_id: str, retry_count: int, last_error: Optional[str] = None):
        self.operation_id = operation_id
        self.retry_count = retry_count
        self.last_error = last_error
        super().__init__(
            f"Operation {operation_id} dropped after {retry_count} failed sync attempts",
            "permanent_sync_error",
            {"last_error": last_error},
        )


class LocalStorageError(ProgressError):
    """Local cache read/write failure (quota, permissions, corrupt document)."""

    def __init__(self, message: str = "Local storage failure", details: Optional[Any] = None):
        super().__init__(message, "local_storage_error", details)
