"""Error taxonomy shared by the reconciliation engine and the job scheduler.

Batch operations catch these per item and aggregate them into their result;
whole-operation failures propagate to the caller after a failed sync log is
written.
"""

from __future__ import annotations

from typing import Any


class CatalogSyncError(RuntimeError):
    """Base class for all catalog sync errors."""

    code = "CATALOG_SYNC_ERROR"

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(CatalogSyncError):
    """Missing or malformed required fields on import or deploy."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, remote_id: str | None = None, detail: dict[str, Any] | None = None):
        super().__init__(message, detail=detail)
        self.remote_id = remote_id


class NotFoundError(CatalogSyncError):
    """Mapping, product or variant absent (locally or remotely)."""

    code = "NOT_FOUND"


class StaleReferenceError(CatalogSyncError):
    """A stored remote identifier points at an entity that no longer exists."""

    code = "STALE_REFERENCE"

    def __init__(self, message: str, *, remote_id: str | None = None):
        super().__init__(message, detail={"remote_id": remote_id} if remote_id else None)
        self.remote_id = remote_id


class RemoteChannelError(CatalogSyncError):
    """Transport, 4xx or 5xx failure from the remote channel."""

    code = "REMOTE_CHANNEL_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message, detail={"status_code": status_code} if status_code else None)
        self.status_code = status_code


class QueueUnavailableError(CatalogSyncError):
    """Broker unreachable. Switches the scheduler to immediate mode."""

    code = "QUEUE_UNAVAILABLE"


class SyncInProgressError(CatalogSyncError):
    """Another run holds the lease for this sync scope."""

    code = "SYNC_IN_PROGRESS"


class SchedulerClosedError(CatalogSyncError):
    """Work was submitted after the scheduler was shut down."""

    code = "SCHEDULER_CLOSED"
