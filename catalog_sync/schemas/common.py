"""Error body shared by every catalog sync endpoint.

Domain errors (catalog_sync.errors) are mapped to one of the codes below by
the exception handlers in catalog_sync.main.
"""

from typing import Any

from pydantic import BaseModel

VALIDATION_ERROR = "VALIDATION_ERROR"
NOT_FOUND = "NOT_FOUND"
SYNC_IN_PROGRESS = "SYNC_IN_PROGRESS"
REMOTE_CHANNEL_ERROR = "REMOTE_CHANNEL_ERROR"
QUEUE_UNAVAILABLE = "QUEUE_UNAVAILABLE"
SCHEDULER_CLOSED = "SCHEDULER_CLOSED"
INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorDetail(BaseModel):
    """What went wrong, e.g. a rejected payload with the offending remote id in `detail`."""

    code: str
    message: str
    detail: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Body of every non-2xx response.

    Format: { "error": { "code": str, "message": str, "detail": object } }
    """

    error: ErrorDetail

    @classmethod
    def build(cls, code: str, message: str, detail: dict[str, Any] | None = None) -> dict[str, Any]:
        """JSON-ready error body."""
        return cls(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(mode="json")
