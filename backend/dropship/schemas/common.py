"""Common schemas used across the application."""

from typing import Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper.

    Usage:
        response_model=PaginatedResponse[DropshipOrderOut]

    Returns:
        {
            "items": [...],
            "total": 150,
            "limit": 50,
            "offset": 0
        }
    """
    items: list[T]
    total: int
    limit: int
    offset: int


class BulkActionResult(BaseModel):
    """Per-item tally for bulk workflow actions (status changes)."""
    success: int = 0
    failed: int = 0
    errors: list[str] = []


class BulkUpdateResult(BaseModel):
    """Count-only result for bulk sync/update actions."""
    updated_count: int
    total_requested: int
