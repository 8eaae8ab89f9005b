"""
Standard API response models and helpers for consistent response formatting.

All endpoints should use these helpers to ensure consistent response envelopes:
- Success: { "success": true, "data": <payload>, "meta": {...} }
- Error: { "success": false, "error": { "code": "...", "message": "...", "details": {...} } }
"""
import math
from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Standard error detail structure."""
    code: str = Field(..., description="Error code (e.g., 'notfound', 'validation')")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(default=None, description="Additional error context")


class StandardErrorResponse(BaseModel):
    """Standard error response envelope."""
    success: bool = Field(False, description="Always false for errors")
    error: ErrorDetail = Field(..., description="Error details")


def success_response(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create a standardized success response.

    Args:
        data: The response payload
        meta: Optional metadata (pagination, timestamps, etc.)

    Returns:
        dict: { "success": true, "data": <data>, "meta": <meta> }
    """
    response = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """{ "success": false, "error": { "code", "message", "details" } }"""
    envelope = StandardErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return envelope.model_dump()


def paginated_response(
    items: list[Any],
    page: int,
    limit: int,
    total: int | None = None,
) -> dict[str, Any]:
    """
    Create a standardized page-based paginated response.

    Args:
        items: List of items for this page
        page: 1-based page number
        limit: Number of items per page
        total: Total number of items (if None, uses len(items))

    Returns:
        dict: { "success": true, "data": <items>, "meta": { "page", "limit", "total", "pages", "hasMore" } }
    """
    if total is None:
        total = len(items)

    meta = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
        "hasMore": page * limit < total,
    }

    return success_response(data=items, meta=meta)
