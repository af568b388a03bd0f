"""API response schemas.

Successful JSON endpoints use the `ApiResponse` envelope. Every error body,
whether produced by an endpoint or by the global exception handler, carries a
human-readable `error` string so clients only need one parsing rule.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard API response wrapper.

    Attributes:
        success: Whether the request was successful.
        data: The actual response data (when success is True).
        message: A human-readable message about the response.
    """

    success: bool = True
    data: T | None = None
    message: str = "Operation completed successfully"


class ErrorResponse(BaseModel):
    """Error response body.

    Attributes:
        error: Human-readable error message.
        type: Stable machine-readable error type (e.g. ``invalid_mode``).
        correlation_id: Request correlation id, when known.
        details: Extra diagnostics; omitted in production.
    """

    error: str
    type: str | None = None
    correlation_id: str | None = None
    details: dict[str, Any] | None = None
