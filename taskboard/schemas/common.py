"""
Taskboard Backend — Shared Response Schemas
=============================================

What:  The response envelope, the error body and the health check body.

Envelope:
    Success:  {"success": true,  "data": <payload>}
    Failure:  {"success": false, "error": "<code>", "message": "...",
               "details": {...}, "request_id": "..."}
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Successful response wrapper used by every API route."""
    success: bool = Field(default=True, description="Always true for successful responses")
    data: T = Field(description="Response payload")


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Example:
        {
            "success": false,
            "error": "already_accepted",
            "message": "This invitation has already been accepted",
            "details": null,
            "request_id": "550e8400"
        }
    """
    success: bool = Field(default=False)
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing service and dependency status."""
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    delivery: str = Field(description="Notification sink: available, unavailable, circuit_open")
    scheduler: str = Field(description="Reminder scheduler: running, stopped, disabled")
    uptime_seconds: float = Field(description="Seconds since service started")
