"""
Taskboard Backend — Custom Exception Hierarchy
================================================

What:  Defines application-specific exceptions for different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services and middleware; caught by global handlers.
When:  During request processing when recoverable errors occur.

Exception Hierarchy:
    TaskboardError (base)
    ├── ValidationError            → 400 Bad Request (client can fix)
    ├── ExpiredError               → 400 Bad Request (invite past expiry)
    ├── InvalidStateError          → 400 Bad Request (illegal transition)
    ├── UnauthenticatedError       → 401 Unauthorized
    ├── ForbiddenError             → 403 Forbidden
    ├── NotFoundError              → 404 Not Found
    ├── ConflictError              → 409 Conflict
    │   └── AlreadyProcessedError  → 409 (invite no longer pending)
    │       ├── AlreadyAcceptedError
    │       └── AlreadyRejectedError
    ├── RateLimitExceededError     → 429 Too Many Requests
    ├── DatabaseError              → 500 Internal Server Error
    ├── DeliveryError              → 503 (notification sink failed)
    └── CircuitBreakerOpenError    → 503 (sink circuit open)

Every error is classified by the component that detects it and propagates
unmodified to the boundary. The core never retries.
"""

from typing import Any, Dict, Optional


class TaskboardError(Exception):
    """
    Base exception for all Taskboard application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only where the handler opts in)
    """

    # Machine-readable code used in the error envelope
    code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(TaskboardError):
    """
    Raised when client input fails a business rule.

    HTTP: 400 Bad Request. Schema-level problems are FastAPI's own 422.
    """

    code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(TaskboardError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing records; services convert that into
    NotFoundError so the boundary can answer 404.
    """

    code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource


class UnauthenticatedError(TaskboardError):
    """Raised when a protected operation is called without a principal."""

    code = "unauthenticated"

    def __init__(
        self,
        message: str = "Authentication is required for this operation",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(TaskboardError):
    """
    Raised when the caller is authenticated but not authorized.

    Examples: a non-owner issuing an invite, accepting an invite addressed
    to a different email.
    """

    code = "forbidden"

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConflictError(TaskboardError):
    """
    Raised on a uniqueness violation.

    Examples: a second pending invite for the same (project, email), inviting
    someone who is already a member.
    """

    code = "conflict"

    def __init__(
        self,
        message: str = "The request conflicts with the current state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AlreadyProcessedError(ConflictError):
    """
    Raised when an invite is no longer pending.

    The reject path reports every non-pending state with this one class;
    the accept path uses the more specific subclasses below.
    """

    code = "already_processed"

    def __init__(
        self,
        message: str = "This invitation has already been processed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AlreadyAcceptedError(AlreadyProcessedError):
    """Raised when accepting an invite that is already accepted."""

    code = "already_accepted"

    def __init__(
        self,
        message: str = "This invitation has already been accepted",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AlreadyRejectedError(AlreadyProcessedError):
    """Raised when accepting an invite that was rejected."""

    code = "already_rejected"

    def __init__(
        self,
        message: str = "This invitation has already been rejected",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ExpiredError(TaskboardError):
    """Raised when an invite is past its expiry, whatever its stored status says."""

    code = "expired"

    def __init__(
        self,
        message: str = "This invitation has expired",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvalidStateError(TaskboardError):
    """
    Raised when a transition is attempted from a state that forbids it.

    Examples: moving an invite out of a terminal state, removing the
    project owner through member removal.
    """

    code = "invalid_state"

    def __init__(
        self,
        message: str = "This operation is not allowed in the current state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(TaskboardError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; the context is
    logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DeliveryError(TaskboardError):
    """
    Raised by a notification sink when delivery fails after all retries.

    Never escapes a core operation: the outbox flush logs it and moves on,
    the stored notification stays authoritative.
    """

    code = "delivery_error"

    def __init__(
        self,
        message: str = "Notification delivery failed",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(TaskboardError):
    """
    Raised when the delivery circuit breaker is in OPEN state.

    CLOSED → (N consecutive failures) → OPEN → (recovery timeout) →
    HALF_OPEN → success: CLOSED / failure: OPEN again.
    """

    code = "service_unavailable"

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Notification delivery is paused after repeated failures. "
            f"It will be retried in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class RateLimitExceededError(TaskboardError):
    """Raised when a caller exceeds the request rate limit (HTTP 429)."""

    code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
