"""Error Hierarchy - typed, categorized exceptions for all Rollcall failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are recoverable; infrastructure errors (500-level) are critical
    - to_response() produces the REST envelope
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with RollcallError base: FastAPI global handler catches all (ADR: uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
    - ExternalDeliveryError is raised by transport clients and caught by their callers;
      it never escapes a state-changing operation
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    PERMISSION = "permission"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    CONFLICT = "conflict"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    series_id: str | None = None
    instance_id: str | None = None
    actor_id: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class RollcallError(Exception):
    """Base exception for all Rollcall errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "series_id": self.context.series_id,
                    "instance_id": self.context.instance_id,
                    "actor_id": self.context.actor_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class ValidationError(RollcallError):
    """Malformed input rejected before any state change."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class RecurrenceValidationError(ValidationError):
    """Recurrence definition could not be parsed or uses unsupported parts."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(message, "recurrence", context)


class ResourceNotFoundError(RollcallError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class PermissionDeniedError(RollcallError):
    """Caller is not an admin of the tenant that owns the resource."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "PERMISSION_DENIED", ErrorCategory.PERMISSION,
            ErrorSeverity.WARNING, context, 403,
        )


class CapacityExceededError(RollcallError):
    """Vote would push the headcount over the series capacity limit."""
    def __init__(self, remaining: int, context: ErrorContext | None = None):
        remaining = max(remaining, 0)
        ctx = context or ErrorContext()
        ctx.user_message = ctx.user_message or f"Sorry, only {remaining} slots left!"
        super().__init__(
            f"Capacity exceeded: {remaining} slot(s) remaining",
            "CAPACITY_EXCEEDED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, ctx, 409,
        )
        self.remaining = remaining

    def to_response(self) -> dict:
        response = super().to_response()
        response["error"]["remaining"] = self.remaining
        return response


class AlreadyJoinedError(RollcallError):
    """Admin tried to add a participant who is already attending."""
    def __init__(self, actor_id: str, context: ErrorContext | None = None):
        super().__init__(
            f"Participant '{actor_id}' has already joined",
            "ALREADY_JOINED", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


class AlreadyActionedError(RollcallError):
    """Admin repeated an action whose effect is already in place."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "ALREADY_ACTIONED", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


class AlreadyAnnouncedError(RollcallError):
    """Instance already carries an announcement message handle."""
    def __init__(self, instance_id: str, context: ErrorContext | None = None):
        super().__init__(
            f"Instance '{instance_id}' has already been announced",
            "ALREADY_ANNOUNCED", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


class MaterializationInProgressError(RollcallError):
    """A manual materialization was requested while another run holds the lock."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "A materialization run is already in progress, try again shortly",
            "MATERIALIZATION_IN_PROGRESS", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(RollcallError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class ExternalDeliveryError(RollcallError):
    """Chat transport call failed after retries."""
    def __init__(
        self,
        message: str,
        method: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Delivery via {method} failed: {message}",
            "EXTERNAL_DELIVERY_FAILED", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, ctx, 502,
        )
        self.method = method
