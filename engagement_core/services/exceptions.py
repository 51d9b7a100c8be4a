"""
Service Layer Exceptions
Error taxonomy shared by triggers and callable operations
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """
    Base class for every error raised by the service layer

    `error_code` is the named error kind surfaced to callable clients.
    """

    error_code = "internal"
    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return self.message


# ============================================================================
# Caller Errors
# ============================================================================


class UnauthenticatedError(ServiceError):
    """No authenticated uid was supplied"""

    error_code = "unauthenticated"
    http_status = 401


class ValidationError(ServiceError):
    """Malformed or missing input"""

    error_code = "invalid-argument"
    http_status = 400

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {}) or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)
        self.field = field


class NotFoundError(ServiceError):
    """Referenced user, video or comment is missing"""

    error_code = "not-found"
    http_status = 404

    def __init__(self, resource_type: str, resource_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{resource_type} not found: {resource_id}",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(ServiceError):
    """
    Duplicate resource or optimistic transaction contention

    Retried internally for counters; surfaced as already-exists for
    direct user actions.
    """

    error_code = "already-exists"
    http_status = 409


class PreconditionFailedError(ConflictError):
    """A caller-supplied precondition no longer holds (stale read)"""


# ============================================================================
# Infrastructure / Invariant Errors
# ============================================================================


class TransientInfraError(ServiceError):
    """Network or storage hiccup; retry with backoff, then queue"""

    error_code = "internal"
    http_status = 503


class InvariantViolation(ServiceError):
    """
    Data breaks a structural invariant (e.g. reply to a reply)

    Raised from background triggers only; aborted silently with logging.
    """

    error_code = "internal"
    http_status = 500


# ============================================================================
# Utility Functions
# ============================================================================


def is_retryable_error(error: Exception) -> bool:
    """Whether the error is worth another optimistic attempt"""
    return isinstance(error, (ConflictError, TransientInfraError))


def error_to_http_status(error: Exception) -> int:
    """Map an exception to the HTTP status used by the callable surface"""
    if isinstance(error, ServiceError):
        return error.http_status
    return 500


def error_kind(error: Exception) -> str:
    """Named error kind for any exception"""
    if isinstance(error, ServiceError):
        return error.error_code
    return "internal"
