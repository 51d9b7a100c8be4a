"""
Services Package
Counter maintenance, fan-out and reconciliation for the engagement core
"""

from .base_service import BaseService
from .retry import BackoffPolicy
from .counter_service import (
    CounterService,
    CounterTarget,
    CounterResult,
    CounterStatus,
    FieldEquals,
)
from .dispatcher import TriggerDispatcher, DispatchResult, DispatchStatus
from .fanout_service import FanoutService
from .follow_service import FollowService
from .reconciliation_service import ReconciliationService
from .user_service import UserService
from .video_service import VideoService
from .exceptions import (
    # Base
    ServiceError,

    # Caller Errors
    UnauthenticatedError,
    ValidationError,
    NotFoundError,
    ConflictError,
    PreconditionFailedError,

    # Infrastructure / Invariant Errors
    TransientInfraError,
    InvariantViolation,

    # Utility Functions
    is_retryable_error,
    error_to_http_status,
    error_kind,
)

__all__ = [
    # Base Classes
    "BaseService",
    "BackoffPolicy",

    # Services
    "CounterService",
    "CounterTarget",
    "CounterResult",
    "CounterStatus",
    "FieldEquals",
    "TriggerDispatcher",
    "DispatchResult",
    "DispatchStatus",
    "FanoutService",
    "FollowService",
    "ReconciliationService",
    "UserService",
    "VideoService",

    # Exceptions
    "ServiceError",
    "UnauthenticatedError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "PreconditionFailedError",
    "TransientInfraError",
    "InvariantViolation",

    # Utilities
    "is_retryable_error",
    "error_to_http_status",
    "error_kind",
]
