"""
Base Service
Logging and validation helpers shared by every service
"""

import logging
from typing import Any, Dict, Optional

from engagement_core.services.exceptions import ServiceError, ValidationError


class BaseService:
    """
    Common plumbing for services

    Subclasses implement `get_service_name()`; log lines are prefixed with it.
    """

    def __init__(self, config=None):
        self.config = config
        self.logger = logging.getLogger(f"engagement_core.services.{self.get_service_name()}")

    def get_service_name(self) -> str:
        raise NotImplementedError

    # ========================================================================
    # Logging
    # ========================================================================

    def log_debug(self, message: str, **context: Any) -> None:
        self.logger.debug(self._format(message, context))

    def log_info(self, message: str, **context: Any) -> None:
        self.logger.info(self._format(message, context))

    def log_warning(self, message: str, **context: Any) -> None:
        self.logger.warning(self._format(message, context))

    def log_error(self, message: str, error: Optional[Exception] = None, **context: Any) -> None:
        if error is not None:
            context["error"] = f"{type(error).__name__}: {error}"
        self.logger.error(self._format(message, context))

    def _format(self, message: str, context: Dict[str, Any]) -> str:
        prefix = f"[{self.get_service_name()}] {message}"
        if not context:
            return prefix
        rendered = ", ".join(f"{k}={v}" for k, v in context.items())
        return f"{prefix} ({rendered})"

    # ========================================================================
    # Validation
    # ========================================================================

    def validate_required(self, value: Any, field_name: str) -> None:
        """Raise ValidationError when value is missing or blank"""
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field_name} is required", field=field_name)

    def validate_positive(self, value: int, field_name: str) -> None:
        if value is None or value <= 0:
            raise ValidationError(f"{field_name} must be positive", field=field_name)

    # ========================================================================
    # Error Handling
    # ========================================================================

    def handle_error(
        self, error: Exception, operation: str, context: Optional[Dict[str, Any]] = None
    ) -> ServiceError:
        """
        Convert an arbitrary exception into a ServiceError

        ServiceErrors pass through unchanged; anything else is logged and
        wrapped as an internal error.
        """
        if isinstance(error, ServiceError):
            return error

        self.log_error(f"Unexpected error in {operation}", error=error, **(context or {}))
        return ServiceError(f"Failed to {operation.replace('_', ' ')}", details=context or {})
