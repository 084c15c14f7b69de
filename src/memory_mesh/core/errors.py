"""Specific error types for the memory service."""

from typing import Any

from .base import (
    ApplicationError,
    ErrorCode,
    ErrorLevel,
    ResourceErrorDetails,
    ServiceErrorDetails,
    ValidationErrorDetails,
)


class ValidationError(ApplicationError):
    """Caller supplied a value that violates a record invariant."""

    def __init__(self, message: str, details: ValidationErrorDetails | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_INPUT,
            level=ErrorLevel.WARNING,
            details=details or ValidationErrorDetails(source="validation", operation="validate"),
        )


class NotFoundError(ApplicationError):
    """A record required by the operation does not exist."""

    def __init__(self, message: str, details: ResourceErrorDetails | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.NOT_FOUND,
            level=ErrorLevel.WARNING,
            details=details
            or ResourceErrorDetails(source="store", operation="lookup", resource_type="memory", action="read"),
        )


class ServiceError(ApplicationError):
    """Error from external service calls."""

    def __init__(self, message: str, details: ServiceErrorDetails | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.SERVICE_UNAVAILABLE,
            level=ErrorLevel.ERROR,
            details=details or ServiceErrorDetails(source="service", operation="external_call", service_name="unknown"),
        )


class AuthenticationError(ApplicationError):
    """Provider rejected our credentials."""

    def __init__(self, message: str, details: ServiceErrorDetails | dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.AUTHENTICATION_FAILED,
            level=ErrorLevel.ERROR,
            details=details,
        )


class ProcessingError(ApplicationError):
    """General processing errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.PROCESSING_FAILED,
            level=ErrorLevel.ERROR,
            details=details,
        )


class RateLimitError(ApplicationError):
    """Rate limiting errors."""

    def __init__(self, message: str, details: ServiceErrorDetails | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.RATE_LIMITED,
            level=ErrorLevel.WARNING,
            details=details,
        )


class TimeoutError(ApplicationError):
    """Timeout errors."""

    def __init__(self, message: str, details: ServiceErrorDetails | dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.TIMEOUT,
            level=ErrorLevel.ERROR,
            details=details,
        )
