"""
Custom exception classes for EduNotify Backend.
"""
from typing import Any, Dict, Optional


class EduNotifyException(Exception):
    """Base exception class for EduNotify application."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(EduNotifyException):
    """Raised for validation errors."""

    def __init__(
        self,
        message: str = "Validation error",
        code: str = "VALIDATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, status_code=400, details=details)


class NotFoundError(EduNotifyException):
    """Raised when a resource is not found."""

    def __init__(
        self,
        message: str = "Resource not found",
        code: str = "NOT_FOUND",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, status_code=404, details=details)


class SMSGatewayError(EduNotifyException):
    """Raised when there's an error with the SMS gateway."""

    def __init__(
        self,
        message: str = "SMS Gateway error",
        code: str = "SMS_GATEWAY_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 502,
    ):
        super().__init__(message=message, code=code, status_code=status_code, details=details)


class RetryableError(SMSGatewayError):
    """Gateway error that can be retried."""

    def __init__(
        self,
        message: str = "Retryable error",
        code: str = "RETRYABLE_ERROR",
        details: Optional[Dict[str, Any]] = None,
        retry_after: float = 2.0,
    ):
        details = details or {}
        details["retry_after"] = retry_after
        self.retry_after = retry_after
        super().__init__(message=message, code=code, status_code=503, details=details)


class SMSAuthError(SMSGatewayError):
    """Raised when SMS gateway credentials are missing or rejected."""
    def __init__(
        self,
        message: str = "Invalid SMS gateway credentials",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="SMS_AUTH_ERROR",
            status_code=401,
            details=details
        )


class PersistenceError(EduNotifyException):
    """Raised when a delivery record could not be written."""

    def __init__(
        self,
        message: str = "Failed to persist delivery record",
        code: str = "PERSISTENCE_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, status_code=500, details=details)
