"""Structured exception hierarchy for consistent error handling.

Every failure the gateway raises on purpose derives from ``GatewayError``
and carries the HTTP status it should be answered with. The error boundary
reads ``status_code`` and ``message`` from these exceptions (and from any
other exception exposing a ``status_code`` or ``status`` attribute), so
domain handler groups can raise them directly.

Key components:
- **ErrorCode enum**: Standardized error identifiers for programmatic handling
- **Severity enum**: Error classification for log levels and alerting
- **GatewayError**: Base exception with status, context and cause
- **Specialized exceptions**: Type-specific errors with fixed statuses
"""

from enum import Enum
from http import HTTPStatus
from typing import Any

from fastapi import status


class ErrorCode(Enum):
    """Standardized error codes for the gateway."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input validation failed due to invalid or malformed data."""

    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    """The request body exceeded the configured size limit."""

    NOT_FOUND = "NOT_FOUND"
    """The requested resource could not be found."""

    UNAUTHORIZED = "UNAUTHORIZED"
    """Authentication failed or user is not authorized for this action."""

    BUSINESS_RULE = "BUSINESS_RULE"
    """The request was well-formed but violates a domain rule."""

    TIMEOUT = "TIMEOUT"
    """The handler did not answer within the request timeout."""

    SHUTDOWN_FAILURE = "SHUTDOWN_FAILURE"
    """A resource could not be released during shutdown."""


class Severity(Enum):
    """Severity levels for errors in the gateway."""

    LOW = "LOW"
    """Expected errors caused by client input."""

    MEDIUM = "MEDIUM"
    """Errors that affect a single request."""

    HIGH = "HIGH"
    """Errors impacting security or critical functionality."""

    CRITICAL = "CRITICAL"
    """Errors requiring immediate attention."""


class GatewayError(Exception):
    """Base exception class for all gateway exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message, sent to the client
        status_code: HTTP status the error boundary answers with
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.status_code = status_code
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        """Return the error code and message."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return a detailed representation of the exception."""
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', status_code={self.status_code}, "
            f"severity={self.severity.value}{context_str})"
        )


class ValidationError(GatewayError):
    """Raised when input is malformed or fails validation (400 by default)."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ) -> None:
        super().__init__(error_code, message, status_code, Severity.LOW, context, cause)


class PayloadTooLargeError(ValidationError):
    """Raised when a request body exceeds the configured cap."""

    def __init__(
        self,
        limit_bytes: int,
        message: str = "Request entity too large",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.PAYLOAD_TOO_LARGE,
            {"limit_bytes": limit_bytes, **(context or {})},
            status_code=int(HTTPStatus.CONTENT_TOO_LARGE),
        )
        self.limit_bytes = limit_bytes


class NotFoundError(GatewayError):
    """Raised when a requested resource or route cannot be found."""

    def __init__(
        self,
        message: str = "Resource not found",
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            error_code, message, status.HTTP_404_NOT_FOUND, Severity.LOW, context, cause
        )


class UnauthorizedError(GatewayError):
    """Raised when authentication or authorization fails."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.UNAUTHORIZED,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            error_code,
            message,
            status.HTTP_401_UNAUTHORIZED,
            Severity.HIGH,
            context,
            cause,
        )


class BusinessRuleError(GatewayError):
    """Raised when an operation violates a domain rule (422)."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.BUSINESS_RULE,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            error_code,
            message,
            int(HTTPStatus.UNPROCESSABLE_CONTENT),
            Severity.MEDIUM,
            context,
            cause,
        )


class GatewayTimeoutError(GatewayError):
    """Raised when a handler does not start its response in time."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            ErrorCode.TIMEOUT,
            "Request timed out",
            status.HTTP_504_GATEWAY_TIMEOUT,
            Severity.HIGH,
            {"timeout_seconds": timeout_seconds},
        )


class ShutdownError(GatewayError):
    """Raised when the store handle fails to close during shutdown.

    Never sent to clients; the lifecycle manager logs it and exits non-zero.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(
            ErrorCode.SHUTDOWN_FAILURE,
            message,
            severity=Severity.CRITICAL,
            cause=cause,
        )
