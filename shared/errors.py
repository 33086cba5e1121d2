"""
Shared error handling for the Directory Access Layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class DirectoryAccessException(Exception):
    """Base exception for Directory Access Layer services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        # Get trace ID from current span
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(DirectoryAccessException):
    """Missing or inconsistent settings. Fatal at startup."""

    status_code = 500

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class DirectoryConnectionError(DirectoryAccessException):
    """The directory could not be reached during the startup health check."""

    status_code = 503

    def __init__(self, message: str = "Directory connection failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("DIRECTORY_CONNECTION_ERROR", message, details)


class UntrustedSourceError(DirectoryAccessException):
    """Request did not come from a trusted proxy."""

    status_code = 401

    def __init__(self, message: str = "Request source is not trusted", details: Optional[Dict[str, Any]] = None):
        super().__init__("UNTRUSTED_SOURCE", message, details)


class InvalidArgumentError(DirectoryAccessException):
    """Invalid input supplied by the immediate caller."""

    def __init__(self, message: str = "Invalid argument", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_ARGUMENT", message, details)


class AuthorizationError(DirectoryAccessException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class ServiceError(DirectoryAccessException):
    """Service-related errors."""

    status_code = 503

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)


class DirectoryLookupError(DirectoryAccessException):
    """A directory connector call failed."""

    status_code = 502

    def __init__(self, operation: str, message: str = "Directory lookup failed", details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        super().__init__("DIRECTORY_LOOKUP_ERROR", f"{operation}: {message}", details)


class NotFoundError(DirectoryAccessException):
    """User or group absent in the directory. Never surfaced to callers."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)
