"""
Shared error handling for Ping Fleet.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import trace_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class PingFleetException(Exception):
    """Base exception for Ping Fleet services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=trace_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(PingFleetException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class LimiterUnavailableError(PingFleetException):
    """The shared rate limit record could not be locked, read or written.

    Distinct from a denial: the caller must not send anything in this state.
    """

    status_code = 503

    def __init__(self, message: str = "Rate limiter unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("LIMITER_UNAVAILABLE", message, details)


class OutboundFailureError(PingFleetException):
    """Network error, timeout or unexpected status from a downstream service."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("OUTBOUND_FAILURE", f"{service}: {message}", details)


class ReceiverRejectedError(PingFleetException):
    """Downstream service answered 429 Too Many Requests."""

    status_code = 429

    def __init__(self, service: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("RECEIVER_REJECTED", f"{service}: too many requests", details)
