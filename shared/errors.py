"""
Shared error handling for the rule acknowledgement gateway.

Every error raised by the gateway derives from ``GatewayException`` and
carries the HTTP status it maps to. The single exception handler installed
by ``BaseService`` renders them as ``ErrorResponse`` payloads.
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


class GatewayException(Exception):
    """Base exception for gateway errors."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
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


class AuthenticationError(GatewayException):
    """Authentication-related errors."""

    status_code = 403

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class MissingAuthTokenError(AuthenticationError):
    """No identity header (or an empty one) was supplied."""

    def __init__(self, message: str = "Missing auth token", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = "AUTH_TOKEN_MISSING"


class MalformedAuthTokenError(AuthenticationError):
    """The identity header could not be decoded into an identity."""

    def __init__(self, message: str = "Invalid/Malformed auth token", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = "AUTH_TOKEN_MALFORMED"


class ValidationError(GatewayException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class MalformedSelectorError(ValidationError):
    """Rule selector is not in ``rule_id|error_key`` form."""

    def __init__(self, selector: str, reason: str):
        super().__init__(
            f"improper rule selector format: {reason}",
            details={"rule_selector": selector}
        )
        self.code = "SELECTOR_MALFORMED"


class ExternalServiceError(GatewayException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
        self.service = service


class AggregatorUnavailableError(ExternalServiceError):
    """Aggregator could not be reached or answered unexpectedly."""

    def __init__(self, message: str = "Aggregator unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("aggregator", message, details)
        self.code = "AGGREGATOR_UNAVAILABLE"


class AggregatorBadResponseError(ExternalServiceError):
    """Aggregator answered, but with a status or payload the gateway cannot use."""

    def __init__(self, message: str = "Unexpected Aggregator response", details: Optional[Dict[str, Any]] = None):
        super().__init__("aggregator", message, details)
        self.code = "AGGREGATOR_BAD_RESPONSE"


class AggregatorTimeoutError(ExternalServiceError):
    """Request deadline expired while waiting for the Aggregator."""

    status_code = 504

    def __init__(self, message: str = "Aggregator request timed out", details: Optional[Dict[str, Any]] = None):
        super().__init__("aggregator", message, details)
        self.code = "AGGREGATOR_TIMEOUT"


class AggregatorRecordNotFoundError(ExternalServiceError):
    """Aggregator reported that the addressed acknowledgement does not exist."""

    status_code = 404

    def __init__(self, message: str = "Rule acknowledgement not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("aggregator", message, details)
        self.code = "ACK_NOT_FOUND"
