# shared/common/exceptions.py
"""
Common Exception Classes

Transport-agnostic error taxonomy shared by the services. Each exception
carries a machine readable error code, an HTTP-ish status hint for whatever
layer renders it, and a details dict.
"""

from typing import Dict, Any, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class BaseServiceException(Exception):
    """Base exception class for all service errors"""

    status_code = 500
    default_message = 'An unexpected error occurred.'
    error_code = 'INTERNAL_ERROR'

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a serializable error payload."""
        return {
            'error': self.error_code,
            'message': self.message,
            'details': self.details,
        }

    def __repr__(self):
        return f"{self.__class__.__name__}({self.error_code}: {self.message})"


# =============================================================================
# CLIENT ERRORS (4xx)
# =============================================================================

class ValidationError(BaseServiceException):
    """Input failed validation. Never retried."""
    status_code = 400
    default_message = 'Validation error.'
    error_code = 'VALIDATION_ERROR'


class NotFoundError(BaseServiceException):
    """A referenced record does not exist."""
    status_code = 404
    default_message = 'Resource not found.'
    error_code = 'NOT_FOUND'


class ConflictError(BaseServiceException):
    """The operation lost a race or violates a uniqueness rule."""
    status_code = 409
    default_message = 'Resource conflict.'
    error_code = 'CONFLICT'


# =============================================================================
# SERVER ERRORS (5xx)
# =============================================================================

class InternalError(BaseServiceException):
    """Unexpected failure, usually of a collaborator."""
    status_code = 500
    default_message = 'Internal error.'
    error_code = 'INTERNAL_ERROR'


class ExternalServiceError(InternalError):
    """A call to another service failed."""
    status_code = 502
    default_message = 'External service error.'
    error_code = 'EXTERNAL_SERVICE_ERROR'

    def __init__(
        self,
        service_name: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        error_details = {'service': service_name}
        error_details.update(details or {})
        super().__init__(
            message=message or f"Call to {service_name} failed",
            details=error_details,
        )

