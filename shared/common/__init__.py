# Shared Common Library for the Consultation Scheduling services
# This package contains the error taxonomy, validators, model mixins
# and inter-service clients used across the microservices.

__version__ = "1.0.0"

# Export commonly used components
from .exceptions import (
    BaseServiceException,
    ValidationError,
    NotFoundError,
    ConflictError,
    InternalError,
    ExternalServiceError,
)

from .validators import (
    validate_uuid,
    validate_uuid_list,
    validate_date,
    validate_date_range,
    validate_time_window,
    validate_time_windows,
    validate_range,
)

__all__ = [
    # Version
    '__version__',

    # Exceptions
    'BaseServiceException',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'InternalError',
    'ExternalServiceError',

    # Validators
    'validate_uuid',
    'validate_uuid_list',
    'validate_date',
    'validate_date_range',
    'validate_time_window',
    'validate_time_windows',
    'validate_range',
]
