# services/booking-service/src/apps/core/services/exceptions.py
"""
Booking Service Exceptions

Custom exceptions for booking service operations. Each one specializes a
class of the shared taxonomy so callers can branch on NotFoundError,
ConflictError or ValidationError without knowing the domain type.
"""

from typing import Optional, Dict, Any

from shared.common.exceptions import (
    ValidationError,
    NotFoundError,
    ConflictError,
    InternalError,
)


# =============================================================================
# NOT FOUND
# =============================================================================

class BookingNotFoundError(NotFoundError):
    """Raised when a booking is not found."""

    def __init__(self, booking_id: Any = None, message: str = None):
        super().__init__(
            message=message or f"Booking not found: {booking_id}",
            error_code="BOOKING_NOT_FOUND",
            details={"booking_id": str(booking_id)}
        )


class ClientNotFoundError(NotFoundError):
    """Raised when a client is not found."""

    def __init__(self, client_id: Any = None):
        super().__init__(
            message=f"Client not found: {client_id}",
            error_code="CLIENT_NOT_FOUND",
            details={"client_id": str(client_id)}
        )


class ServiceNotFoundError(NotFoundError):
    """Raised when a service is not found."""

    def __init__(self, service_id: Any = None):
        super().__init__(
            message=f"Service not found: {service_id}",
            error_code="SERVICE_NOT_FOUND",
            details={"service_id": str(service_id)}
        )


class SlotNotFoundError(NotFoundError):
    """Raised when no slot exists for a service, date and window."""

    def __init__(
        self,
        message: str = "Slot not found",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="SLOT_NOT_FOUND",
            details=details
        )


class WaitlistEntryNotFoundError(NotFoundError):
    """Raised when a waitlist entry is not found."""

    def __init__(self, entry_id: Any = None):
        super().__init__(
            message=f"Waitlist entry not found: {entry_id}",
            error_code="WAITLIST_ENTRY_NOT_FOUND",
            details={"entry_id": str(entry_id)}
        )


# =============================================================================
# CONFLICT
# =============================================================================

class SlotConflictError(ConflictError):
    """Raised when the requested slot is already claimed."""

    def __init__(self, service_id: Any, date: Any, time_window: str):
        super().__init__(
            message=f"Slot {date} {time_window} is no longer available",
            error_code="SLOT_UNAVAILABLE",
            details={
                "service_id": str(service_id),
                "date": str(date),
                "time_window": time_window,
            }
        )


class DuplicateWaitlistEntryError(ConflictError):
    """Raised when a client already waits for the same service and date."""

    def __init__(self, client_id: Any, service_id: Any, requested_date: Any):
        super().__init__(
            message="Client is already on the waitlist for this service and date",
            error_code="DUPLICATE_WAITLIST_ENTRY",
            details={
                "client_id": str(client_id),
                "service_id": str(service_id),
                "requested_date": str(requested_date),
            }
        )


# =============================================================================
# VALIDATION / STATE
# =============================================================================

class BookingValidationError(ValidationError):
    """Raised when booking data validation fails."""

    def __init__(
        self,
        message: str,
        field: str = None,
        details: Optional[Dict[str, Any]] = None
    ):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            error_code="BOOKING_VALIDATION_ERROR",
            details=error_details
        )


class BookingStateError(ValidationError):
    """Raised when a status transition is not allowed."""

    def __init__(self, booking_id: Any, current_status: str, target_status: str = None):
        message = f"Cannot move booking from {current_status}"
        if target_status:
            message += f" to {target_status}"
        super().__init__(
            message=message,
            error_code="INVALID_BOOKING_STATE",
            details={
                "booking_id": str(booking_id),
                "current_status": str(current_status),
                "target_status": str(target_status) if target_status else None,
            }
        )


class WaitlistStateError(ValidationError):
    """Raised when a waitlist entry cannot make the requested transition."""

    def __init__(self, entry_id: Any, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} waitlist entry in {current_status} status",
            error_code="INVALID_WAITLIST_STATE",
            details={
                "entry_id": str(entry_id),
                "current_status": str(current_status),
                "action": action,
            }
        )


# =============================================================================
# COLLABORATORS
# =============================================================================

class NotificationError(InternalError):
    """Raised by notification senders when delivery fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="NOTIFICATION_FAILED",
            details=details
        )
