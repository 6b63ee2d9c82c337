# services/booking-service/src/apps/core/services/__init__.py
"""
Booking Service Business Logic
"""

from .directory import Directory
from .slot_service import SlotService, SlotReservation
from .waitlist_service import WaitlistService, PromotionResult
from .recurrence_service import RecurrenceService, RecurrenceResult
from .series_service import (
    CancellationScope,
    SeriesCancellationService,
    SeriesCancellationResult,
)
from .booking_service import BookingService, CancellationResult
from .exceptions import (
    BookingNotFoundError,
    ClientNotFoundError,
    ServiceNotFoundError,
    SlotNotFoundError,
    WaitlistEntryNotFoundError,
    SlotConflictError,
    DuplicateWaitlistEntryError,
    BookingValidationError,
    BookingStateError,
    WaitlistStateError,
    NotificationError,
)


__all__ = [
    # Services
    'Directory',
    'SlotService',
    'WaitlistService',
    'RecurrenceService',
    'SeriesCancellationService',
    'BookingService',

    # Results
    'SlotReservation',
    'PromotionResult',
    'RecurrenceResult',
    'SeriesCancellationResult',
    'CancellationResult',
    'CancellationScope',

    # Exceptions
    'BookingNotFoundError',
    'ClientNotFoundError',
    'ServiceNotFoundError',
    'SlotNotFoundError',
    'WaitlistEntryNotFoundError',
    'SlotConflictError',
    'DuplicateWaitlistEntryError',
    'BookingValidationError',
    'BookingStateError',
    'WaitlistStateError',
    'NotificationError',
]
