# services/booking-service/src/apps/core/models/__init__.py
"""
Booking Service Models
"""

from .client import Client
from .service import Service
from .slot import Slot
from .booking import Booking
from .waitlist import WaitlistEntry

__all__ = [
    'Client',
    'Service',
    'Slot',
    'Booking',
    'WaitlistEntry',
]
