# services/booking-service/src/tests/conftest.py
"""
Pytest Configuration and Fixtures

Provides common fixtures for booking service tests.
"""

import uuid
from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest
from django.utils import timezone

from apps.core.notifications import NotificationSender


@pytest.fixture
def user_id():
    """Provide a test user ID."""
    return uuid.uuid4()


@pytest.fixture
def future_date():
    """A weekday at least a week from today."""
    day = timezone.localdate() + timedelta(days=7)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


@pytest.fixture
def notifier():
    """Notification sender that records calls and always succeeds."""
    sender = MagicMock(spec=NotificationSender)
    sender.send_booking_confirmation.return_value = True
    sender.send_admin_notification.return_value = True
    sender.send_waitlist_notification.return_value = True
    sender.send_waitlist_confirmation.return_value = True
    return sender


@pytest.fixture
def create_client():
    """Factory fixture for creating clients."""
    from apps.core.models import Client

    def _create_client(**kwargs):
        suffix = uuid.uuid4().hex[:8]
        defaults = {
            'first_name': 'Test',
            'last_name': f'Client {suffix}',
            'email': f'client-{suffix}@example.com',
        }
        defaults.update(kwargs)

        return Client.objects.create(**defaults)

    return _create_client


@pytest.fixture
def create_service():
    """Factory fixture for creating services."""
    from apps.core.models import Service

    def _create_service(**kwargs):
        defaults = {
            'name': 'Consultation',
            'duration_minutes': 60,
        }
        defaults.update(kwargs)

        return Service.objects.create(**defaults)

    return _create_service


@pytest.fixture
def client_record(create_client):
    return create_client()


@pytest.fixture
def service(create_service):
    return create_service(name='consult')


@pytest.fixture
def create_slot(service):
    """Factory fixture for creating slots."""
    from apps.core.models import Slot

    def _create_slot(**kwargs):
        defaults = {
            'service_id': service.id,
            'date': date(2025, 3, 10),
            'time_window': '10:00-11:00',
        }
        defaults.update(kwargs)

        return Slot.objects.create(**defaults)

    return _create_slot


@pytest.fixture
def create_booking(client_record, service):
    """
    Factory fixture for creating bookings directly, without slot claims.

    Pass ``slot=`` to link an existing slot to the new booking.
    """
    from apps.core.models import Booking, Slot

    def _create_booking(slot=None, **kwargs):
        defaults = {
            'client_id': client_record.id,
            'service_id': service.id,
            'service_name': service.name,
            'date': slot.date if slot else date(2025, 3, 10),
            'time_window': slot.time_window if slot else '10:00-11:00',
            'status': Booking.Status.CONFIRMED,
        }
        defaults.update(kwargs)

        booking = Booking.objects.create(**defaults)
        if slot is not None:
            Slot.objects.filter(id=slot.id).update(is_available=False, booking_id=booking.id)
        return booking

    return _create_booking


@pytest.fixture
def create_waitlist_entry(client_record, service, future_date):
    """Factory fixture for creating waitlist entries."""
    from apps.core.models import WaitlistEntry

    def _create_entry(**kwargs):
        defaults = {
            'client_id': client_record.id,
            'service_id': service.id,
            'requested_date': future_date,
            'status': WaitlistEntry.Status.PENDING,
        }
        defaults.update(kwargs)

        return WaitlistEntry.objects.create(**defaults)

    return _create_entry


@pytest.fixture
def slot_service():
    from apps.core.services import SlotService
    return SlotService()


@pytest.fixture
def booking_service(notifier):
    from apps.core.services import BookingService
    return BookingService(notifier=notifier)


@pytest.fixture
def waitlist_service(notifier):
    from apps.core.services import WaitlistService
    return WaitlistService(notifier=notifier)
