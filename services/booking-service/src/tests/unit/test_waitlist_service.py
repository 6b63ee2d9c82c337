# services/booking-service/src/tests/unit/test_waitlist_service.py
"""
Unit Tests for WaitlistService

Waitlist entries, promotion order and conversion into bookings.
"""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone

from apps.core.models import Booking, Slot, WaitlistEntry
from apps.core.services import (
    BookingNotFoundError,
    ClientNotFoundError,
    DuplicateWaitlistEntryError,
    SlotConflictError,
    SlotNotFoundError,
    WaitlistEntryNotFoundError,
    WaitlistStateError,
)
from shared.common.exceptions import ValidationError


@pytest.mark.django_db
class TestAddToWaitlist:
    """Tests for WaitlistService.add_to_waitlist."""

    def test_add_entry(self, waitlist_service, notifier, client_record, service, future_date):
        entry = waitlist_service.add_to_waitlist(
            client_id=client_record.id,
            service_id=service.id,
            requested_date=future_date,
            preferred_time_windows=['10:00-11:00', '14:00-15:00', '10:00-11:00'],
            priority=4,
        )

        assert entry.status == WaitlistEntry.Status.PENDING
        assert entry.priority == 4
        assert entry.preferred_time_windows == ['10:00-11:00', '14:00-15:00']
        recipient, context = notifier.send_waitlist_confirmation.call_args[0]
        assert recipient == client_record.email
        assert context['entry_id'] == str(entry.id)

    def test_duplicate_pending_entry(self, waitlist_service, client_record, service, future_date):
        waitlist_service.add_to_waitlist(client_record.id, service.id, future_date)

        with pytest.raises(DuplicateWaitlistEntryError) as exc_info:
            waitlist_service.add_to_waitlist(client_record.id, service.id, future_date)

        assert exc_info.value.status_code == 409
        assert WaitlistEntry.objects.count() == 1

    def test_rejoin_after_cancelling(self, waitlist_service, client_record, service, future_date):
        first = waitlist_service.add_to_waitlist(client_record.id, service.id, future_date)
        waitlist_service.cancel_entry(first.id)

        second = waitlist_service.add_to_waitlist(client_record.id, service.id, future_date)

        assert second.id != first.id

    @pytest.mark.parametrize('priority', [-1, 11, True, '5'])
    def test_invalid_priority(self, waitlist_service, client_record, service, future_date, priority):
        with pytest.raises(ValidationError):
            waitlist_service.add_to_waitlist(client_record.id, service.id, future_date, priority=priority)

    def test_invalid_window(self, waitlist_service, client_record, service, future_date):
        with pytest.raises(ValidationError):
            waitlist_service.add_to_waitlist(
                client_record.id, service.id, future_date, preferred_time_windows=['morning']
            )

    def test_unknown_client(self, waitlist_service, service, future_date):
        with pytest.raises(ClientNotFoundError):
            waitlist_service.add_to_waitlist(uuid.uuid4(), service.id, future_date)

    def test_confirmation_failure_keeps_entry(self, waitlist_service, notifier, client_record, service, future_date):
        notifier.send_waitlist_confirmation.side_effect = RuntimeError("queue full")

        entry = waitlist_service.add_to_waitlist(client_record.id, service.id, future_date)

        assert WaitlistEntry.objects.filter(id=entry.id).exists()


@pytest.mark.django_db
class TestWaitlistPromotion:
    """Tests for promotion order and failure isolation."""

    @pytest.fixture
    def entries(self, create_waitlist_entry, create_client):
        """Priorities [3, 7, 3] created in order A, B, C."""
        base = timezone.now() - timedelta(hours=3)
        created = []
        for offset, priority in enumerate([3, 7, 3]):
            entry = create_waitlist_entry(client_id=create_client().id, priority=priority)
            WaitlistEntry.objects.filter(id=entry.id).update(created_at=base + timedelta(minutes=offset))
            created.append(entry)
        return created

    def test_promotion_order(self, waitlist_service, entries, service, future_date):
        a, b, c = entries

        result = waitlist_service.promote(service.id, future_date)

        assert [e.id for e in result.notified] == [b.id, a.id, c.id]
        assert result.failed_count == 0

    def test_promotion_queue_matches_order(self, waitlist_service, entries, service, future_date):
        a, b, c = entries

        queue = waitlist_service.get_promotion_queue(service.id, future_date, limit=2)

        assert [e.id for e in queue] == [b.id, a.id]

    def test_promotion_limit(self, waitlist_service, entries, create_waitlist_entry, create_client, service, future_date):
        create_waitlist_entry(client_id=create_client().id, priority=0)

        result = waitlist_service.promote(service.id, future_date)

        assert result.notified_count == 3
        assert WaitlistEntry.objects.filter(status=WaitlistEntry.Status.PENDING).count() == 1

    def test_failed_notification_leaves_entry_pending(
        self, waitlist_service, notifier, entries, service, future_date
    ):
        a, b, c = entries
        notifier.send_waitlist_notification.side_effect = [False, True, True]

        result = waitlist_service.promote(service.id, future_date)

        b.refresh_from_db()
        a.refresh_from_db()
        assert [e.id for e in result.failed] == [b.id]
        assert [e.id for e in result.notified] == [a.id, c.id]
        assert str(b.id) in result.errors
        assert b.status == WaitlistEntry.Status.PENDING
        assert a.status == WaitlistEntry.Status.NOTIFIED

    def test_raising_notifier_does_not_stop_promotion(
        self, waitlist_service, notifier, entries, service, future_date
    ):
        notifier.send_waitlist_notification.side_effect = [RuntimeError("boom"), True, True]

        result = waitlist_service.promote(service.id, future_date)

        assert result.failed_count == 1
        assert result.notified_count == 2

    def test_expired_entries_are_skipped(self, waitlist_service, create_waitlist_entry, service, future_date):
        create_waitlist_entry(expires_at=timezone.now() - timedelta(minutes=5))

        result = waitlist_service.promote(service.id, future_date)

        assert result.notified_count == 0

    def test_promote_for_available_slot(self, waitlist_service, entries, create_slot, future_date):
        slot = create_slot(date=future_date, time_window='15:00-16:00')

        result = waitlist_service.promote_for_slot(slot.id, limit=1)

        assert result.time_window == '15:00-16:00'
        assert [e.id for e in result.notified] == [entries[1].id]

    def test_promote_for_claimed_slot(self, waitlist_service, create_slot, create_booking, future_date):
        slot = create_slot(date=future_date)
        create_booking(slot=slot)

        with pytest.raises(SlotNotFoundError):
            waitlist_service.promote_for_slot(slot.id)


@pytest.mark.django_db
class TestWaitlistBooking:
    """Tests for turning entries into bookings."""

    def test_confirm_from_waitlist(self, waitlist_service, create_waitlist_entry, create_booking, future_date):
        entry = create_waitlist_entry()
        booking = create_booking(date=future_date)

        booked = waitlist_service.confirm_from_waitlist(entry.id, booking.id)

        assert booked.status == WaitlistEntry.Status.BOOKED
        assert booked.booking_id == booking.id

    def test_confirm_requires_booking(self, waitlist_service, create_waitlist_entry):
        entry = create_waitlist_entry()

        with pytest.raises(BookingNotFoundError):
            waitlist_service.confirm_from_waitlist(entry.id, uuid.uuid4())

    def test_confirm_unknown_entry(self, waitlist_service, create_booking):
        booking = create_booking()

        with pytest.raises(WaitlistEntryNotFoundError):
            waitlist_service.confirm_from_waitlist(uuid.uuid4(), booking.id)

    def test_book_from_waitlist(self, waitlist_service, create_waitlist_entry, create_slot, future_date):
        slot = create_slot(date=future_date)
        entry = create_waitlist_entry(notes='Any time is fine')

        booked = waitlist_service.book_from_waitlist(entry.id, '10:00-11:00')

        booking = Booking.objects.get(id=booked.booking_id)
        slot.refresh_from_db()
        assert booked.status == WaitlistEntry.Status.BOOKED
        assert booking.metadata['waitlist_entry_id'] == str(entry.id)
        assert booking.notes == 'Any time is fine'
        assert slot.booking_id == booking.id

    def test_book_notified_entry(self, waitlist_service, create_waitlist_entry, create_slot, future_date):
        create_slot(date=future_date)
        entry = create_waitlist_entry()
        entry.mark_notified()

        booked = waitlist_service.book_from_waitlist(entry.id, '10:00-11:00')

        assert booked.status == WaitlistEntry.Status.BOOKED

    def test_lost_race_leaves_entry_waiting(
        self, waitlist_service, create_waitlist_entry, create_slot, create_booking, future_date
    ):
        create_booking(slot=create_slot(date=future_date))
        entry = create_waitlist_entry()

        with pytest.raises(SlotConflictError):
            waitlist_service.book_from_waitlist(entry.id, '10:00-11:00')

        entry.refresh_from_db()
        assert entry.status == WaitlistEntry.Status.PENDING

    def test_book_cancelled_entry(self, waitlist_service, create_waitlist_entry):
        entry = create_waitlist_entry(status=WaitlistEntry.Status.CANCELLED)

        with pytest.raises(WaitlistStateError):
            waitlist_service.book_from_waitlist(entry.id, '10:00-11:00')

    def test_entry_cancelled_while_booking_releases_slot(
        self, waitlist_service, create_waitlist_entry, create_slot, future_date
    ):
        slot = create_slot(date=future_date)
        entry = create_waitlist_entry()
        bookings = waitlist_service.booking_service
        create_booking = bookings.create_booking

        def cancel_then_create(**kwargs):
            waitlist_service.cancel_entry(entry.id, reason='Found another provider')
            return create_booking(**kwargs)

        with patch.object(bookings, 'create_booking', side_effect=cancel_then_create):
            with pytest.raises(WaitlistStateError):
                waitlist_service.book_from_waitlist(entry.id, '10:00-11:00')

        entry.refresh_from_db()
        slot.refresh_from_db()
        booking = Booking.objects.get(client_id=entry.client_id)
        assert entry.status == WaitlistEntry.Status.CANCELLED
        assert entry.booking_id is None
        assert booking.status == Booking.Status.CANCELLED
        assert slot.is_available is True
        assert slot.booking_id is None
        assert not Slot.objects.filter(is_available=False).exists()


@pytest.mark.django_db
class TestWaitlistMaintenance:
    """Tests for cancelling, listing, expiring and statistics."""

    def test_cancel_entry_is_idempotent(self, waitlist_service, create_waitlist_entry):
        entry = create_waitlist_entry()

        waitlist_service.cancel_entry(entry.id, reason='Found another slot')
        again = waitlist_service.cancel_entry(entry.id)

        assert again.status == WaitlistEntry.Status.CANCELLED
        assert again.cancellation_reason == 'Found another slot'

    def test_cancel_booked_entry(self, waitlist_service, create_waitlist_entry):
        entry = create_waitlist_entry(status=WaitlistEntry.Status.BOOKED)

        with pytest.raises(WaitlistStateError):
            waitlist_service.cancel_entry(entry.id)

    def test_get_unknown_entry(self, waitlist_service):
        with pytest.raises(WaitlistEntryNotFoundError):
            waitlist_service.get_entry(uuid.uuid4())

    def test_list_active_entries(self, waitlist_service, create_waitlist_entry, create_client, service):
        active = create_waitlist_entry(priority=2)
        create_waitlist_entry(client_id=create_client().id, status=WaitlistEntry.Status.EXPIRED)

        assert waitlist_service.list_entries(service_id=service.id) == [active]
        assert len(waitlist_service.list_entries(active_only=False)) == 2

    def test_expire_stale(self, waitlist_service, create_waitlist_entry, create_client):
        stale = create_waitlist_entry(expires_at=timezone.now() - timedelta(days=1))
        create_waitlist_entry(client_id=create_client().id)

        assert waitlist_service.expire_stale() == 1

        stale.refresh_from_db()
        assert stale.status == WaitlistEntry.Status.EXPIRED

    def test_statistics(self, waitlist_service, create_waitlist_entry, create_client, service):
        create_waitlist_entry()
        create_waitlist_entry(client_id=create_client().id, status=WaitlistEntry.Status.BOOKED)
        create_waitlist_entry(client_id=create_client().id, status=WaitlistEntry.Status.BOOKED)
        create_waitlist_entry(client_id=create_client().id, status=WaitlistEntry.Status.CANCELLED)

        stats = waitlist_service.get_statistics(service.id)

        assert stats['total'] == 4
        assert stats['pending'] == 1
        assert stats['booked'] == 2
        assert stats['fulfillment_rate'] == 50
