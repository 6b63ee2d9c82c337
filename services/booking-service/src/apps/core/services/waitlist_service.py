# services/booking-service/src/apps/core/services/waitlist_service.py
"""
Waitlist Service

Manages waitlist operations and promotion of waiting clients when a slot
frees up.
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Dict, Any, List

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count

from shared.common.validators import (
    validate_uuid,
    validate_date,
    validate_range,
    validate_time_window,
    validate_time_windows,
)

from apps.core.events import EventType, event_publisher, publish_waitlist_event
from apps.core.hooks import PostCommitHooks
from apps.core.models import Booking, Client, Service, WaitlistEntry
from apps.core.notifications import NotificationSender, get_notification_sender, waitlist_context
from .directory import Directory
from .exceptions import (
    BookingNotFoundError,
    ClientNotFoundError,
    DuplicateWaitlistEntryError,
    NotificationError,
    SlotNotFoundError,
    WaitlistEntryNotFoundError,
    WaitlistStateError,
)
from .slot_service import SlotService

logger = logging.getLogger(__name__)


@dataclass
class PromotionResult:
    """Outcome of promoting the waitlist for a service date."""
    service_id: uuid.UUID
    date: date
    time_window: Optional[str] = None
    notified: List[WaitlistEntry] = field(default_factory=list)
    failed: List[WaitlistEntry] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def notified_count(self) -> int:
        return len(self.notified)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


class WaitlistService:
    """
    Service for managing waitlist.

    Handles:
    - Waitlist CRUD
    - Promotion when slots free up
    - Conversion of entries into bookings
    - Expiry sweeps
    """

    def __init__(
        self,
        slot_service: SlotService = None,
        directory: Directory = None,
        notifier: NotificationSender = None,
        booking_service=None
    ):
        self.directory = directory or Directory()
        self.notifier = notifier or get_notification_sender()
        self.slot_service = slot_service or SlotService(directory=self.directory, notifier=self.notifier)
        self._booking_service = booking_service

    @property
    def booking_service(self):
        if self._booking_service is None:
            from .booking_service import BookingService
            self._booking_service = BookingService(
                slot_service=self.slot_service,
                directory=self.directory,
                notifier=self.notifier,
            )
        return self._booking_service

    # ==========================================================================
    # Waitlist CRUD
    # ==========================================================================

    def add_to_waitlist(
        self,
        client_id: uuid.UUID,
        service_id: uuid.UUID,
        requested_date: date,
        preferred_time_windows: List[str] = None,
        priority: int = 0,
        notes: str = None,
        expires_at: datetime = None
    ) -> WaitlistEntry:
        """Add a client to the waitlist for a service date."""
        client = self.directory.find_client_by_id(client_id)
        service = self.directory.find_service_by_id(service_id)
        requested_date = validate_date(requested_date, 'requested_date')
        windows = validate_time_windows(preferred_time_windows, 'preferred_time_windows')
        priority = validate_range(
            priority, 0, getattr(settings, 'WAITLIST_MAX_PRIORITY', 10), 'priority'
        )

        duplicate = WaitlistEntry.objects.filter(
            client_id=client.id,
            service_id=service.id,
            requested_date=requested_date,
            status=WaitlistEntry.Status.PENDING,
        ).exists()
        if duplicate:
            raise DuplicateWaitlistEntryError(client.id, service.id, requested_date)

        try:
            with transaction.atomic():
                entry = WaitlistEntry.objects.create(
                    client_id=client.id,
                    service_id=service.id,
                    requested_date=requested_date,
                    preferred_time_windows=windows,
                    priority=priority,
                    notes=notes,
                    expires_at=expires_at,
                )
        except IntegrityError:
            raise DuplicateWaitlistEntryError(client.id, service.id, requested_date)

        logger.info(
            f"Added waitlist entry {entry.id} for client {client.id} "
            f"on {requested_date} (priority {priority})"
        )

        hooks = PostCommitHooks()
        hooks.add(
            'waitlist_confirmation',
            self.notifier.send_waitlist_confirmation,
            client.email,
            waitlist_context(entry, client, service),
        )
        hooks.add('event', publish_waitlist_event, entry, EventType.WAITLIST_ENTRY_CREATED)
        hooks.run()

        return entry

    def get_entry(self, entry_id: uuid.UUID) -> WaitlistEntry:
        """Get a waitlist entry by ID."""
        entry_id = validate_uuid(entry_id, 'entry_id')
        try:
            return WaitlistEntry.objects.get(id=entry_id)
        except WaitlistEntry.DoesNotExist:
            raise WaitlistEntryNotFoundError(entry_id)

    def list_entries(
        self,
        client_id: uuid.UUID = None,
        service_id: uuid.UUID = None,
        requested_date: date = None,
        status: str = None,
        active_only: bool = True,
        limit: int = 50
    ) -> List[WaitlistEntry]:
        """List waitlist entries in promotion order."""
        queryset = WaitlistEntry.objects.all()

        if client_id:
            queryset = queryset.filter(client_id=client_id)

        if service_id:
            queryset = queryset.filter(service_id=service_id)

        if requested_date:
            queryset = queryset.filter(requested_date=requested_date)

        if status:
            queryset = queryset.filter(status=status)
        elif active_only:
            queryset = queryset.filter(
                status__in=[
                    WaitlistEntry.Status.PENDING,
                    WaitlistEntry.Status.NOTIFIED,
                ]
            )

        return list(queryset.order_by('-priority', 'created_at')[:limit])

    def cancel_entry(
        self,
        entry_id: uuid.UUID,
        reason: str = None
    ) -> WaitlistEntry:
        """Cancel a waitlist entry. Cancelling twice is a no-op."""
        entry = self.get_entry(entry_id)

        if entry.status == WaitlistEntry.Status.CANCELLED:
            return entry

        try:
            entry.cancel(reason)
        except ValueError:
            raise WaitlistStateError(entry.id, entry.status, 'cancel')

        logger.info(f"Cancelled waitlist entry {entry_id}")
        publish_waitlist_event(entry, EventType.WAITLIST_ENTRY_CANCELLED)
        return entry

    # ==========================================================================
    # Promotion
    # ==========================================================================

    def get_promotion_queue(
        self,
        service_id: uuid.UUID,
        requested_date: date,
        limit: int = None
    ) -> List[WaitlistEntry]:
        """Entries that would be notified for a service date, in order."""
        if limit is None:
            limit = getattr(settings, 'WAITLIST_PROMOTION_LIMIT', 3)
        return list(
            WaitlistEntry.get_promotion_candidates(service_id, requested_date)[:limit]
        )

    def promote(
        self,
        service_id: uuid.UUID,
        requested_date: date,
        limit: int = None,
        time_window: str = None
    ) -> PromotionResult:
        """
        Notify the top waiting clients that a slot freed up.

        Each entry is handled independently: a failed notification leaves
        that entry pending and does not stop the others.
        """
        service_id = validate_uuid(service_id, 'service_id')
        requested_date = validate_date(requested_date, 'requested_date')
        if time_window:
            validate_time_window(time_window)

        result = PromotionResult(
            service_id=service_id,
            date=requested_date,
            time_window=time_window,
        )

        entries = self.get_promotion_queue(service_id, requested_date, limit)
        if not entries:
            logger.info(f"No waitlist entries for service {service_id} on {requested_date}")
            return result

        service = Service.objects.filter(id=service_id).first()

        for entry in entries:
            try:
                self._notify_entry(entry, service, time_window)
            except Exception as e:
                logger.exception(f"Failed to notify waitlist entry {entry.id}: {e}")
                result.failed.append(entry)
                result.errors[str(entry.id)] = str(e)
                continue
            result.notified.append(entry)

        logger.info(
            f"Promoted waitlist for service {service_id} on {requested_date}: "
            f"{result.notified_count} notified, {result.failed_count} failed"
        )
        return result

    def _notify_entry(self, entry: WaitlistEntry, service: Optional[Service], time_window: str = None):
        client = Client.objects.filter(id=entry.client_id).first()
        if client is None:
            raise ClientNotFoundError(entry.client_id)

        sent = self.notifier.send_waitlist_notification(
            client.email,
            waitlist_context(entry, client, service, time_window),
        )
        if not sent:
            raise NotificationError(
                f"Waitlist notification to {client.email} was not delivered",
                details={'entry_id': str(entry.id)}
            )

        entry.mark_notified()
        publish_waitlist_event(entry, EventType.WAITLIST_ENTRY_NOTIFIED)

    def promote_for_slot(self, slot_id: uuid.UUID, limit: int = None) -> PromotionResult:
        """Promote the waitlist for an available slot."""
        slot = self.slot_service.get_slot(slot_id)
        if not slot.is_available:
            raise SlotNotFoundError(
                f"Slot {slot.id} is not available",
                details={'slot_id': str(slot.id)}
            )

        return self.promote(slot.service_id, slot.date, limit=limit, time_window=slot.time_window)

    # ==========================================================================
    # Booking
    # ==========================================================================

    def confirm_from_waitlist(
        self,
        entry_id: uuid.UUID,
        booking_id: uuid.UUID
    ) -> WaitlistEntry:
        """Mark an entry as booked by an existing booking."""
        entry_id = validate_uuid(entry_id, 'entry_id')
        booking_id = validate_uuid(booking_id, 'booking_id')

        if not Booking.objects.filter(id=booking_id).exists():
            raise BookingNotFoundError(booking_id)

        with transaction.atomic():
            try:
                entry = WaitlistEntry.objects.select_for_update().get(id=entry_id)
            except WaitlistEntry.DoesNotExist:
                raise WaitlistEntryNotFoundError(entry_id)

            try:
                entry.mark_booked(booking_id)
            except ValueError:
                raise WaitlistStateError(entry.id, entry.status, 'book')

        logger.info(f"Waitlist entry {entry.id} booked as {booking_id}")
        publish_waitlist_event(entry, EventType.WAITLIST_ENTRY_BOOKED)
        return entry

    def book_from_waitlist(
        self,
        entry_id: uuid.UUID,
        time_window: str,
        created_by: uuid.UUID = None
    ) -> WaitlistEntry:
        """
        Book a slot for a waiting client and mark the entry booked.

        A lost slot race raises SlotConflictError and leaves the entry as is.
        If the entry stops being bookable while the booking is made, the
        booking is cancelled again and its slot released.
        """
        entry = self.get_entry(entry_id)
        if not entry.is_active:
            raise WaitlistStateError(entry.id, entry.status, 'book')

        booking = self.booking_service.create_booking(
            client_id=entry.client_id,
            service_id=entry.service_id,
            date=entry.requested_date,
            time_window=time_window,
            notes=entry.notes,
            created_by=created_by,
            metadata={'waitlist_entry_id': str(entry.id)},
        )

        try:
            return self.confirm_from_waitlist(entry.id, booking.id)
        except (WaitlistStateError, WaitlistEntryNotFoundError):
            logger.warning(
                f"Waitlist entry {entry.id} changed while booking {booking.reference}, cancelling the booking"
            )
            self.booking_service.cancel(booking.id, reason='Waitlist entry no longer active')
            raise

    # ==========================================================================
    # Maintenance
    # ==========================================================================

    def expire_stale(self) -> int:
        """Expire pending entries past their expiry."""
        count = WaitlistEntry.process_expired_entries()
        logger.info(f"Expired {count} waitlist entries")
        if count:
            event_publisher.publish(
                EventType.WAITLIST_ENTRIES_EXPIRED,
                payload={'count': count}
            )
        return count

    def get_statistics(self, service_id: uuid.UUID = None) -> Dict[str, Any]:
        """Get waitlist statistics."""
        queryset = WaitlistEntry.objects.all()

        if service_id:
            queryset = queryset.filter(service_id=service_id)

        counts = {
            row['status']: row['count']
            for row in queryset.values('status').annotate(count=Count('id'))
        }
        total = sum(counts.values())
        booked = counts.get(WaitlistEntry.Status.BOOKED.value, 0)

        stats = {'total': total}
        for status in WaitlistEntry.Status.values:
            stats[status] = counts.get(status, 0)
        stats['fulfillment_rate'] = (booked / total * 100) if total > 0 else 0
        return stats
