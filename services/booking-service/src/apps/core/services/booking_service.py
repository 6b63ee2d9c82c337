# services/booking-service/src/apps/core/services/booking_service.py
"""
Booking Service

Core business logic for reservation management.
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Dict, Any, List

from django.db import IntegrityError, transaction

from shared.common.exceptions import ConflictError
from shared.common.utils import today
from shared.common.validators import validate_uuid, validate_date, validate_time_window

from apps.core.events import (
    EventType,
    event_publisher,
    publish_booking_created,
    publish_booking_cancelled,
    publish_booking_status_changed,
    publish_series_created,
)
from apps.core.hooks import PostCommitHooks
from apps.core.models import Booking, Slot
from apps.core.notifications import NotificationSender, get_notification_sender, booking_context
from .directory import Directory
from .exceptions import BookingNotFoundError, BookingStateError, BookingValidationError
from .recurrence_service import RecurrenceService, RecurrenceResult
from .series_service import CancellationScope, SeriesCancellationService
from .slot_service import SlotService

logger = logging.getLogger(__name__)


@dataclass
class CancellationResult:
    """Outcome of cancel_booking for any scope."""
    booking: Booking
    scope: str
    booking_ids: List[uuid.UUID] = field(default_factory=list)
    released_count: int = 0
    failed_releases: Dict[str, str] = field(default_factory=dict)

    @property
    def cancelled_count(self) -> int:
        return len(self.booking_ids)


class BookingService:
    """
    Service for managing bookings.

    Handles:
    - Booking CRUD
    - Slot reservation on create, release on cancel/complete
    - Status transitions
    - Recurring series creation and cancellation
    """

    IDENTITY_FIELDS = (
        'id', 'reference', 'client_id', 'service_id', 'date', 'time_window',
        'parent_booking_id', 'child_booking_ids', 'is_recurring',
    )
    UPDATABLE_FIELDS = ('notes', 'urgency_level', 'metadata', 'status', 'cancellation_reason')

    def __init__(
        self,
        slot_service: SlotService = None,
        directory: Directory = None,
        notifier: NotificationSender = None,
        recurrence_service: RecurrenceService = None,
        series_service: SeriesCancellationService = None
    ):
        self.directory = directory or Directory()
        self.notifier = notifier or get_notification_sender()
        self.slot_service = slot_service or SlotService(directory=self.directory, notifier=self.notifier)
        self.recurrence_service = recurrence_service or RecurrenceService(self.slot_service)
        self.series_service = series_service or SeriesCancellationService(self.slot_service)

    # ==========================================================================
    # Booking CRUD
    # ==========================================================================

    def create_booking(
        self,
        client_id: uuid.UUID,
        service_id: uuid.UUID,
        date: date,
        time_window: str,
        notes: str = None,
        urgency_level: str = Booking.UrgencyLevel.NORMAL,
        metadata: Dict[str, Any] = None,
        created_by: uuid.UUID = None
    ) -> Booking:
        """
        Create a confirmed booking and claim its slot.

        The slot claim and the booking insert commit together; a taken slot
        raises SlotConflictError and nothing is stored. Confirmation, admin
        notification and the created event run afterwards and never undo
        the booking.
        """
        client_id = validate_uuid(client_id, 'client_id')
        service_id = validate_uuid(service_id, 'service_id')
        booking_date = validate_date(date, 'date')
        validate_time_window(time_window)
        if urgency_level not in Booking.UrgencyLevel.values:
            raise BookingValidationError(
                f"Invalid urgency level: {urgency_level}",
                field='urgency_level'
            )

        client = self.directory.find_client_by_id(client_id)
        service = self.directory.find_service_by_id(service_id)

        booking_id = uuid.uuid4()
        metadata = dict(metadata or {})

        try:
            with transaction.atomic():
                reservation = self.slot_service.reserve_slot(
                    service.id, booking_date, time_window, booking_id
                )
                if reservation.degraded:
                    metadata['untracked_slot'] = True

                booking = Booking.objects.create(
                    id=booking_id,
                    client_id=client.id,
                    service_id=service.id,
                    service_name=service.name,
                    date=booking_date,
                    time_window=time_window,
                    status=Booking.Status.CONFIRMED,
                    notes=notes,
                    urgency_level=urgency_level,
                    metadata=metadata,
                    created_by=created_by,
                    updated_by=created_by,
                )
        except IntegrityError as e:
            logger.error(f"Integrity error storing booking {booking_id}: {e}")
            raise ConflictError(
                "Booking could not be stored",
                error_code="BOOKING_CONFLICT",
                details={'booking_id': str(booking_id)}
            )

        logger.info(
            f"Created booking {booking.reference} for client {client.id} "
            f"on {booking_date} {time_window}"
        )

        context = booking_context(booking, client, service)
        hooks = PostCommitHooks()
        hooks.add('booking_confirmation', self.notifier.send_booking_confirmation, client.email, context)
        hooks.add('admin_notification', self.notifier.send_admin_notification, 'New booking', context)
        hooks.add('event', publish_booking_created, booking)
        results = hooks.run()

        if PostCommitHooks.succeeded(results, 'booking_confirmation'):
            booking.confirmation_sent = True
            booking.save(update_fields=['confirmation_sent', 'updated_at'])

        return booking

    def get_booking(self, booking_id: uuid.UUID) -> Booking:
        """Get a booking by ID."""
        booking_id = validate_uuid(booking_id, 'booking_id')
        try:
            return Booking.objects.get(id=booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFoundError(booking_id)

    def get_booking_by_reference(self, reference: str) -> Booking:
        """Get a booking by its reference code."""
        normalized = (reference or '').strip().upper()
        try:
            return Booking.objects.get(reference=normalized)
        except Booking.DoesNotExist:
            raise BookingNotFoundError(reference, message=f"Booking not found: {reference}")

    def get_bookings_by_client(
        self,
        client_id: uuid.UUID,
        status: str = None,
        upcoming: Optional[bool] = None
    ) -> List[Booking]:
        """
        A client's bookings.

        upcoming=True returns today onwards, soonest first; upcoming=False
        returns earlier bookings, most recent first.
        """
        client_id = validate_uuid(client_id, 'client_id')
        queryset = Booking.objects.filter(client_id=client_id)

        if status:
            queryset = queryset.filter(status=status)

        if upcoming is True:
            queryset = queryset.filter(date__gte=today()).order_by('date', 'time_window')
        elif upcoming is False:
            queryset = queryset.filter(date__lt=today()).order_by('-date', '-time_window')
        else:
            queryset = queryset.order_by('date', 'time_window')

        return list(queryset)

    def list_bookings(
        self,
        client_id: uuid.UUID = None,
        service_id: uuid.UUID = None,
        start_date: date = None,
        end_date: date = None,
        status: str = None,
        exclude_cancelled: bool = False
    ) -> List[Booking]:
        """List bookings with filters."""
        queryset = Booking.objects.all()

        if client_id:
            queryset = queryset.filter(client_id=client_id)

        if service_id:
            queryset = queryset.filter(service_id=service_id)

        if start_date:
            queryset = queryset.filter(date__gte=start_date)

        if end_date:
            queryset = queryset.filter(date__lte=end_date)

        if status:
            queryset = queryset.filter(status=status)
        elif exclude_cancelled:
            queryset = queryset.exclude(status=Booking.Status.CANCELLED)

        return list(queryset.order_by('date', 'time_window'))

    def get_series_info(self, booking: Booking) -> Optional[Dict[str, Any]]:
        """Describe the series a booking belongs to, or None if standalone."""
        if booking.is_series_child:
            parent = Booking.objects.filter(id=booking.parent_booking_id).first()
            siblings = Booking.objects.filter(
                parent_booking_id=booking.parent_booking_id
            ).exclude(id=booking.id).count()
            return {
                'type': 'child',
                'parent_booking_id': booking.parent_booking_id,
                'parent_reference': parent.reference if parent else None,
                'pattern': booking.recurrence_pattern,
                'sibling_count': siblings,
            }

        if booking.is_series_parent:
            return {
                'type': 'parent',
                'pattern': booking.recurrence_pattern,
                'child_count': len(booking.child_booking_ids),
                'child_booking_ids': booking.get_child_ids(),
                'recurrence_end_date': booking.recurrence_end_date,
                'recurrence_count': booking.recurrence_count,
            }

        return None

    def update_booking(
        self,
        booking_id: uuid.UUID,
        updated_by: uuid.UUID = None,
        **kwargs
    ) -> Booking:
        """
        Update non-identity fields of a booking.

        A ``status`` change goes through the same transition rules as the
        dedicated confirm/complete/cancel/no-show operations.
        """
        identity = [f for f in kwargs if f in self.IDENTITY_FIELDS]
        if identity:
            raise BookingValidationError(
                f"Cannot change identity fields: {', '.join(identity)}",
                field=identity[0]
            )

        unknown = [f for f in kwargs if f not in self.UPDATABLE_FIELDS]
        if unknown:
            raise BookingValidationError(
                f"Unknown fields: {', '.join(unknown)}",
                field=unknown[0]
            )

        booking = self.get_booking(booking_id)

        status = kwargs.pop('status', None)
        reason = kwargs.pop('cancellation_reason', None)
        if status is not None and status != booking.status:
            if status not in Booking.Status.values:
                raise BookingValidationError(f"Invalid status: {status}", field='status')
            if not booking.can_transition_to(status):
                raise BookingStateError(booking.id, booking.status, status)

        if 'urgency_level' in kwargs and kwargs['urgency_level'] not in Booking.UrgencyLevel.values:
            raise BookingValidationError(
                f"Invalid urgency level: {kwargs['urgency_level']}",
                field='urgency_level'
            )

        if kwargs:
            for field_name, value in kwargs.items():
                setattr(booking, field_name, value)
            booking.updated_by = updated_by
            booking.save()
            logger.info(f"Updated booking {booking.reference}: {', '.join(kwargs)}")
            publish_booking_status_changed(booking, EventType.BOOKING_UPDATED)

        if status is not None and status != booking.status:
            transitions = {
                Booking.Status.CONFIRMED: lambda: self.confirm(booking.id, updated_by),
                Booking.Status.COMPLETED: lambda: self.complete(booking.id, updated_by),
                Booking.Status.CANCELLED: lambda: self.cancel(booking.id, reason, updated_by),
                Booking.Status.NO_SHOW: lambda: self.mark_no_show(booking.id, updated_by),
            }
            booking = transitions[Booking.Status(status)]()

        return booking

    # ==========================================================================
    # Status Transitions
    # ==========================================================================

    def confirm(
        self,
        booking_id: uuid.UUID,
        confirmed_by: uuid.UUID = None
    ) -> Booking:
        """Confirm a pending booking."""
        booking = self.get_booking(booking_id)

        try:
            booking.updated_by = confirmed_by
            booking.confirm()
        except ValueError:
            raise BookingStateError(booking.id, booking.status, Booking.Status.CONFIRMED)

        logger.info(f"Confirmed booking {booking.reference}")
        publish_booking_status_changed(booking, EventType.BOOKING_CONFIRMED)
        return booking

    def complete(
        self,
        booking_id: uuid.UUID,
        completed_by: uuid.UUID = None
    ) -> Booking:
        """Complete a booking and drop its slot claim."""
        booking = self.get_booking(booking_id)

        with transaction.atomic():
            try:
                booking.updated_by = completed_by
                booking.complete()
            except ValueError:
                raise BookingStateError(booking.id, booking.status, Booking.Status.COMPLETED)
            self.slot_service.release_slot(booking.id, promote_waitlist=False)

        logger.info(f"Completed booking {booking.reference}")
        publish_booking_status_changed(booking, EventType.BOOKING_COMPLETED)
        return booking

    def mark_no_show(
        self,
        booking_id: uuid.UUID,
        marked_by: uuid.UUID = None
    ) -> Booking:
        """Mark a confirmed booking as no-show."""
        booking = self.get_booking(booking_id)

        try:
            booking.updated_by = marked_by
            booking.mark_no_show()
        except ValueError:
            raise BookingStateError(booking.id, booking.status, Booking.Status.NO_SHOW)

        logger.info(f"Marked booking {booking.reference} as no-show")
        publish_booking_status_changed(booking, EventType.BOOKING_NO_SHOW)
        return booking

    def cancel(
        self,
        booking_id: uuid.UUID,
        reason: str = None,
        cancelled_by: uuid.UUID = None
    ) -> Booking:
        """
        Cancel a single booking, release its slot and promote the waitlist.

        Cancelling an already cancelled booking is a no-op.
        """
        booking, _ = self._cancel_single(booking_id, reason, cancelled_by)
        return booking

    def _cancel_single(
        self,
        booking_id: uuid.UUID,
        reason: str = None,
        cancelled_by: uuid.UUID = None
    ):
        booking = self.get_booking(booking_id)

        if booking.status == Booking.Status.CANCELLED:
            logger.info(f"Booking {booking.reference} already cancelled")
            return booking, None

        with transaction.atomic():
            booking = Booking.objects.select_for_update().get(id=booking.id)
            try:
                booking.updated_by = cancelled_by
                booking.cancel(reason)
            except ValueError:
                raise BookingStateError(booking.id, booking.status, Booking.Status.CANCELLED)
            slot = self.slot_service.release_slot(booking.id, promote_waitlist=False)

        logger.info(f"Cancelled booking {booking.reference}")

        hooks = self.slot_service.after_release([slot] if slot else [])
        hooks.add('event', publish_booking_cancelled, booking, reason)
        hooks.run()

        return booking, slot

    def cancel_booking(
        self,
        booking_id: uuid.UUID,
        reason: str = None,
        scope: str = CancellationScope.SINGLE,
        cancelled_by: uuid.UUID = None
    ) -> CancellationResult:
        """
        Cancel a booking with a scope.

        ``future_only`` and ``entire_series`` apply to the whole series when
        the booking belongs to one; a standalone booking is cancelled alone.
        """
        if scope not in CancellationScope.ALL:
            raise BookingValidationError(f"Invalid cancellation scope: {scope}", field='scope')

        booking = self.get_booking(booking_id)

        in_series = booking.is_series_child or booking.is_series_parent
        if scope in CancellationScope.SERIES_SCOPES and in_series:
            series = self.series_service.cancel_series(booking, reason, scope, cancelled_by)
            booking.refresh_from_db()
            return CancellationResult(
                booking=booking,
                scope=scope,
                booking_ids=series.booking_ids,
                released_count=series.released_count,
                failed_releases=series.failed_releases,
            )

        was_cancelled = booking.status == Booking.Status.CANCELLED
        booking, slot = self._cancel_single(booking.id, reason, cancelled_by)
        return CancellationResult(
            booking=booking,
            scope=CancellationScope.SINGLE,
            booking_ids=[] if was_cancelled else [booking.id],
            released_count=1 if slot else 0,
        )

    # ==========================================================================
    # Recurring series
    # ==========================================================================

    def create_recurring_booking(
        self,
        client_id: uuid.UUID,
        service_id: uuid.UUID,
        date: date,
        time_window: str,
        pattern: str,
        end_date: date = None,
        count: int = None,
        **kwargs
    ) -> RecurrenceResult:
        """Create a parent booking and generate its series."""
        if pattern not in Booking.RecurrencePattern.values:
            raise BookingValidationError(f"Invalid recurrence pattern: {pattern}", field='pattern')
        if count is not None and (isinstance(count, bool) or not isinstance(count, int) or count < 0):
            raise BookingValidationError("count must be a positive integer", field='count')
        if end_date is not None:
            end_date = validate_date(end_date, 'end_date')

        parent = self.create_booking(client_id, service_id, date, time_window, **kwargs)

        result = self.recurrence_service.generate(parent, pattern, end_date=end_date, count=count)

        if result.bookings:
            hooks = PostCommitHooks()
            hooks.add(
                'series_created_event',
                publish_series_created,
                parent,
                result.booking_ids,
                len(result.skipped),
            )
            hooks.run()

        return result

    # ==========================================================================
    # Deletion
    # ==========================================================================

    def delete_booking(self, booking_id: uuid.UUID) -> int:
        """
        Physically delete a pending booking.

        Deleting a pending series parent deletes its children too. Every
        slot the deleted bookings held is released. Returns the number of
        bookings deleted.
        """
        booking = self.get_booking(booking_id)

        if booking.status != Booking.Status.PENDING:
            raise BookingValidationError(
                f"Only pending bookings can be deleted, booking is {booking.status}",
                field='status'
            )

        with transaction.atomic():
            children = list(Booking.objects.filter(parent_booking_id=booking.id))
            targets = [booking] + children
            target_ids = [b.id for b in targets]

            freed_slot_ids = list(
                Slot.objects.filter(booking_id__in=target_ids).values_list('id', flat=True)
            )
            for target in targets:
                self.slot_service.release_slot(target.id, promote_waitlist=False)

            if booking.parent_booking_id:
                parent = Booking.objects.select_for_update().filter(id=booking.parent_booking_id).first()
                if parent is not None:
                    parent.child_booking_ids = [
                        c for c in parent.child_booking_ids if c != str(booking.id)
                    ]
                    parent.save(update_fields=['child_booking_ids', 'updated_at'])

            deleted, _ = Booking.objects.filter(id__in=target_ids).delete()

        logger.info(f"Deleted booking {booking.reference} and {len(children)} children")

        freed = list(Slot.objects.filter(id__in=freed_slot_ids))
        hooks = self.slot_service.after_release(freed)
        hooks.add(
            'event',
            event_publisher.publish,
            EventType.BOOKING_DELETED,
            {'booking_id': booking.id, 'reference': booking.reference, 'deleted_ids': target_ids},
        )
        hooks.run()

        return deleted
