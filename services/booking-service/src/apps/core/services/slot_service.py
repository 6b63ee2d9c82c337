# services/booking-service/src/apps/core/services/slot_service.py
"""
Slot Service

Reservation and release of slots, plus bulk slot generation.

The slot row is the only shared mutable resource in the system. Both
reserve and release are single conditional UPDATEs, so the database decides
which of two concurrent callers wins.
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, List

from django.conf import settings
from django.db import transaction

from shared.common.exceptions import ValidationError
from shared.common.utils import date_range, is_weekend
from shared.common.validators import (
    validate_uuid,
    validate_date,
    validate_date_range,
    validate_time_window,
    validate_time_windows,
)

from apps.core.events import EventType, event_publisher, publish_slot_released
from apps.core.hooks import PostCommitHooks
from apps.core.models import Slot
from .directory import Directory
from .exceptions import SlotConflictError, SlotNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class SlotReservation:
    """Result of a reservation attempt."""
    slot: Optional[Slot]
    degraded: bool = False

    @property
    def is_tracked(self) -> bool:
        return self.slot is not None


class SlotService:
    """
    Service for managing slots.

    Handles:
    - Atomic reserve / release
    - Availability queries
    - Bulk generation and clearing
    """

    def __init__(self, directory: Directory = None, notifier=None):
        self.directory = directory or Directory()
        self.notifier = notifier

    # ==========================================================================
    # Reservation
    # ==========================================================================

    def reserve_slot(
        self,
        service_id: uuid.UUID,
        slot_date: date,
        time_window: str,
        booking_id: uuid.UUID,
        allow_untracked: bool = None
    ) -> SlotReservation:
        """
        Claim the slot for a booking.

        Raises SlotConflictError when the slot exists but is taken. When no
        slot record exists, raises SlotNotFoundError unless untracked
        bookings are allowed (SLOT_FALLBACK_ENABLED), in which case the
        reservation comes back degraded with no slot.
        """
        service_id = validate_uuid(service_id, 'service_id')
        booking_id = validate_uuid(booking_id, 'booking_id')
        slot_date = validate_date(slot_date, 'date')
        validate_time_window(time_window)

        claimed = Slot.claim(service_id, slot_date, time_window, booking_id)
        if claimed:
            slot = Slot.objects.get(
                service_id=service_id,
                date=slot_date,
                time_window=time_window,
            )
            logger.info(f"Reserved slot {slot.id} for booking {booking_id}")
            return SlotReservation(slot=slot)

        if Slot.objects.filter(
            service_id=service_id,
            date=slot_date,
            time_window=time_window,
        ).exists():
            logger.info(
                f"Slot {slot_date} {time_window} for service {service_id} "
                f"already taken, booking {booking_id} rejected"
            )
            raise SlotConflictError(service_id, slot_date, time_window)

        if allow_untracked is None:
            allow_untracked = getattr(settings, 'SLOT_FALLBACK_ENABLED', False)

        if allow_untracked:
            logger.warning(
                f"No slot record for service {service_id} on {slot_date} "
                f"{time_window}; booking {booking_id} proceeds untracked"
            )
            return SlotReservation(slot=None, degraded=True)

        raise SlotNotFoundError(
            f"No slot for {slot_date} {time_window}",
            details={
                'service_id': str(service_id),
                'date': slot_date.isoformat(),
                'time_window': time_window,
            }
        )

    def release_slot(
        self,
        booking_id: uuid.UUID,
        promote_waitlist: bool = True
    ) -> Optional[Slot]:
        """
        Free the slot held by a booking.

        Idempotent: returns None when the booking holds no slot. When a slot
        is actually freed and promote_waitlist is set, the waitlist for that
        service and date is promoted (best effort).
        """
        booking_id = validate_uuid(booking_id, 'booking_id')

        slot = Slot.objects.filter(booking_id=booking_id).first()
        if slot is None:
            logger.debug(f"Booking {booking_id} holds no slot, nothing to release")
            return None

        if not Slot.release_for_booking(booking_id):
            # Released concurrently between the lookup and the update
            return None

        slot.refresh_from_db()
        logger.info(f"Released slot {slot.id} held by booking {booking_id}")

        if promote_waitlist:
            self.after_release([slot]).run()

        return slot

    def after_release(self, slots: List[Slot], hooks: PostCommitHooks = None) -> PostCommitHooks:
        """Queue the release event and waitlist promotion for freed slots."""
        from .waitlist_service import WaitlistService

        hooks = hooks if hooks is not None else PostCommitHooks()
        waitlist_service = WaitlistService(
            slot_service=self,
            directory=self.directory,
            notifier=self.notifier,
        )

        for slot in slots:
            hooks.add(f'slot_released:{slot.id}', publish_slot_released, slot)
            hooks.add(
                f'waitlist_promotion:{slot.id}',
                waitlist_service.promote,
                slot.service_id,
                slot.date,
                time_window=slot.time_window,
            )
        return hooks

    # ==========================================================================
    # Queries
    # ==========================================================================

    def get_slot(self, slot_id: uuid.UUID) -> Slot:
        """Get a slot by ID."""
        slot_id = validate_uuid(slot_id, 'slot_id')
        try:
            return Slot.objects.get(id=slot_id)
        except Slot.DoesNotExist:
            raise SlotNotFoundError(
                f"Slot not found: {slot_id}",
                details={'slot_id': str(slot_id)}
            )

    def get_slot_for_booking(self, booking_id: uuid.UUID) -> Optional[Slot]:
        return Slot.objects.filter(booking_id=booking_id).first()

    def get_available_slots(self, service_id: uuid.UUID, slot_date: date) -> List[Slot]:
        """Available slots for a service on a date, ordered by window."""
        service_id = validate_uuid(service_id, 'service_id')
        slot_date = validate_date(slot_date, 'date')
        return list(Slot.get_available(service_id, slot_date))

    # ==========================================================================
    # Bulk maintenance
    # ==========================================================================

    @transaction.atomic
    def generate_slots(
        self,
        start_date: date,
        end_date: date,
        service_ids: List[uuid.UUID],
        time_windows: List[str],
        skip_weekends: bool = True
    ) -> int:
        """
        Create slots for every service, day and window in the range.

        Existing slots are left untouched. Returns the number created.
        """
        start_date = validate_date(start_date, 'start_date')
        end_date = validate_date(end_date, 'end_date')
        validate_date_range(
            start_date,
            end_date,
            max_days=getattr(settings, 'SLOT_GENERATION_MAX_DAYS', 366),
            field_name='slot generation range'
        )

        if not service_ids:
            raise ValidationError("At least one service is required", details={'field': 'service_ids'})
        services = self.directory.find_services(service_ids)

        windows = validate_time_windows(time_windows, 'time_windows')
        if not windows:
            raise ValidationError("At least one time window is required", details={'field': 'time_windows'})

        existing = set(
            Slot.objects.filter(
                service_id__in=[s.id for s in services],
                date__gte=start_date,
                date__lte=end_date,
            ).values_list('service_id', 'date', 'time_window')
        )

        new_slots = []
        for day in date_range(start_date, end_date):
            if skip_weekends and is_weekend(day):
                continue
            for service in services:
                for window in windows:
                    if (service.id, day, window) in existing:
                        continue
                    new_slots.append(
                        Slot(service_id=service.id, date=day, time_window=window)
                    )

        Slot.objects.bulk_create(new_slots, batch_size=500, ignore_conflicts=True)

        logger.info(
            f"Generated {len(new_slots)} slots from {start_date} to {end_date} "
            f"for {len(services)} services"
        )
        event_publisher.publish(
            EventType.SLOTS_GENERATED,
            payload={
                'start_date': start_date,
                'end_date': end_date,
                'service_ids': [s.id for s in services],
                'count': len(new_slots),
            }
        )
        return len(new_slots)

    def clear_slots(
        self,
        start_date: date,
        end_date: date,
        service_ids: List[uuid.UUID] = None
    ) -> int:
        """Delete available slots in the range. Claimed slots are kept."""
        start_date = validate_date(start_date, 'start_date')
        end_date = validate_date(end_date, 'end_date')
        validate_date_range(start_date, end_date, max_days=3660, field_name='slot clearing range')

        queryset = Slot.objects.filter(
            date__gte=start_date,
            date__lte=end_date,
            is_available=True,
        )
        if service_ids:
            queryset = queryset.filter(
                service_id__in=[validate_uuid(s, 'service_ids') for s in service_ids]
            )

        deleted, _ = queryset.delete()

        logger.info(f"Cleared {deleted} available slots from {start_date} to {end_date}")
        event_publisher.publish(
            EventType.SLOTS_CLEARED,
            payload={'start_date': start_date, 'end_date': end_date, 'count': deleted}
        )
        return deleted
