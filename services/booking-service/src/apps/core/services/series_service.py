# services/booking-service/src/apps/core/services/series_service.py
"""
Series Cancellation Service

Cancels a recurring series, entirely or from a booking onwards.
"""

import uuid
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from shared.common.exceptions import ValidationError
from shared.common.utils import today

from apps.core.events import publish_series_cancelled
from apps.core.models import Booking
from .exceptions import BookingNotFoundError
from .slot_service import SlotService

logger = logging.getLogger(__name__)


class CancellationScope:
    """How much of a series a cancellation covers."""

    SINGLE = 'single'
    FUTURE_ONLY = 'future_only'
    ENTIRE_SERIES = 'entire_series'

    SERIES_SCOPES = (FUTURE_ONLY, ENTIRE_SERIES)
    ALL = (SINGLE, FUTURE_ONLY, ENTIRE_SERIES)


@dataclass
class SeriesCancellationResult:
    """Aggregate outcome of a series cancellation."""
    root_id: uuid.UUID
    scope: str
    booking_ids: List[uuid.UUID] = field(default_factory=list)
    released_count: int = 0
    failed_releases: Dict[str, str] = field(default_factory=dict)

    @property
    def cancelled_count(self) -> int:
        return len(self.booking_ids)


class SeriesCancellationService:
    """
    Cancels series members in one bulk update, then releases their slots
    one by one. A failed release is reported in the result and does not
    block the others.
    """

    def __init__(self, slot_service: SlotService = None):
        self.slot_service = slot_service or SlotService()

    def resolve_root(self, booking: Booking) -> Booking:
        """The series parent of a booking (the booking itself for a parent)."""
        if booking.parent_booking_id is None:
            return booking

        try:
            return Booking.objects.get(id=booking.parent_booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFoundError(
                booking.parent_booking_id,
                message=f"Parent booking {booking.parent_booking_id} not found"
            )

    def select_bookings(self, booking: Booking, root: Booking, scope: str):
        """
        Series members a cancellation applies to.

        future_only from the parent keeps children dated before today;
        future_only from a child keeps siblings dated before that child.
        """
        if scope == CancellationScope.ENTIRE_SERIES:
            queryset = Booking.get_series(root.id)
        elif booking.id == root.id:
            queryset = Booking.objects.filter(
                Q(id=root.id) | Q(parent_booking_id=root.id, date__gte=today())
            )
        else:
            queryset = Booking.objects.filter(
                Q(id=booking.id) | Q(parent_booking_id=root.id, date__gte=booking.date)
            )

        return queryset.exclude(
            status__in=Booking.get_terminal_statuses()
        ).order_by('date', 'time_window')

    def cancel_series(
        self,
        booking: Booking,
        reason: str = None,
        scope: str = CancellationScope.FUTURE_ONLY,
        cancelled_by: uuid.UUID = None
    ) -> SeriesCancellationResult:
        """Cancel the selected part of the series ``booking`` belongs to."""
        if scope not in CancellationScope.SERIES_SCOPES:
            raise ValidationError(
                f"Invalid series cancellation scope: {scope}",
                details={'field': 'scope', 'allowed': list(CancellationScope.SERIES_SCOPES)}
            )

        root = self.resolve_root(booking)
        result = SeriesCancellationResult(root_id=root.id, scope=scope)

        with transaction.atomic():
            result.booking_ids = list(
                self.select_bookings(booking, root, scope).values_list('id', flat=True)
            )
            now = timezone.now()
            Booking.objects.filter(id__in=result.booking_ids).update(
                status=Booking.Status.CANCELLED,
                cancellation_reason=reason,
                cancelled_at=now,
                updated_at=now,
                updated_by=cancelled_by,
            )

        logger.info(
            f"Cancelled {result.cancelled_count} bookings of series {root.reference} "
            f"(scope {scope})"
        )

        freed = []
        for booking_id in result.booking_ids:
            try:
                slot = self.slot_service.release_slot(booking_id, promote_waitlist=False)
            except Exception as e:
                logger.exception(f"Failed to release slot for booking {booking_id}: {e}")
                result.failed_releases[str(booking_id)] = str(e)
                continue
            if slot is not None:
                freed.append(slot)

        result.released_count = len(freed)
        if result.failed_releases:
            logger.error(
                f"Series {root.reference}: {len(result.failed_releases)} slot releases failed"
            )

        hooks = self.slot_service.after_release(freed)
        hooks.add(
            'series_cancelled_event',
            publish_series_cancelled,
            root.id,
            result.booking_ids,
            scope,
            reason,
        )
        hooks.run()

        return result
