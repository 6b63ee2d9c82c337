# services/booking-service/src/apps/core/services/recurrence_service.py
"""
Recurrence Service

Generates the child bookings of a recurring series from its parent.
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, List, Dict, Any

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.db import transaction

from shared.common.exceptions import ConflictError, NotFoundError, ValidationError
from shared.common.validators import validate_date

from apps.core.models import Booking
from .slot_service import SlotService

logger = logging.getLogger(__name__)

PATTERNS = (
    Booking.RecurrencePattern.DAILY,
    Booking.RecurrencePattern.WEEKLY,
    Booking.RecurrencePattern.BIWEEKLY,
    Booking.RecurrencePattern.MONTHLY,
)


@dataclass
class RecurrenceResult:
    """Outcome of generating a series."""
    parent: Booking
    pattern: str
    requested: int = 0
    bookings: List[Booking] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def parent_id(self) -> uuid.UUID:
        return self.parent.id

    @property
    def created(self) -> int:
        return len(self.bookings)

    @property
    def booking_ids(self) -> List[uuid.UUID]:
        return [b.id for b in self.bookings]


def period_delta(pattern: str, periods: int) -> relativedelta:
    """The offset of the n-th occurrence after the first."""
    if pattern == Booking.RecurrencePattern.DAILY:
        return relativedelta(days=periods)
    if pattern == Booking.RecurrencePattern.WEEKLY:
        return relativedelta(weeks=periods)
    if pattern == Booking.RecurrencePattern.BIWEEKLY:
        return relativedelta(weeks=periods * 2)
    if pattern == Booking.RecurrencePattern.MONTHLY:
        # relativedelta clamps to the last day of shorter months
        return relativedelta(months=periods)
    raise ValidationError(f"Unknown recurrence pattern: {pattern}", details={'field': 'pattern'})


def occurrence_date(start: date, pattern: str, index: int) -> date:
    return start + period_delta(pattern, index)


def calculate_iterations(
    pattern: str,
    start: date,
    end_date: Optional[date] = None,
    count: Optional[int] = None,
    max_occurrences: int = None,
    default_occurrences: int = None
) -> int:
    """
    How many occurrences to generate after the parent.

    ``count`` wins when positive; otherwise the number of whole pattern
    periods between ``start`` and ``end_date``; otherwise the default.
    Always capped at ``max_occurrences``.
    """
    if max_occurrences is None:
        max_occurrences = getattr(settings, 'RECURRENCE_MAX_OCCURRENCES', 52)
    if default_occurrences is None:
        default_occurrences = getattr(settings, 'RECURRENCE_DEFAULT_OCCURRENCES', 10)

    if count is not None and count > 0:
        iterations = count
    elif end_date is not None:
        if end_date <= start:
            return 0
        days = (end_date - start).days
        if pattern == Booking.RecurrencePattern.DAILY:
            iterations = days
        elif pattern == Booking.RecurrencePattern.WEEKLY:
            iterations = days // 7
        elif pattern == Booking.RecurrencePattern.BIWEEKLY:
            iterations = (days // 7) // 2
        else:
            delta = relativedelta(end_date, start)
            iterations = delta.years * 12 + delta.months
    else:
        iterations = default_occurrences

    return min(iterations, max_occurrences)


class RecurrenceService:
    """
    Service for generating recurring series.

    Every occurrence reserves its own slot. Occurrences whose slot is taken
    or missing are skipped, not retried. Any other failure of one occurrence
    is logged and skipped the same way, so the rest of the series is still
    generated and linked to the parent.
    """

    def __init__(self, slot_service: SlotService = None):
        self.slot_service = slot_service or SlotService()

    def generate(
        self,
        parent: Booking,
        pattern: str,
        end_date: date = None,
        count: int = None
    ) -> RecurrenceResult:
        """Create child bookings for ``parent`` and link them to it."""
        if not pattern or pattern == Booking.RecurrencePattern.NONE:
            return RecurrenceResult(parent=parent, pattern=Booking.RecurrencePattern.NONE)

        if pattern not in PATTERNS:
            raise ValidationError(
                f"Unknown recurrence pattern: {pattern}",
                details={'field': 'pattern', 'allowed': [str(p) for p in PATTERNS]}
            )

        if parent.is_series_child:
            raise ValidationError(
                "A series child cannot start its own series",
                details={'booking_id': str(parent.id), 'parent_booking_id': str(parent.parent_booking_id)}
            )

        if count is not None and (isinstance(count, bool) or not isinstance(count, int) or count < 0):
            raise ValidationError("count must be a positive integer", details={'field': 'count'})

        if end_date is not None:
            end_date = validate_date(end_date, 'end_date')

        iterations = calculate_iterations(pattern, parent.date, end_date, count)
        result = RecurrenceResult(parent=parent, pattern=pattern, requested=iterations)

        logger.info(
            f"Generating {iterations} recurring bookings for {parent.reference} "
            f"with pattern {pattern}"
        )

        try:
            for index in range(1, iterations + 1):
                child_date = occurrence_date(parent.date, pattern, index)
                try:
                    child = self._create_occurrence(parent, pattern, child_date)
                except (ConflictError, NotFoundError) as e:
                    logger.warning(
                        f"Skipping {child_date} {parent.time_window} for series "
                        f"{parent.reference}: {e.message}"
                    )
                    result.skipped.append({
                        'date': child_date,
                        'reason': e.error_code,
                        'message': e.message,
                    })
                    continue
                except Exception as e:
                    logger.exception(
                        f"Failed to create occurrence {child_date} for series {parent.reference}"
                    )
                    result.skipped.append({
                        'date': child_date,
                        'reason': getattr(e, 'error_code', type(e).__name__),
                        'message': str(e),
                    })
                    continue

                result.bookings.append(child)
                parent.add_child(child.id)
        finally:
            self._link_series(parent, result, end_date, count)

        logger.info(
            f"Series {parent.reference}: {result.created} of {iterations} "
            f"occurrences created, {len(result.skipped)} skipped"
        )
        return result

    def _link_series(
        self,
        parent: Booking,
        result: RecurrenceResult,
        end_date: Optional[date],
        count: Optional[int]
    ):
        """Store the series fields on the parent. Without children it stays standalone."""
        if not result.bookings:
            return

        parent.is_recurring = True
        parent.recurrence_pattern = result.pattern
        parent.recurrence_end_date = end_date
        parent.recurrence_count = count
        parent.save(update_fields=[
            'is_recurring',
            'recurrence_pattern',
            'recurrence_end_date',
            'recurrence_count',
            'child_booking_ids',
            'updated_at',
        ])

    def _create_occurrence(self, parent: Booking, pattern: str, child_date: date) -> Booking:
        """Reserve and create one child inside its own savepoint."""
        child_id = uuid.uuid4()

        with transaction.atomic():
            reservation = self.slot_service.reserve_slot(
                parent.service_id,
                child_date,
                parent.time_window,
                child_id,
                allow_untracked=False,
            )

            child = Booking.objects.create(
                id=child_id,
                client_id=parent.client_id,
                service_id=parent.service_id,
                service_name=parent.service_name,
                date=child_date,
                time_window=parent.time_window,
                status=Booking.Status.CONFIRMED,
                urgency_level=parent.urgency_level,
                is_recurring=True,
                recurrence_pattern=pattern,
                parent_booking_id=parent.id,
                notes=f"{parent.notes} (Recurring)" if parent.notes else "Recurring booking",
                created_by=parent.created_by,
            )

        logger.info(f"Created recurring booking {child.reference} for {child_date} (slot {reservation.slot.id})")
        return child
