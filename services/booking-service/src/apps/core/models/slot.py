# services/booking-service/src/apps/core/models/slot.py
"""
Slot Model

Bookable (service, date, time window) units. Slots are created ahead of
demand and afterwards only change through claim/release.
"""

import uuid
from datetime import date

from django.db import models
from django.utils import timezone

from shared.common.mixins import UUIDPrimaryKeyMixin, TimestampMixin
from shared.common.validators import parse_time_window


class Slot(UUIDPrimaryKeyMixin, TimestampMixin):
    """
    A single bookable time window for a service on a date.

    ``is_available`` is False exactly when ``booking_id`` is set; the
    database enforces this with a check constraint.
    """

    service_id = models.UUIDField(db_index=True)
    date = models.DateField(db_index=True)
    time_window = models.CharField(max_length=11)
    is_available = models.BooleanField(default=True, db_index=True)
    booking_id = models.UUIDField(blank=True, null=True, db_index=True)

    class Meta:
        db_table = 'slots'
        ordering = ['date', 'time_window']
        indexes = [
            models.Index(fields=['service_id', 'date', 'is_available']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['service_id', 'date', 'time_window'],
                name='unique_slot_per_service_window'
            ),
            models.CheckConstraint(
                condition=(
                    models.Q(is_available=True, booking_id__isnull=True) |
                    models.Q(is_available=False, booking_id__isnull=False)
                ),
                name='slot_claim_consistent'
            ),
        ]

    def __str__(self):
        return f"{self.service_id} {self.date} {self.time_window}"

    def clean(self):
        parse_time_window(self.time_window)

    @property
    def start_time(self):
        return parse_time_window(self.time_window)[0]

    @property
    def end_time(self):
        return parse_time_window(self.time_window)[1]

    # ==========================================================================
    # Class Methods
    # ==========================================================================

    @classmethod
    def claim(
        cls,
        service_id: uuid.UUID,
        slot_date: date,
        time_window: str,
        booking_id: uuid.UUID
    ) -> int:
        """
        Atomically claim an available slot for a booking.

        Single conditional UPDATE; returns the number of rows claimed (0 or 1).
        """
        return cls.objects.filter(
            service_id=service_id,
            date=slot_date,
            time_window=time_window,
            is_available=True,
        ).update(
            is_available=False,
            booking_id=booking_id,
            updated_at=timezone.now(),
        )

    @classmethod
    def release_for_booking(cls, booking_id: uuid.UUID) -> int:
        """Release the slot held by a booking. Returns rows released (0 or 1)."""
        return cls.objects.filter(
            booking_id=booking_id,
            is_available=False,
        ).update(
            is_available=True,
            booking_id=None,
            updated_at=timezone.now(),
        )

    @classmethod
    def get_available(cls, service_id: uuid.UUID, slot_date: date):
        return cls.objects.filter(
            service_id=service_id,
            date=slot_date,
            is_available=True,
        ).order_by('time_window')
