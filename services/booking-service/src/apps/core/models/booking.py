# services/booking-service/src/apps/core/models/booking.py
"""
Booking Model

Core reservation management for consultations, including recurring series.
"""

import uuid
from typing import List

from django.conf import settings
from django.db import models
from django.utils import timezone

from shared.common.mixins import UUIDPrimaryKeyMixin, TimestampMixin, AuditMixin, MetadataMixin
from shared.common.utils import generate_code, today


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, AuditMixin, MetadataMixin):
    """
    Booking of a client into a service slot.

    A booking is standalone, the parent of a recurring series (it carries
    ``child_booking_ids``) or a child of one (it carries
    ``parent_booking_id``). Series links are plain ids, not foreign keys.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        CONFIRMED = 'confirmed', 'Confirmed'
        CANCELLED = 'cancelled', 'Cancelled'
        COMPLETED = 'completed', 'Completed'
        NO_SHOW = 'no-show', 'No Show'

    class RecurrencePattern(models.TextChoices):
        NONE = 'none', 'None'
        DAILY = 'daily', 'Daily'
        WEEKLY = 'weekly', 'Weekly'
        BIWEEKLY = 'biweekly', 'Every Two Weeks'
        MONTHLY = 'monthly', 'Monthly'

    class UrgencyLevel(models.TextChoices):
        LOW = 'low', 'Low'
        NORMAL = 'normal', 'Normal'
        HIGH = 'high', 'High'
        URGENT = 'urgent', 'Urgent'

    # Keyed by raw values so lookups work with strings loaded from the database
    ALLOWED_TRANSITIONS = {
        'pending': {'confirmed', 'cancelled'},
        'confirmed': {'completed', 'cancelled', 'no-show'},
        'cancelled': set(),
        'completed': set(),
        'no-show': set(),
    }

    # Reference
    reference = models.CharField(max_length=20, unique=True, db_index=True)

    # Who / what / when
    client_id = models.UUIDField(db_index=True)
    service_id = models.UUIDField(db_index=True)
    service_name = models.CharField(max_length=255, blank=True, null=True)
    date = models.DateField(db_index=True)
    time_window = models.CharField(max_length=11)

    # Status
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )

    # Details
    notes = models.TextField(blank=True, null=True)
    urgency_level = models.CharField(
        max_length=10,
        choices=UrgencyLevel.choices,
        default=UrgencyLevel.NORMAL
    )
    confirmation_sent = models.BooleanField(default=False)

    # Recurrence
    is_recurring = models.BooleanField(default=False)
    recurrence_pattern = models.CharField(
        max_length=20,
        choices=RecurrencePattern.choices,
        default=RecurrencePattern.NONE
    )
    recurrence_end_date = models.DateField(blank=True, null=True)
    recurrence_count = models.PositiveIntegerField(blank=True, null=True)
    parent_booking_id = models.UUIDField(blank=True, null=True, db_index=True)
    child_booking_ids = models.JSONField(default=list, blank=True)

    # Lifecycle timestamps
    cancellation_reason = models.TextField(blank=True, null=True)
    cancelled_at = models.DateTimeField(blank=True, null=True)
    completed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = 'bookings'
        ordering = ['date', 'time_window']
        indexes = [
            models.Index(fields=['client_id', 'date']),
            models.Index(fields=['service_id', 'date']),
            models.Index(fields=['status', 'date']),
        ]

    def __str__(self):
        return f"{self.reference}: {self.date} {self.time_window}"

    def save(self, *args, **kwargs):
        if not self.reference:
            self.reference = self.generate_reference()
        super().save(*args, **kwargs)

    @classmethod
    def generate_reference(cls) -> str:
        """Generate a reference code not used by any stored booking."""
        length = getattr(settings, 'BOOKING_REFERENCE_LENGTH', 8)
        attempts = getattr(settings, 'BOOKING_REFERENCE_MAX_ATTEMPTS', 10)

        for _ in range(attempts):
            reference = generate_code(length=length)
            if not cls.objects.filter(reference=reference).exists():
                return reference

        raise RuntimeError(f"Could not generate a unique reference after {attempts} attempts")

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_series_parent(self) -> bool:
        return bool(self.is_recurring and self.parent_booking_id is None and self.child_booking_ids)

    @property
    def is_series_child(self) -> bool:
        return self.parent_booking_id is not None

    @property
    def is_terminal(self) -> bool:
        return not self.ALLOWED_TRANSITIONS.get(str(self.status))

    @property
    def is_upcoming(self) -> bool:
        return self.date >= today()

    @property
    def can_cancel(self) -> bool:
        return self.can_transition_to(self.Status.CANCELLED)

    def can_transition_to(self, status: str) -> bool:
        return str(status) in self.ALLOWED_TRANSITIONS.get(str(self.status), set())

    @property
    def series_root_id(self) -> uuid.UUID:
        return self.parent_booking_id or self.id

    def get_child_ids(self) -> List[uuid.UUID]:
        return [uuid.UUID(str(child_id)) for child_id in self.child_booking_ids]

    # ==========================================================================
    # Status Transitions
    # ==========================================================================

    def _transition(self, status: str):
        if not self.can_transition_to(status):
            raise ValueError(f"Cannot move booking from {self.status} to {status}")
        self.status = status

    def confirm(self):
        """Confirm the booking."""
        self._transition(self.Status.CONFIRMED)
        self.save()

    def complete(self):
        """Complete the booking."""
        self._transition(self.Status.COMPLETED)
        self.completed_at = timezone.now()
        self.save()

    def cancel(self, reason: str = None):
        """Cancel the booking."""
        self._transition(self.Status.CANCELLED)
        self.cancelled_at = timezone.now()
        self.cancellation_reason = reason
        self.save()

    def mark_no_show(self):
        """Mark booking as no-show."""
        self._transition(self.Status.NO_SHOW)
        self.save()

    def add_child(self, child_id: uuid.UUID):
        """Append a child id to the series, keeping insertion order."""
        child_id = str(child_id)
        if child_id not in self.child_booking_ids:
            self.child_booking_ids = [*self.child_booking_ids, child_id]

    # ==========================================================================
    # Class Methods
    # ==========================================================================

    @classmethod
    def get_active_statuses(cls) -> list:
        """Get list of statuses that hold a slot claim."""
        return [cls.Status.PENDING, cls.Status.CONFIRMED]

    @classmethod
    def get_terminal_statuses(cls) -> list:
        return [cls.Status.CANCELLED, cls.Status.COMPLETED, cls.Status.NO_SHOW]

    @classmethod
    def get_series(cls, root_id: uuid.UUID):
        """Parent and all children of a series, ordered by date."""
        return cls.objects.filter(
            models.Q(id=root_id) | models.Q(parent_booking_id=root_id)
        ).order_by('date', 'time_window')
