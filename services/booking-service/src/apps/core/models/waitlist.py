# services/booking-service/src/apps/core/models/waitlist.py
"""
Waitlist Model

Manages the waiting list for fully booked service dates.
"""

import uuid
from datetime import datetime, timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone

from shared.common.mixins import UUIDPrimaryKeyMixin, TimestampMixin


class WaitlistEntry(UUIDPrimaryKeyMixin, TimestampMixin):
    """
    Waitlist entry for a service on a requested date.

    Entries are promoted highest priority first, oldest first within a
    priority, when a slot on that date frees up.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        NOTIFIED = 'notified', 'Notified'
        BOOKED = 'booked', 'Booked'
        EXPIRED = 'expired', 'Expired'
        CANCELLED = 'cancelled', 'Cancelled'

    # Requester
    client_id = models.UUIDField(db_index=True)

    # Request Details
    service_id = models.UUIDField(db_index=True)
    requested_date = models.DateField(db_index=True)
    preferred_time_windows = models.JSONField(default=list, blank=True)

    # Status
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )

    # Priority
    priority = models.PositiveSmallIntegerField(
        default=0,
        help_text="0-10, higher priority entries are processed first"
    )

    # Notification / booking
    notified_at = models.DateTimeField(blank=True, null=True)
    booked_at = models.DateTimeField(blank=True, null=True)
    booking_id = models.UUIDField(blank=True, null=True)

    # Notes
    notes = models.TextField(blank=True, null=True)
    cancellation_reason = models.TextField(blank=True, null=True)

    # Expiration
    expires_at = models.DateTimeField(db_index=True)

    class Meta:
        db_table = 'waitlist'
        ordering = ['-priority', 'created_at']
        indexes = [
            models.Index(fields=['service_id', 'requested_date', 'status']),
            models.Index(fields=['client_id', 'status']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['client_id', 'service_id', 'requested_date'],
                condition=models.Q(status='pending'),
                name='unique_pending_waitlist_entry'
            ),
            models.CheckConstraint(
                condition=models.Q(priority__lte=10),
                name='waitlist_priority_range'
            ),
        ]

    def __str__(self):
        return f"Waitlist: {self.client_id} for {self.requested_date}"

    def save(self, *args, **kwargs):
        # Set default expiration
        if not self.expires_at:
            days = getattr(settings, 'WAITLIST_DEFAULT_EXPIRY_DAYS', 30)
            self.expires_at = timezone.make_aware(
                datetime.combine(
                    self.requested_date + timedelta(days=days),
                    datetime.min.time()
                )
            )

        super().save(*args, **kwargs)

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= timezone.now()

    @property
    def is_active(self) -> bool:
        return self.status in (self.Status.PENDING, self.Status.NOTIFIED)

    # ==========================================================================
    # Status Transitions
    # ==========================================================================

    def mark_notified(self):
        """Record that the client was told about a free slot."""
        if self.status != self.Status.PENDING:
            raise ValueError(f"Cannot notify entry in {self.status} status")

        self.status = self.Status.NOTIFIED
        self.notified_at = timezone.now()
        self.save(update_fields=['status', 'notified_at', 'updated_at'])

    def mark_booked(self, booking_id: uuid.UUID):
        """Record the booking that fulfilled this entry."""
        if not self.is_active:
            raise ValueError(f"Cannot book entry in {self.status} status")

        self.status = self.Status.BOOKED
        self.booked_at = timezone.now()
        self.booking_id = booking_id
        self.save(update_fields=['status', 'booked_at', 'booking_id', 'updated_at'])

    def cancel(self, reason: str = None):
        """Cancel the waitlist entry."""
        if not self.is_active:
            raise ValueError(f"Cannot cancel entry in {self.status} status")

        self.status = self.Status.CANCELLED
        self.cancellation_reason = reason
        self.save(update_fields=['status', 'cancellation_reason', 'updated_at'])

    # ==========================================================================
    # Class Methods
    # ==========================================================================

    @classmethod
    def get_promotion_candidates(cls, service_id: uuid.UUID, requested_date):
        """Pending, unexpired entries in promotion order."""
        return cls.objects.filter(
            service_id=service_id,
            requested_date=requested_date,
            status=cls.Status.PENDING,
            expires_at__gt=timezone.now(),
        ).order_by('-priority', 'created_at')

    @classmethod
    def process_expired_entries(cls) -> int:
        """Mark pending entries past their expiry as expired."""
        queryset = cls.objects.filter(
            status=cls.Status.PENDING,
            expires_at__lte=timezone.now()
        )

        return queryset.update(status=cls.Status.EXPIRED, updated_at=timezone.now())
