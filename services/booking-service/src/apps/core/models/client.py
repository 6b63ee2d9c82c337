# services/booking-service/src/apps/core/models/client.py
"""
Client Model

The people who book consultations.
"""

from django.db import models

from shared.common.mixins import UUIDPrimaryKeyMixin, TimestampMixin, ActiveMixin


class Client(UUIDPrimaryKeyMixin, TimestampMixin, ActiveMixin):
    """A client that can hold bookings and waitlist entries."""

    class ContactMethod(models.TextChoices):
        EMAIL = 'email', 'Email'
        PHONE = 'phone', 'Phone'
        SMS = 'sms', 'SMS'

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(db_index=True)
    phone = models.CharField(max_length=30, blank=True, null=True)
    preferred_contact_method = models.CharField(
        max_length=10,
        choices=ContactMethod.choices,
        default=ContactMethod.EMAIL
    )

    class Meta:
        db_table = 'clients'
        ordering = ['last_name', 'first_name']

    def __str__(self):
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
