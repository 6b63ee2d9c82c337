# services/booking-service/src/apps/core/models/service.py
"""
Service Model

Bookable consultation types.
"""

from decimal import Decimal

from django.db import models

from shared.common.mixins import UUIDPrimaryKeyMixin, TimestampMixin, ActiveMixin


class Service(UUIDPrimaryKeyMixin, TimestampMixin, ActiveMixin):
    """A consultation type that slots are generated for."""

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)
    category = models.CharField(max_length=100, blank=True, null=True)
    duration_minutes = models.PositiveIntegerField(default=60)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00')
    )

    class Meta:
        db_table = 'services'
        ordering = ['name']

    def __str__(self):
        return self.name
