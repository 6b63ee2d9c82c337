# shared/common/mixins.py
"""
Reusable Model Mixins

Abstract bases shared by the scheduling models. Records are keyed by UUID
so ids can be handed out before the row exists (bookings claim their slot
with an id that is only inserted afterwards).
"""

import uuid
from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """UUID primary key, generated client side."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )

    class Meta:
        abstract = True


class TimestampMixin(models.Model):
    """Creation and last-change timestamps."""

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    # Bulk .update() calls must set this explicitly
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class AuditMixin(models.Model):
    """Ids of the users that created and last changed the record."""

    created_by = models.UUIDField(null=True, blank=True, db_index=True)
    updated_by = models.UUIDField(null=True, blank=True)

    class Meta:
        abstract = True


class ActiveMixin(models.Model):
    """
    Soft on/off switch.

    Inactive clients and services stay in place for history but cannot
    take new bookings.
    """

    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        abstract = True


class MetadataMixin(models.Model):
    """Free-form JSON attached to a record."""

    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        abstract = True
