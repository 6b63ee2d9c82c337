# services/booking-service/src/apps/core/events.py
"""
Domain events emitted by the booking service.

Every state change that other services care about (bookings, series,
slots, waitlist) is published as a JSON envelope. Publishing never raises:
a failed publish is logged and reported as False so it cannot undo the
change that triggered it.
"""

import json
import logging
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

import redis
from django.conf import settings

logger = logging.getLogger(__name__)


class EventType:
    """Routing keys, ``<aggregate>.<what happened>``."""

    BOOKING_CREATED = 'booking.created'
    BOOKING_UPDATED = 'booking.updated'
    BOOKING_CONFIRMED = 'booking.confirmed'
    BOOKING_CANCELLED = 'booking.cancelled'
    BOOKING_COMPLETED = 'booking.completed'
    BOOKING_NO_SHOW = 'booking.no_show'
    BOOKING_DELETED = 'booking.deleted'

    SERIES_CREATED = 'booking.series_created'
    SERIES_CANCELLED = 'booking.series_cancelled'

    SLOTS_GENERATED = 'slot.generated'
    SLOTS_CLEARED = 'slot.cleared'
    SLOT_RELEASED = 'slot.released'

    WAITLIST_ENTRY_CREATED = 'waitlist.entry_created'
    WAITLIST_ENTRY_NOTIFIED = 'waitlist.entry_notified'
    WAITLIST_ENTRY_BOOKED = 'waitlist.entry_booked'
    WAITLIST_ENTRY_CANCELLED = 'waitlist.entry_cancelled'
    WAITLIST_ENTRIES_EXPIRED = 'waitlist.entries_expired'


class JSONEncoder(json.JSONEncoder):
    """Serializes ids, dates and money the way consumers expect them."""

    def default(self, obj):
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return float(obj)
        return super().default(obj)


class EventPublisher:
    """
    Sends event envelopes to the backend named by EVENT_BACKEND.

    ``log`` only writes the envelope to the log; ``redis`` publishes it on
    the ``events:<event_type>`` pub/sub channel.
    """

    def __init__(self):
        self.source = getattr(settings, 'SERVICE_NAME', 'booking-service')
        self._connection = None

    @property
    def enabled(self) -> bool:
        return getattr(settings, 'EVENT_PUBLISHING_ENABLED', True)

    def envelope(
        self,
        event_type: str,
        payload: Dict[str, Any],
        correlation_id: str = None,
        metadata: Dict[str, Any] = None
    ) -> Dict[str, Any]:
        return {
            'event_type': event_type,
            'service': self.source,
            'timestamp': datetime.now(dt_timezone.utc).isoformat(),
            'correlation_id': correlation_id,
            'payload': payload,
            'metadata': metadata or {},
        }

    def publish(
        self,
        event_type: str,
        payload: Dict[str, Any],
        correlation_id: str = None,
        metadata: Dict[str, Any] = None
    ) -> bool:
        """Publish one event. Returns False when disabled or on failure."""
        if not self.enabled:
            return False

        try:
            message = json.dumps(
                self.envelope(event_type, payload, correlation_id, metadata),
                cls=JSONEncoder
            )
            if getattr(settings, 'EVENT_BACKEND', 'log') == 'redis':
                self._redis().publish(f"events:{event_type}", message)
            else:
                logger.debug(f"Event {event_type}: {message[:500]}")
        except (TypeError, ValueError, redis.RedisError) as e:
            logger.error(f"Could not publish {event_type}: {e}")
            return False

        logger.info(f"Published {event_type}", extra={'event_type': event_type})
        return True

    def _redis(self) -> redis.Redis:
        if self._connection is None:
            self._connection = redis.Redis.from_url(settings.REDIS_URL)
        return self._connection


event_publisher = EventPublisher()


def publish_booking_created(booking) -> bool:
    """Publish booking created event."""
    return event_publisher.publish(
        EventType.BOOKING_CREATED,
        payload={
            'booking_id': booking.id,
            'reference': booking.reference,
            'client_id': booking.client_id,
            'service_id': booking.service_id,
            'date': booking.date,
            'time_window': booking.time_window,
            'status': booking.status,
            'parent_booking_id': booking.parent_booking_id,
            'created_by': booking.created_by,
        }
    )


def publish_booking_status_changed(booking, event_type: str) -> bool:
    """Publish a confirm/complete/no-show/update event."""
    return event_publisher.publish(
        event_type,
        payload={
            'booking_id': booking.id,
            'reference': booking.reference,
            'status': booking.status,
            'date': booking.date,
            'time_window': booking.time_window,
            'updated_by': booking.updated_by,
        }
    )


def publish_booking_cancelled(booking, reason: str = None) -> bool:
    """Publish booking cancelled event."""
    return event_publisher.publish(
        EventType.BOOKING_CANCELLED,
        payload={
            'booking_id': booking.id,
            'reference': booking.reference,
            'client_id': booking.client_id,
            'service_id': booking.service_id,
            'date': booking.date,
            'time_window': booking.time_window,
            'reason': reason,
            'cancelled_at': booking.cancelled_at,
        }
    )


def publish_series_created(parent, child_ids: List[UUID], skipped: int) -> bool:
    """Publish recurring series created event."""
    return event_publisher.publish(
        EventType.SERIES_CREATED,
        payload={
            'parent_booking_id': parent.id,
            'reference': parent.reference,
            'pattern': parent.recurrence_pattern,
            'child_booking_ids': child_ids,
            'skipped_count': skipped,
        }
    )


def publish_series_cancelled(root_id: UUID, booking_ids: List[UUID], scope: str, reason: str = None) -> bool:
    """Publish series cancelled event."""
    return event_publisher.publish(
        EventType.SERIES_CANCELLED,
        payload={
            'parent_booking_id': root_id,
            'booking_ids': booking_ids,
            'scope': scope,
            'reason': reason,
        }
    )


def publish_slot_released(slot) -> bool:
    """Publish slot released event."""
    return event_publisher.publish(
        EventType.SLOT_RELEASED,
        payload={
            'slot_id': slot.id,
            'service_id': slot.service_id,
            'date': slot.date,
            'time_window': slot.time_window,
        }
    )


def publish_waitlist_event(entry, event_type: str) -> bool:
    """Publish a waitlist entry event."""
    return event_publisher.publish(
        event_type,
        payload={
            'waitlist_entry_id': entry.id,
            'client_id': entry.client_id,
            'service_id': entry.service_id,
            'requested_date': entry.requested_date,
            'status': entry.status,
            'priority': entry.priority,
            'booking_id': entry.booking_id,
        }
    )
