# services/booking-service/src/apps/core/notifications.py
"""
Booking Service Notifications

Outbound client/admin messages. Senders return True when the message was
handed off and False when it was not; callers treat both outcomes as
best effort.
"""

import logging
from typing import Any, Dict, Optional

from django.conf import settings

from shared.common.clients import NotificationServiceClient
from shared.common.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class NotificationSender:
    """Interface for delivering booking and waitlist messages."""

    def send_booking_confirmation(self, recipient: str, context: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def send_admin_notification(self, title: str, context: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def send_waitlist_notification(self, recipient: str, context: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def send_waitlist_confirmation(self, recipient: str, context: Dict[str, Any]) -> bool:
        raise NotImplementedError


class LoggingNotificationSender(NotificationSender):
    """Writes notifications to the log. Used in development and tests."""

    def _log(self, kind: str, recipient: str, context: Dict[str, Any]) -> bool:
        logger.info(
            f"Notification {kind} for {recipient}",
            extra={'notification_type': kind, 'recipient': recipient, 'context': context}
        )
        return True

    def send_booking_confirmation(self, recipient, context):
        return self._log('booking_confirmation', recipient, context)

    def send_admin_notification(self, title, context):
        return self._log('admin_notification', settings.ADMIN_NOTIFICATION_EMAIL, {
            'title': title, **context
        })

    def send_waitlist_notification(self, recipient, context):
        return self._log('waitlist_notification', recipient, context)

    def send_waitlist_confirmation(self, recipient, context):
        return self._log('waitlist_confirmation', recipient, context)


class HttpNotificationSender(NotificationSender):
    """Delivers notifications through the notification service."""

    def __init__(self, client: Optional[NotificationServiceClient] = None):
        self.client = client or NotificationServiceClient()

    def _send(
        self,
        recipient: str,
        title: str,
        message: str,
        notification_type: str,
        context: Dict[str, Any]
    ) -> bool:
        try:
            self.client.send_notification(
                recipient=recipient,
                title=title,
                message=message,
                notification_type=notification_type,
                data=context,
            )
            return True
        except ExternalServiceError as e:
            logger.error(
                f"Failed to send {notification_type} to {recipient}: {e.message}",
                extra={'details': e.details}
            )
            return False

    def send_booking_confirmation(self, recipient, context):
        return self._send(
            recipient,
            'Booking confirmed',
            f"Your {context.get('service_name')} booking on {context.get('date')} "
            f"at {context.get('time_window')} is confirmed. "
            f"Reference: {context.get('reference')}",
            'booking_confirmation',
            context,
        )

    def send_admin_notification(self, title, context):
        return self._send(
            settings.ADMIN_NOTIFICATION_EMAIL,
            title,
            f"{title}: {context.get('reference', '')}".strip(),
            'admin_notification',
            context,
        )

    def send_waitlist_notification(self, recipient, context):
        return self._send(
            recipient,
            'A slot is available',
            f"A {context.get('service_name') or 'consultation'} slot opened up on "
            f"{context.get('date')}. Book it at {context.get('booking_url')}",
            'waitlist_notification',
            context,
        )

    def send_waitlist_confirmation(self, recipient, context):
        return self._send(
            recipient,
            'You are on the waitlist',
            f"We will let you know if a slot opens up on {context.get('requested_date')}.",
            'waitlist_confirmation',
            context,
        )


def get_notification_sender() -> NotificationSender:
    """Build the sender selected by NOTIFICATION_BACKEND."""
    backend = getattr(settings, 'NOTIFICATION_BACKEND', 'log')
    if backend == 'http':
        return HttpNotificationSender()
    return LoggingNotificationSender()


# =============================================================================
# Context builders
# =============================================================================

def booking_context(booking, client=None, service=None) -> Dict[str, Any]:
    """Template context for booking messages."""
    context = {
        'booking_id': str(booking.id),
        'reference': booking.reference,
        'service_name': booking.service_name or (service.name if service else None),
        'date': booking.date.isoformat(),
        'time_window': booking.time_window,
        'notes': booking.notes,
        'is_recurring': booking.is_recurring,
    }
    if client is not None:
        context['client_name'] = client.full_name
        context['client_email'] = client.email
    return context


def waitlist_context(entry, client=None, service=None, time_window: str = None) -> Dict[str, Any]:
    """Template context for waitlist messages."""
    context = {
        'entry_id': str(entry.id),
        'service_id': str(entry.service_id),
        'service_name': service.name if service else None,
        'date': entry.requested_date.isoformat(),
        'requested_date': entry.requested_date.isoformat(),
        'preferred_time_windows': list(entry.preferred_time_windows or []),
        'booking_url': (
            f"{settings.FRONTEND_URL}/book?service={entry.service_id}"
            f"&date={entry.requested_date.isoformat()}"
        ),
    }
    if time_window:
        context['time_window'] = time_window
        context['booking_url'] += f"&window={time_window}"
    if client is not None:
        context['client_name'] = client.full_name
    return context
