# services/booking-service/src/tests/unit/test_infrastructure.py
"""
Unit Tests for supporting components

Post-commit hooks, notification delivery, service clients, events,
validators and periodic tasks.
"""

import json
import uuid
from datetime import date, time, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import httpx
import pytest
import redis
from django.utils import timezone

from apps.core.events import EventPublisher, EventType, JSONEncoder
from apps.core.hooks import PostCommitHooks
from apps.core.models import WaitlistEntry
from apps.core.notifications import (
    HttpNotificationSender,
    LoggingNotificationSender,
    get_notification_sender,
)
from apps.core.tasks import expire_stale_waitlist_entries, promote_waitlist_for_slot
from shared.common.clients import CircuitBreaker, CircuitBreakerError, NotificationServiceClient
from shared.common.exceptions import ExternalServiceError, ValidationError
from shared.common.validators import (
    parse_time_window,
    validate_date,
    validate_range,
    validate_time_windows,
    validate_uuid,
)


class TestPostCommitHooks:
    """Tests for PostCommitHooks."""

    def test_runs_every_hook_in_order(self):
        calls = []
        hooks = PostCommitHooks()
        hooks.add('first', calls.append, 1)
        hooks.add('second', calls.append, 2)

        results = hooks.run()

        assert calls == [1, 2]
        assert [r.success for r in results] == [True, True]

    def test_failure_does_not_stop_later_hooks(self):
        calls = []
        hooks = PostCommitHooks()
        hooks.add('broken', MagicMock(side_effect=RuntimeError("down")))
        hooks.add('after', calls.append, 'ran')

        results = hooks.run()

        assert calls == ['ran']
        assert results[0].success is False
        assert results[0].error == 'down'
        assert PostCommitHooks.succeeded(results, 'after')
        assert not PostCommitHooks.succeeded(results, 'broken')

    def test_false_return_counts_as_failure(self):
        hooks = PostCommitHooks().add('notify', lambda: False)

        results = hooks.run()

        assert not PostCommitHooks.succeeded(results, 'notify')

    def test_run_drains_queue(self):
        hooks = PostCommitHooks().add('once', lambda: None)
        assert len(hooks) == 1

        hooks.run()

        assert len(hooks) == 0
        assert hooks.run() == []


class TestNotificationSenders:
    """Tests for notification sender selection and HTTP delivery."""

    def test_backend_selection(self, settings):
        settings.NOTIFICATION_BACKEND = 'log'
        assert isinstance(get_notification_sender(), LoggingNotificationSender)

        settings.NOTIFICATION_BACKEND = 'http'
        assert isinstance(get_notification_sender(), HttpNotificationSender)

    def test_logging_sender_always_succeeds(self):
        sender = LoggingNotificationSender()

        assert sender.send_booking_confirmation('a@example.com', {'reference': 'ABC12345'})
        assert sender.send_admin_notification('New booking', {'reference': 'ABC12345'})

    def test_http_sender_posts_notification(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201, json={'id': 'n-1'})

        client = NotificationServiceClient(
            base_url='http://notifications.test',
            transport=httpx.MockTransport(handler),
        )
        sender = HttpNotificationSender(client)

        sent = sender.send_booking_confirmation('jane@example.com', {
            'reference': 'ABC12345',
            'service_name': 'consult',
            'date': '2025-03-10',
            'time_window': '10:00-11:00',
        })

        assert sent is True
        assert requests[0].url.path == '/api/v1/notifications/'
        body = json.loads(requests[0].content)
        assert body['recipient'] == 'jane@example.com'
        assert 'ABC12345' in body['message']

    def test_http_sender_reports_failure(self):
        client = NotificationServiceClient(
            base_url='http://notifications.test',
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        sender = HttpNotificationSender(client)

        assert sender.send_waitlist_notification('jane@example.com', {'date': '2025-03-10'}) is False


class TestServiceClient:
    """Tests for BaseServiceClient error handling and circuit breaking."""

    def test_server_errors_open_circuit(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        client = NotificationServiceClient(
            base_url='http://notifications.test',
            transport=httpx.MockTransport(handler),
            circuit_breaker=CircuitBreaker(failure_threshold=2),
        )

        for _ in range(2):
            with pytest.raises(ExternalServiceError):
                client.send_notification('a@example.com', 'Title', 'Body')

        with pytest.raises(CircuitBreakerError):
            client.send_notification('a@example.com', 'Title', 'Body')
        assert len(calls) == 2

    def test_client_errors_keep_circuit_closed(self):
        breaker = CircuitBreaker(failure_threshold=1)
        client = NotificationServiceClient(
            base_url='http://notifications.test',
            transport=httpx.MockTransport(lambda request: httpx.Response(400)),
            circuit_breaker=breaker,
        )

        with pytest.raises(ExternalServiceError) as exc_info:
            client.send_notification('a@example.com', 'Title', 'Body')

        assert exc_info.value.details['status_code'] == 400
        assert breaker.state == 'closed'

    def test_half_open_failure_reopens(self):
        breaker = CircuitBreaker(failure_threshold=1, timeout=0)
        breaker.record_failure()

        assert breaker.can_execute()
        assert breaker.state == 'half_open'

        breaker.record_failure()
        assert breaker.state == 'open'


class TestEvents:
    """Tests for event serialization and publishing."""

    def test_encoder_handles_domain_types(self):
        booking_id = uuid.uuid4()
        payload = json.dumps(
            {'id': booking_id, 'date': date(2025, 3, 10), 'price': Decimal('12.50')},
            cls=JSONEncoder,
        )

        assert json.loads(payload) == {'id': str(booking_id), 'date': '2025-03-10', 'price': 12.5}

    def test_disabled_publisher(self, settings):
        settings.EVENT_PUBLISHING_ENABLED = False

        assert EventPublisher().publish(EventType.BOOKING_CREATED, {'booking_id': uuid.uuid4()}) is False

    def test_log_backend(self, settings):
        settings.EVENT_PUBLISHING_ENABLED = True
        settings.EVENT_BACKEND = 'log'

        assert EventPublisher().publish(EventType.SLOT_RELEASED, {'slot_id': uuid.uuid4()}) is True

    def test_redis_backend(self, settings):
        settings.EVENT_PUBLISHING_ENABLED = True
        settings.EVENT_BACKEND = 'redis'
        connection = MagicMock()

        with patch('apps.core.events.redis.Redis.from_url', return_value=connection):
            assert EventPublisher().publish(EventType.BOOKING_CANCELLED, {'booking_id': 'b-1'})

        channel, message = connection.publish.call_args[0]
        assert channel == 'events:booking.cancelled'
        assert json.loads(message)['payload'] == {'booking_id': 'b-1'}

    def test_redis_failure_is_reported(self, settings):
        settings.EVENT_PUBLISHING_ENABLED = True
        settings.EVENT_BACKEND = 'redis'
        connection = MagicMock()
        connection.publish.side_effect = redis.ConnectionError("refused")

        with patch('apps.core.events.redis.Redis.from_url', return_value=connection):
            assert EventPublisher().publish(EventType.BOOKING_CANCELLED, {}) is False


class TestValidators:
    """Tests for shared validators."""

    def test_parse_time_window(self):
        assert parse_time_window('08:15-09:45') == (time(8, 15), time(9, 45))

    @pytest.mark.parametrize('value', ['8:00-9:00', '09:00-09:00', '10:00-09:00', None, 'all day'])
    def test_parse_time_window_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_time_window(value)

    def test_time_windows_keep_first_occurrence(self):
        assert validate_time_windows(['14:00-15:00', '09:00-10:00', '14:00-15:00']) == [
            '14:00-15:00', '09:00-10:00'
        ]
        assert validate_time_windows(None) == []

    def test_validate_range(self):
        assert validate_range(10, 0, 10, 'priority') == 10
        with pytest.raises(ValidationError):
            validate_range(False, 0, 10, 'priority')

    def test_validate_date(self):
        assert validate_date('2025-03-10') == date(2025, 3, 10)
        with pytest.raises(ValidationError) as exc_info:
            validate_date('10/03/2025', 'requested_date')
        assert exc_info.value.details['field'] == 'requested_date'

    def test_validate_uuid(self):
        value = uuid.uuid4()
        assert validate_uuid(str(value)) == value
        with pytest.raises(ValidationError):
            validate_uuid('123')


@pytest.mark.django_db
class TestTasks:
    """Tests for periodic Celery tasks."""

    def test_expire_stale_waitlist_entries(self, create_waitlist_entry):
        create_waitlist_entry(expires_at=timezone.now() - timedelta(hours=1))

        result = expire_stale_waitlist_entries()

        assert result == {'success': True, 'expired': 1}
        assert WaitlistEntry.objects.get().status == WaitlistEntry.Status.EXPIRED

    def test_promote_waitlist_for_slot(self, create_waitlist_entry, create_slot, future_date):
        entry = create_waitlist_entry()
        slot = create_slot(date=future_date)

        result = promote_waitlist_for_slot(str(slot.id))

        assert result['success'] is True
        assert result['notified'] == [str(entry.id)]

    def test_promote_waitlist_for_missing_slot(self):
        result = promote_waitlist_for_slot(str(uuid.uuid4()))

        assert result == {'success': False, 'error': 'SLOT_NOT_FOUND'}
