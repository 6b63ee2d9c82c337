# shared/common/clients.py
"""
HTTP clients for the services the booking service calls out to.

Calls are synchronous and go through a per-client circuit breaker, so a
notification service outage costs one timeout per request until the
breaker opens, and nothing afterwards.
"""

import time
import httpx
import logging
from typing import Dict, Any, Optional, List
from django.conf import settings

from .exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


# =============================================================================
# CIRCUIT BREAKER
# =============================================================================

class CircuitBreakerError(ExternalServiceError):
    """The breaker is open and the call was not attempted."""
    error_code = 'CIRCUIT_OPEN'


class CircuitBreaker:
    """
    Three-state breaker: ``closed`` lets everything through, ``open`` lets
    nothing through until ``timeout`` seconds have passed since the last
    failure, ``half_open`` lets calls probe the remote side.
    """

    CLOSED = 'closed'
    OPEN = 'open'
    HALF_OPEN = 'half_open'

    def __init__(self, failure_threshold: int = 5, success_threshold: int = 2, timeout: int = 30):
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout
        self.state = self.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None

    def can_execute(self) -> bool:
        if self.state != self.OPEN:
            return True
        if self.opened_at is None or time.monotonic() - self.opened_at >= self.timeout:
            self.state = self.HALF_OPEN
            self.success_count = 0
            return True
        return False

    def record_success(self):
        if self.state == self.HALF_OPEN:
            self.success_count += 1
            if self.success_count < self.success_threshold:
                return
            logger.info("Circuit breaker closed again")
        self.state = self.CLOSED
        self.failure_count = 0
        self.opened_at = None

    def record_failure(self):
        self.failure_count += 1
        # A single failed probe is enough to reopen
        if self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.state = self.OPEN
            self.opened_at = time.monotonic()
            logger.warning(f"Circuit breaker open after {self.failure_count} failures")


# =============================================================================
# BASE SERVICE CLIENT
# =============================================================================

class BaseServiceClient:
    """
    JSON-over-HTTP client for one named service.

    ``transport`` is handed to httpx unchanged; tests pass an
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        service_name: str,
        base_url: str = None,
        transport: Optional[httpx.BaseTransport] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self.service_name = service_name
        self.base_url = (base_url or self._default_url()).rstrip('/')
        self.transport = transport
        self.timeout = httpx.Timeout(10.0, connect=5.0)
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

    def _default_url(self) -> str:
        return getattr(settings, 'SERVICE_URLS', {}).get(
            self.service_name, f'http://{self.service_name}:8000'
        )

    def _headers(self) -> Dict[str, str]:
        return {
            'Accept': 'application/json',
            'X-Service-Auth': getattr(settings, 'SERVICE_AUTH_TOKEN', ''),
            'X-Source-Service': getattr(settings, 'SERVICE_NAME', 'booking-service'),
        }

    def _request(self, method: str, path: str, params: Dict = None, data: Dict = None) -> Dict:
        if not self.circuit_breaker.can_execute():
            raise CircuitBreakerError(
                self.service_name,
                message=f"{self.service_name} is unavailable (circuit open)"
            )

        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(method, url, params=params, json=data, headers=self._headers())
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(f"{self.service_name} answered {status_code} for {method} {path}")
            # 4xx means we sent something wrong, not that the service is down
            if status_code >= 500:
                self.circuit_breaker.record_failure()
            raise ExternalServiceError(
                self.service_name,
                details={'status_code': status_code, 'url': url}
            ) from e
        except httpx.RequestError as e:
            logger.error(f"{method} {url} failed: {e}")
            self.circuit_breaker.record_failure()
            raise ExternalServiceError(self.service_name, message=str(e), details={'url': url}) from e

        self.circuit_breaker.record_success()
        return response.json() if response.content else {}

    def get(self, path: str, params: Dict = None) -> Dict:
        return self._request('GET', path, params=params)

    def post(self, path: str, data: Dict = None) -> Dict:
        return self._request('POST', path, data=data)


# =============================================================================
# NOTIFICATION SERVICE
# =============================================================================

class NotificationServiceClient(BaseServiceClient):
    """Creates notifications in the notification service."""

    def __init__(self, **kwargs):
        super().__init__('notification-service', **kwargs)

    def send_notification(
        self,
        recipient: str,
        title: str,
        message: str,
        notification_type: str = 'info',
        channels: List[str] = None,
        data: Dict[str, Any] = None
    ) -> Dict:
        return self.post('/api/v1/notifications/', {
            'recipient': recipient,
            'title': title,
            'message': message,
            'type': notification_type,
            'channels': channels or ['email'],
            'data': data or {},
        })
