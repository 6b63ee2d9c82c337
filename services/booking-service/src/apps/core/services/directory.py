# services/booking-service/src/apps/core/services/directory.py
"""
Directory

Resolves client and service ids referenced by bookings and waitlist entries.
"""

import uuid
import logging
from typing import List

from shared.common.validators import validate_uuid, validate_uuid_list

from apps.core.models import Client, Service
from .exceptions import ClientNotFoundError, ServiceNotFoundError

logger = logging.getLogger(__name__)


class Directory:
    """Lookup of active clients and services."""

    def find_client_by_id(self, client_id: uuid.UUID) -> Client:
        client_id = validate_uuid(client_id, 'client_id')
        try:
            return Client.objects.get(id=client_id, is_active=True)
        except Client.DoesNotExist:
            raise ClientNotFoundError(client_id)

    def find_service_by_id(self, service_id: uuid.UUID) -> Service:
        service_id = validate_uuid(service_id, 'service_id')
        try:
            return Service.objects.get(id=service_id, is_active=True)
        except Service.DoesNotExist:
            raise ServiceNotFoundError(service_id)

    def find_services(self, service_ids: List[uuid.UUID]) -> List[Service]:
        """Resolve every id or raise for the first one that is missing."""
        service_ids = validate_uuid_list(service_ids, 'service_ids')
        found = {
            s.id: s for s in Service.objects.filter(id__in=service_ids, is_active=True)
        }
        for service_id in service_ids:
            if service_id not in found:
                raise ServiceNotFoundError(service_id)
        return [found[service_id] for service_id in service_ids]
