# services/booking-service/src/apps/core/tasks.py
"""
Celery Tasks for Booking Service

Periodic maintenance scheduled through CELERY_BEAT_SCHEDULE.
"""

import logging
from typing import Dict, Any

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def expire_stale_waitlist_entries() -> Dict[str, Any]:
    """Move pending waitlist entries past their expiry to expired."""
    from .services import WaitlistService

    count = WaitlistService().expire_stale()
    logger.info(f"Waitlist expiry sweep finished: {count} entries expired")
    return {'success': True, 'expired': count}


@shared_task
def promote_waitlist_for_slot(slot_id: str) -> Dict[str, Any]:
    """Promote the waitlist for a freed slot outside the request cycle."""
    from .services import WaitlistService, SlotNotFoundError

    try:
        result = WaitlistService().promote_for_slot(slot_id)
    except SlotNotFoundError as e:
        logger.info(f"Skipping waitlist promotion for slot {slot_id}: {e.message}")
        return {'success': False, 'error': e.error_code}

    return {
        'success': True,
        'notified': [str(entry.id) for entry in result.notified],
        'failed': [str(entry.id) for entry in result.failed],
    }
