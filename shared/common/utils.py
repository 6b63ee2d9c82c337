# shared/common/utils.py
"""
Common Utility Functions
"""

import secrets
import string
from datetime import date, timedelta
from typing import Iterator
from django.utils import timezone
import logging

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


# =============================================================================
# STRING UTILITIES
# =============================================================================

def generate_code(prefix: str = '', length: int = 8) -> str:
    """Generate a random uppercase alphanumeric code with optional prefix"""
    code = ''.join(secrets.choice(REFERENCE_ALPHABET) for _ in range(length))
    return f"{prefix}{code}" if prefix else code


# =============================================================================
# DATE/TIME UTILITIES
# =============================================================================

def today() -> date:
    """Current date in the configured timezone"""
    return timezone.localdate()


def is_weekend(d: date) -> bool:
    """Check if a date falls on Saturday or Sunday"""
    return d.weekday() >= 5


def date_range(start: date, end: date) -> Iterator[date]:
    """Yield every date from start to end inclusive"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)

