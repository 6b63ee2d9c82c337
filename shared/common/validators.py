"""
Shared Validators Module.

Common validation utilities used across all microservices. Every validator
raises ``shared.common.exceptions.ValidationError`` with the offending field
in ``details``.
"""
import re
from datetime import date, datetime, time
from typing import List, Any, Optional, Tuple
from uuid import UUID

from .exceptions import ValidationError


TIME_WINDOW_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)-([01]\d|2[0-3]):([0-5]\d)$')


# =============================================================================
# UUID VALIDATORS
# =============================================================================

def validate_uuid(value: Any, field_name: str = "value") -> UUID:
    """Validate and convert a value to UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(
            f"Invalid UUID format for {field_name}",
            details={'field': field_name, 'value': str(value)}
        )


def validate_uuid_list(values: List, field_name: str = "values") -> List[UUID]:
    """Validate and convert a list of values to UUIDs."""
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field_name} must be a list", details={'field': field_name})
    return [validate_uuid(v, field_name) for v in values]


# =============================================================================
# DATE/TIME VALIDATORS
# =============================================================================

def validate_date(value: Any, field_name: str = "date") -> date:
    """Accept a date or an ISO formatted string and return a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        raise ValidationError(
            f"Invalid date format for {field_name}",
            details={'field': field_name, 'value': str(value)}
        )


def validate_date_range(
    start_date: date,
    end_date: date,
    max_days: int = 365,
    field_name: str = "date range"
) -> None:
    """Validate that a date range is valid."""
    if start_date > end_date:
        raise ValidationError(
            f"Start date must be before end date for {field_name}",
            details={'field': field_name}
        )

    if (end_date - start_date).days > max_days:
        raise ValidationError(
            f"{field_name} cannot exceed {max_days} days",
            details={'field': field_name, 'max_days': max_days}
        )


def parse_time_window(value: Any, field_name: str = "time_window") -> Tuple[time, time]:
    """Split an ``HH:MM-HH:MM`` window into its start and end times."""
    match = TIME_WINDOW_PATTERN.match(str(value or ''))
    if not match:
        raise ValidationError(
            f"{field_name} must use the HH:MM-HH:MM format",
            details={'field': field_name, 'value': value}
        )

    start_h, start_m, end_h, end_m = (int(part) for part in match.groups())
    start, end = time(start_h, start_m), time(end_h, end_m)
    if start >= end:
        raise ValidationError(
            f"{field_name} must end after it starts",
            details={'field': field_name, 'value': value}
        )
    return start, end


def validate_time_window(value: Any, field_name: str = "time_window") -> str:
    """Validate an ``HH:MM-HH:MM`` window and return it unchanged."""
    parse_time_window(value, field_name)
    return value


def validate_time_windows(
    values: Optional[List[str]],
    field_name: str = "time_windows"
) -> List[str]:
    """Validate a list of windows, dropping duplicates but keeping order."""
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field_name} must be a list", details={'field': field_name})

    seen = []
    for value in values:
        validate_time_window(value, field_name)
        if value not in seen:
            seen.append(value)
    return seen


# =============================================================================
# NUMERIC VALIDATORS
# =============================================================================

def validate_range(
    value: int,
    min_value: int,
    max_value: int,
    field_name: str = "value"
) -> int:
    """Validate that an integer lies within [min_value, max_value]."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer", details={'field': field_name})

    if value < min_value or value > max_value:
        raise ValidationError(
            f"{field_name} must be between {min_value} and {max_value}",
            details={'field': field_name, 'value': value}
        )
    return value

