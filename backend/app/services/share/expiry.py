"""
Expiry Policy

Pure mapping from an enumerated duration class to an absolute deadline.
"""
from datetime import datetime, timedelta
from typing import Union

from ...models.share import DurationClass
from .errors import InvalidDurationError


DURATIONS = {
    DurationClass.HOURS_24: timedelta(hours=24),
    DurationClass.HOURS_48: timedelta(hours=48),
    DurationClass.HOURS_72: timedelta(hours=72),
    DurationClass.DAYS_7: timedelta(days=7),
}


def parse_duration_class(duration_class: Union[DurationClass, str]) -> DurationClass:
    try:
        return DurationClass(duration_class)
    except ValueError:
        raise InvalidDurationError(duration_class)


def resolve_expiry(duration_class: Union[DurationClass, str], issued_at: datetime) -> datetime:
    """Deadline for a token issued at issued_at. Raises InvalidDurationError."""
    return issued_at + DURATIONS[parse_duration_class(duration_class)]
