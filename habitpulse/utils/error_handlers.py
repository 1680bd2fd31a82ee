"""
Error Handling Utilities

Helpers for consistent exception handling across services: range validation
up front and graceful degradation at caller-facing boundaries.
"""
from functools import wraps
import logging

from habitpulse.exceptions import (
    HabitPulseException,
    InvalidDateRangeError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def validate_date_range(start_date, end_date):
    """
    Reject a range whose end precedes its start.

    Raises:
        ValidationError: if either bound is missing
        InvalidDateRangeError: if end_date < start_date
    """
    if start_date is None:
        raise ValidationError('start_date', 'is required')
    if end_date is None:
        raise ValidationError('end_date', 'is required')
    if end_date < start_date:
        raise InvalidDateRangeError(start_date, end_date)


def degrade_on_error(default):
    """
    Decorator for caller-facing helpers: return a default result instead of
    leaking internal failures.

    Validation problems (bad ranges, malformed input) still propagate since
    they are the caller's to fix. ``default`` may be a value or a zero-arg
    callable producing one.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (InvalidDateRangeError, ValidationError):
                raise
            except HabitPulseException as e:
                logger.warning(f"{func.__name__} degraded to default: {e}")
            except Exception as e:
                logger.exception(f"Unexpected error in {func.__name__}: {e}")
            return default() if callable(default) else default
        return wrapper
    return decorator
