"""
App-level configuration for HabitPulse.

Values come from the ``HABITPULSE`` dict in Django settings and fall back to
the defaults below, so the analytics run with no configuration at all.
"""
from django.conf import settings

DEFAULTS = {
    'SCHEDULER_ENABLED': False,
    # Lookback windows per cadence (days)
    'HOURLY_LOOKBACK_DAYS': 7,
    'DAILY_LOOKBACK_DAYS': 30,
    'WEEKLY_LOOKBACK_DAYS': 90,
    # GroupMetrics history older than this is pruned by the monthly run
    'RETENTION_MONTHS': 6,
    # |r| at or above this is reported as POSITIVE / NEGATIVE
    'CORRELATION_THRESHOLD': 0.5,
    # Hours with fewer attempts are ignored when choosing timing windows
    'MIN_TIMING_ATTEMPTS': 3,
    # Seconds a cadence lock is held before it expires on its own
    'LOCK_TIMEOUT': {
        'hourly': 3600,
        'daily': 7200,
        'weekly': 7200,
        'monthly': 7200,
    },
}


def get_setting(name: str):
    """Return a HabitPulse setting, falling back to the built-in default."""
    overrides = getattr(settings, 'HABITPULSE', {}) or {}
    if name in overrides:
        return overrides[name]
    if name not in DEFAULTS:
        raise KeyError(f"Unknown HabitPulse setting '{name}'")
    return DEFAULTS[name]
