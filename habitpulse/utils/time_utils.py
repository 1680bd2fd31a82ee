"""
Time utility functions for HabitPulse.

Date arithmetic shared by the aggregation, metrics and scheduling layers.
Weeks start on Monday (ISO), matching how weekly buckets are keyed.
"""
from datetime import date, datetime, timedelta
from dateutil.relativedelta import relativedelta
from typing import List


def date_range(start_date: date, end_date: date) -> List[date]:
    """
    Every calendar day from start_date to end_date, inclusive.

    Returns an empty list when end_date precedes start_date.
    """
    days = (end_date - start_date).days
    return [start_date + timedelta(days=offset) for offset in range(days + 1)]


def week_start(target_date: date) -> date:
    """Monday of the ISO week containing target_date."""
    return target_date - timedelta(days=target_date.weekday())


def months_before(moment: datetime, months: int) -> datetime:
    """Calendar-aware subtraction (2024-08-31 minus 6 months is 2024-02-29)."""
    return moment - relativedelta(months=months)


def calculate_days_in_range(start_date: date, end_date: date) -> int:
    """
    Calculate number of days in a date range (inclusive).

    Example:
        >>> calculate_days_in_range(date(2025, 12, 1), date(2025, 12, 7))
        7
    """
    return (end_date - start_date).days + 1


def midpoint(start_date: date, end_date: date) -> date:
    """Midpoint of a range, rounding toward the start date."""
    return start_date + timedelta(days=(end_date - start_date).days // 2)
