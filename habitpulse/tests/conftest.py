"""
Pytest configuration and fixtures for HabitPulse tests.

This module provides reusable fixtures for testing.
"""
import pytest
from datetime import date, datetime, timedelta, timezone

from habitpulse.repositories.memory_repository import InMemoryEventSource, InMemorySnapshotSink


@pytest.fixture
def today():
    """Returns today's date."""
    return date.today()


@pytest.fixture
def yesterday():
    """Returns yesterday's date."""
    return date.today() - timedelta(days=1)


@pytest.fixture
def last_week():
    """Returns the date one week ago."""
    return date.today() - timedelta(days=7)


@pytest.fixture
def fixed_now():
    """A fixed 'now': Monday 2024-04-01 10:00 UTC."""
    return datetime(2024, 4, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_clock(fixed_now):
    return lambda: fixed_now


@pytest.fixture
def event_source():
    return InMemoryEventSource()


@pytest.fixture
def snapshot_sink():
    return InMemorySnapshotSink()
