import pytest
from datetime import date, datetime, timezone
from unittest.mock import patch

from habitpulse.conf import get_setting
from habitpulse.exceptions import InvalidDateRangeError, SnapshotPersistenceError, ValidationError
from habitpulse.utils import error_handlers
from habitpulse.utils.error_handlers import degrade_on_error, validate_date_range
from habitpulse.utils.time_utils import (
    calculate_days_in_range,
    date_range,
    midpoint,
    months_before,
    week_start,
)


class TestSettings:

    def test_default(self):
        assert get_setting('DAILY_LOOKBACK_DAYS') == 30
        assert get_setting('LOCK_TIMEOUT')['daily'] == 7200

    def test_override(self, settings):
        settings.HABITPULSE = {'RETENTION_MONTHS': 3}
        assert get_setting('RETENTION_MONTHS') == 3
        assert get_setting('CORRELATION_THRESHOLD') == 0.5

    def test_unknown(self):
        with pytest.raises(KeyError):
            get_setting('NOT_A_SETTING')


class TestValidateDateRange:

    def test_valid(self):
        validate_date_range(date(2024, 1, 1), date(2024, 1, 1))

    def test_reversed(self):
        with pytest.raises(InvalidDateRangeError) as exc:
            validate_date_range(date(2024, 1, 2), date(2024, 1, 1))
        assert exc.value.start_date == date(2024, 1, 2)

    def test_missing_bound(self):
        with pytest.raises(ValidationError) as exc:
            validate_date_range(None, date(2024, 1, 1))
        assert exc.value.field == 'start_date'


class TestDegradeOnError:

    def test_passes_result_through(self):
        assert degrade_on_error(default=0)(lambda: 5)() == 5

    def test_callable_default(self):
        @degrade_on_error(default=list)
        def broken():
            raise RuntimeError('boom')

        with patch.object(error_handlers, 'logger') as mock_logger:
            first, second = broken(), broken()
        assert first == [] and first is not second
        assert mock_logger.exception.call_count == 2

    def test_domain_error_degrades(self):
        @degrade_on_error(default=-1)
        def broken():
            raise SnapshotPersistenceError('habit h1', 'disk full')

        with patch.object(error_handlers, 'logger') as mock_logger:
            assert broken() == -1
        mock_logger.warning.assert_called_once()

    def test_validation_errors_propagate(self):
        @degrade_on_error(default=None)
        def reversed_range():
            validate_date_range(date(2024, 1, 2), date(2024, 1, 1))

        with pytest.raises(InvalidDateRangeError):
            reversed_range()


class TestTimeUtils:

    def test_date_range(self):
        assert date_range(date(2024, 2, 28), date(2024, 3, 1)) == [
            date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1),
        ]
        assert date_range(date(2024, 1, 2), date(2024, 1, 1)) == []

    def test_week_start(self):
        assert week_start(date(2024, 1, 7)) == date(2024, 1, 1)
        assert week_start(date(2024, 1, 1)) == date(2024, 1, 1)

    def test_months_before_clamps_day(self):
        moment = datetime(2024, 8, 31, 4, 0, tzinfo=timezone.utc)
        assert months_before(moment, 6) == datetime(2024, 2, 29, 4, 0, tzinfo=timezone.utc)

    def test_days_and_midpoint(self):
        assert calculate_days_in_range(date(2025, 12, 1), date(2025, 12, 7)) == 7
        assert midpoint(date(2024, 1, 1), date(2024, 1, 4)) == date(2024, 1, 2)
