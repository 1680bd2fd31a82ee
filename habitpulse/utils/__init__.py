"""
Utilities package for HabitPulse.

Common utility functions:
- time_utils: Date ranges, ISO week starts and calendar arithmetic
- constants: Analytics thresholds and weights
- logging_utils: Structured logging with batch-run correlation ids
- error_handlers: Range validation and graceful degradation
"""
from .time_utils import date_range, week_start, calculate_days_in_range
from .error_handlers import validate_date_range, degrade_on_error
