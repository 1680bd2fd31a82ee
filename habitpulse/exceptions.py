"""
Custom Exception Classes

Provides specific exception types for the analytics pipeline so callers can
tell bad input apart from failed computations and storage problems.
"""


class HabitPulseException(Exception):
    """Base exception for all analytics errors"""
    pass


class InvalidDateRangeError(HabitPulseException):
    """Raised when date range is invalid (e.g., start > end)"""
    def __init__(self, start_date, end_date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(f"Invalid date range: {start_date} to {end_date}")


class ValidationError(HabitPulseException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Validation error for '{field}': {message}")


class SnapshotPersistenceError(HabitPulseException):
    """Raised when a computed snapshot cannot be written"""
    def __init__(self, entity: str, reason: str):
        self.entity = entity
        self.reason = reason
        super().__init__(f"Failed to persist snapshot for {entity}: {reason}")
