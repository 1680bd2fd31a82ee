"""
Structured Logging with Batch Run Correlation IDs.

Provides utilities for production-ready logging of analytics batches:
- Run ID correlation across every log entry of one cadence run
- Structured JSON logging format
- Performance timing
"""
import json
import logging
import time
import uuid
import threading
from contextlib import contextmanager
from functools import wraps

logger = logging.getLogger(__name__)

# Thread-local storage for run context
_run_context = threading.local()


# ============================================================================
# RUN ID MANAGEMENT
# ============================================================================

def new_run_id() -> str:
    return str(uuid.uuid4())[:8]


def get_run_id() -> str:
    """Get current run ID or '-' outside of a batch run."""
    return getattr(_run_context, 'run_id', None) or '-'


def set_run_id(run_id: str):
    """Set run ID in thread-local storage."""
    _run_context.run_id = run_id


def clear_run_context():
    """Clear all run context."""
    if hasattr(_run_context, 'run_id'):
        delattr(_run_context, 'run_id')


@contextmanager
def run_context(run_id: str = None):
    """
    Tag every log line emitted inside the block with one run id.

    Usage:
        with run_context() as run_id:
            ...
    """
    run_id = run_id or new_run_id()
    previous = getattr(_run_context, 'run_id', None)
    set_run_id(run_id)
    try:
        yield run_id
    finally:
        if previous is None:
            clear_run_context()
        else:
            set_run_id(previous)


# ============================================================================
# STRUCTURED LOG FORMATTER
# ============================================================================

_RESERVED_ATTRS = frozenset((
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'stack_info', 'thread', 'threadName',
    'exc_info', 'exc_text', 'message', 'taskName',
))


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in format:
    {"timestamp": "...", "level": "INFO", "run_id": "abc123", "message": "..."}
    """

    def format(self, record):
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'run_id': get_run_id(),
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data[key] = value

        return json.dumps(log_data, default=str)


# ============================================================================
# LOGGING UTILITIES
# ============================================================================

def log_with_context(level: str, message: str, **extra):
    """
    Log with current run context and extra fields.

    Usage:
        log_with_context('info', 'Habit analysed', habit_id='h1', stage='LEARNING')
    """
    log_func = getattr(logger, level.lower(), logger.info)
    log_func(message, extra=extra)


def log_batch_summary(cadence: str, success_count: int, error_count: int, elapsed_seconds: float):
    """Log the outcome of one cadence run with standard fields."""
    log_with_context(
        'info' if error_count == 0 else 'warning',
        f'{cadence} analytics run complete: '
        f'{success_count} successful, {error_count} errors, {elapsed_seconds:.1f}s elapsed',
        cadence=cadence,
        success_count=success_count,
        error_count=error_count,
        elapsed_seconds=round(elapsed_seconds, 3),
    )


# ============================================================================
# DECORATOR FOR FUNCTION LOGGING
# ============================================================================

def log_function_call(log_args: bool = False, log_result: bool = False):
    """
    Decorator to log function entry/exit with timing.

    Usage:
        @log_function_call(log_args=True)
        def my_function(arg1, arg2):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            func_name = f"{func.__module__}.{func.__name__}"

            if log_args:
                log_with_context('debug', f'Entering {func_name}',
                                 func_args=str(args)[:200], func_kwargs=str(kwargs)[:200])

            start = time.time()
            try:
                result = func(*args, **kwargs)
                duration = (time.time() - start) * 1000

                if log_result:
                    log_with_context('debug', f'Exited {func_name}',
                                     duration_ms=round(duration, 2),
                                     result=str(result)[:200])
                else:
                    log_with_context('debug', f'Exited {func_name}',
                                     duration_ms=round(duration, 2))

                return result
            except Exception as e:
                duration = (time.time() - start) * 1000
                log_with_context('error', f'Error in {func_name}: {e}',
                                 duration_ms=round(duration, 2),
                                 error_type=type(e).__name__)
                raise

        return wrapper
    return decorator
