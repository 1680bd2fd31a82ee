"""
Scheduler integration for HabitPulse.

Recomputes analytics on four cadences using APScheduler:
- Hourly: habits with activity in the last 24h, 7-day window
- Daily (02:00): every habit and every user's correlations, 30-day window
- Weekly (Sunday 03:00): 90-day recompute plus group metrics
- Monthly (day 1, 04:00): prune old group metrics and stale correlations

Each entity is processed independently; one failure is logged and the batch
carries on.
"""
from apscheduler.schedulers.background import BackgroundScheduler
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from django.core.cache import cache
from django.utils import timezone
from functools import wraps
from typing import Callable, Dict, List, Optional, Tuple
import atexit
import logging
import time

from habitpulse.conf import get_setting
from habitpulse.repositories.base_repository import EventSource, HabitKey, SnapshotSink
from habitpulse.services.correlation_service import CorrelationService
from habitpulse.services.group_dynamics_service import GroupDynamicsService
from habitpulse.services.habit_metrics_service import HabitMetricsService
from habitpulse.services.timing_service import TimingService
from habitpulse.utils.logging_utils import log_batch_summary, log_function_call, run_context
from habitpulse.utils.time_utils import months_before

logger = logging.getLogger(__name__)


# ============================================================================
# JOB LOCKING
# ============================================================================

def with_lock(lock_name: str, lock_timeout: int = None):
    """
    Decorator to prevent duplicate job execution using cache-based locking.

    Args:
        lock_name: Unique name for the lock
        lock_timeout: Lock timeout in seconds (default: the LOCK_TIMEOUT
            setting for lock_name, else 1 hour)

    A second run of the same job while the lock is held is skipped and
    returns None.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            lock_key = f"habitpulse_lock:{lock_name}"
            timeout = lock_timeout or get_setting('LOCK_TIMEOUT').get(lock_name, 3600)

            # Try to acquire lock
            acquired = cache.add(lock_key, "locked", timeout)

            if not acquired:
                logger.warning(f"Job '{lock_name}' is already running, skipping...")
                return None

            try:
                return func(*args, **kwargs)
            finally:
                # Release lock
                cache.delete(lock_key)

        return wrapper
    return decorator


# ============================================================================
# BATCH REPORT
# ============================================================================

@dataclass
class BatchReport:
    """Outcome of one cadence run"""
    cadence: str
    run_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)
    details: Dict = field(default_factory=dict)

    def record_success(self):
        self.processed += 1
        self.succeeded += 1

    def record_failure(self, entity: str, error: Exception):
        self.processed += 1
        self.failed += 1
        self.errors.append((entity, f"{type(error).__name__}: {error}"))

    @property
    def ok(self) -> bool:
        return self.failed == 0


# ============================================================================
# ORCHESTRATOR
# ============================================================================

class AnalyticsOrchestrator:
    """
    Runs the analytics engines over stored events and persists snapshots.

    Args:
        event_source: Where completion events are read from
        snapshot_sink: Where derived snapshots are written
        clock: Zero-arg callable returning the current datetime
    """

    def __init__(self, event_source: EventSource, snapshot_sink: SnapshotSink,
                 clock: Callable[[], datetime] = timezone.now):
        self.events = event_source
        self.sink = snapshot_sink
        self.clock = clock

    def _today(self) -> date:
        return self.clock().date()

    # ------------------------------------------------------------------
    # Per-entity work
    # ------------------------------------------------------------------

    @log_function_call()
    def recompute_habit(self, key: HabitKey, start_date: date, end_date: date, as_of: date) -> Dict:
        """Analyse one habit and replace its stored snapshot."""
        events = self.events.events_for_habit(key.habit_id, start_date, as_of, user_id=key.user_id)
        result = HabitMetricsService.analyze_habit(
            events, key.habit_id, start_date, end_date,
            user_id=key.user_id,
            habit_start=self.events.habit_start(key.user_id, key.habit_id),
            as_of=as_of,
        )

        window = TimingService.optimal_window(
            [e for e in events if e.date <= end_date],
            min_attempts=get_setting('MIN_TIMING_ATTEMPTS'),
        )
        snapshot = result.to_snapshot()
        snapshot['optimal_time_start'] = None if window.is_fallback else window.start
        snapshot['optimal_time_end'] = None if window.is_fallback else window.end

        self.sink.upsert_habit_analytics(key.user_id, key.habit_id, snapshot, self.clock())
        return snapshot

    @log_function_call()
    def recompute_correlations(self, user_id: str, start_date: date, end_date: date) -> int:
        events = self.events.events_for_user(user_id, start_date, end_date)
        results = CorrelationService.analyze_correlations(
            events, start_date, end_date, threshold=get_setting('CORRELATION_THRESHOLD')
        )
        return self.sink.save_correlations(user_id, results, self.clock())

    @log_function_call()
    def recompute_group(self, group_id: str, start_date: date, end_date: date) -> Dict:
        """Compute group dynamics and append them to the group's history."""
        result = GroupDynamicsService.analyze_group(
            self.events.events_for_group(group_id, start_date, end_date),
            group_id,
            self.events.group_members(group_id),
            self.events.group_habits(group_id),
            start_date,
            end_date,
        )
        metrics = result.to_metrics()
        self.sink.append_group_metrics(group_id, metrics, self.clock())
        return metrics

    # ------------------------------------------------------------------
    # Batch helpers
    # ------------------------------------------------------------------

    def _habits(self, report: BatchReport, keys: List[HabitKey], start_date: date, end_date: date, as_of: date):
        for key in keys:
            try:
                self.recompute_habit(key, start_date, end_date, as_of)
                report.record_success()
            except Exception as e:
                logger.error(f"Failed to analyze habit {key.habit_id} for user {key.user_id}: {e}")
                report.record_failure(f"habit:{key.user_id}/{key.habit_id}", e)

    def _correlations(self, report: BatchReport, keys: List[HabitKey], start_date: date, end_date: date):
        for user_id in sorted({key.user_id for key in keys}):
            try:
                self.recompute_correlations(user_id, start_date, end_date)
                report.record_success()
            except Exception as e:
                logger.error(f"Failed to correlate habits for user {user_id}: {e}")
                report.record_failure(f"correlations:{user_id}", e)

    def _groups(self, report: BatchReport, start_date: date, end_date: date):
        for group_id in self.events.group_ids():
            try:
                self.recompute_group(group_id, start_date, end_date)
                report.record_success()
            except Exception as e:
                logger.error(f"Failed to analyze group {group_id}: {e}")
                report.record_failure(f"group:{group_id}", e)

    def _run(self, cadence: str, body: Callable[[BatchReport], None]) -> BatchReport:
        with run_context() as run_id:
            report = BatchReport(cadence=cadence, run_id=run_id, started_at=self.clock())
            logger.info(f"Starting {cadence} analytics run")
            started = time.monotonic()
            body(report)
            report.finished_at = self.clock()
            log_batch_summary(cadence, report.succeeded, report.failed, time.monotonic() - started)
        return report

    # ------------------------------------------------------------------
    # Cadences
    # ------------------------------------------------------------------

    def run_hourly(self) -> BatchReport:
        """Light recompute of habits touched in the last 24 hours."""
        def body(report):
            today = self._today()
            start = today - timedelta(days=get_setting('HOURLY_LOOKBACK_DAYS') - 1)
            keys = self.events.habits_active_since(self.clock() - timedelta(hours=24))
            report.details['habits'] = len(keys)
            self._habits(report, keys, start, today, today)
        return self._run('hourly', body)

    def run_daily(self) -> BatchReport:
        """Full recompute of every habit over the 30 days ending yesterday."""
        def body(report):
            today = self._today()
            end = today - timedelta(days=1)
            start = end - timedelta(days=get_setting('DAILY_LOOKBACK_DAYS') - 1)
            keys = self.events.habit_keys()
            report.details['habits'] = len(keys)
            self._habits(report, keys, start, end, today)
            self._correlations(report, keys, start, end)
        return self._run('daily', body)

    def run_weekly(self) -> BatchReport:
        """90-day recompute of every habit plus a full group metrics refresh."""
        def body(report):
            today = self._today()
            end = today - timedelta(days=1)
            start = end - timedelta(days=get_setting('WEEKLY_LOOKBACK_DAYS') - 1)
            keys = self.events.habit_keys()
            report.details['habits'] = len(keys)
            self._habits(report, keys, start, end, today)
            self._correlations(report, keys, start, end)
            self._groups(report, start, end)
        return self._run('weekly', body)

    def run_monthly(self) -> BatchReport:
        """Prune group metrics history and correlations older than the retention window."""
        def body(report):
            cutoff = months_before(self.clock(), get_setting('RETENTION_MONTHS'))
            report.details['cutoff'] = cutoff
            for name, prune in (('group_metrics', self.sink.prune_group_metrics),
                                ('correlations', self.sink.prune_correlations)):
                try:
                    report.details[f'{name}_pruned'] = prune(cutoff)
                    report.record_success()
                except Exception as e:
                    logger.error(f"Failed to prune {name}: {e}")
                    report.record_failure(f"prune:{name}", e)
        return self._run('monthly', body)


# ============================================================================
# SCHEDULED JOBS
# ============================================================================

def default_orchestrator() -> AnalyticsOrchestrator:
    """Orchestrator wired to the Django ORM."""
    from habitpulse.repositories.django_repository import DjangoEventSource, DjangoSnapshotSink

    return AnalyticsOrchestrator(DjangoEventSource(), DjangoSnapshotSink())


@with_lock('hourly')
def run_hourly_analytics():
    return default_orchestrator().run_hourly()


@with_lock('daily')
def run_daily_analytics():
    return default_orchestrator().run_daily()


@with_lock('weekly')
def run_weekly_analytics():
    return default_orchestrator().run_weekly()


@with_lock('monthly')
def run_monthly_analytics():
    return default_orchestrator().run_monthly()


CADENCE_JOBS = {
    'hourly': run_hourly_analytics,
    'daily': run_daily_analytics,
    'weekly': run_weekly_analytics,
    'monthly': run_monthly_analytics,
}


def start_scheduler() -> BackgroundScheduler:
    """
    Start the background scheduler for the analytics cadences.

    Schedules:
        - Hourly recompute at minute 0
        - Daily recompute at 2 AM
        - Weekly recompute on Sundays at 3 AM
        - Monthly cleanup on the 1st at 4 AM
    """
    scheduler = BackgroundScheduler()

    scheduler.add_job(
        run_hourly_analytics,
        'cron',
        minute=0,
        id='habitpulse_hourly',
        replace_existing=True,
        misfire_grace_time=600  # 10 min grace period
    )

    scheduler.add_job(
        run_daily_analytics,
        'cron',
        hour=2,
        minute=0,
        id='habitpulse_daily',
        replace_existing=True,
        misfire_grace_time=3600  # 1 hour grace period
    )

    scheduler.add_job(
        run_weekly_analytics,
        'cron',
        day_of_week='sun',
        hour=3,
        minute=0,
        id='habitpulse_weekly',
        replace_existing=True,
        misfire_grace_time=3600
    )

    scheduler.add_job(
        run_monthly_analytics,
        'cron',
        day=1,
        hour=4,
        minute=0,
        id='habitpulse_monthly',
        replace_existing=True,
        misfire_grace_time=3600
    )

    scheduler.start()
    logger.info("Scheduler started with 4 locked jobs: hourly, daily, weekly and monthly analytics")

    atexit.register(lambda: scheduler.shutdown())
    return scheduler
