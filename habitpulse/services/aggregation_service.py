"""
Aggregation Service

Turns raw completion events into dense time-bucketed statistics:
- Daily stats, zero-filled over the queried range
- Weekly stats keyed by the Monday of each ISO week
- Hourly stats keyed by the hour of ``completed_at``
- Streak runs over completed dates
- Group daily stats with per-habit participation

Every method is a pure function of its input events.
"""
from datetime import date
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple
import logging

from habitpulse.helpers import metric_helpers
from habitpulse.schemas import EventRecord, dedupe_events, to_records
from habitpulse.utils.error_handlers import validate_date_range
from habitpulse.utils.time_utils import date_range, week_start

logger = logging.getLogger(__name__)

WEEKDAYS = ('MONDAY', 'TUESDAY', 'WEDNESDAY', 'THURSDAY', 'FRIDAY', 'SATURDAY', 'SUNDAY')


# =============================================================================
# RESULT RECORDS
# =============================================================================

class DailyStat(NamedTuple):
    date: date
    total_attempts: int
    completed_attempts: int
    completion_rate: float


class DailyAggregation(NamedTuple):
    start_date: date
    end_date: date
    daily_stats: Tuple[DailyStat, ...]

    @property
    def average_completion_rate(self) -> float:
        if not self.daily_stats:
            return 0.0
        return sum(s.completion_rate for s in self.daily_stats) / len(self.daily_stats)

    def stats_by_date(self) -> Mapping[date, DailyStat]:
        return MappingProxyType({s.date: s for s in self.daily_stats})


class WeeklyStat(NamedTuple):
    week_start: date
    total_attempts: int
    completed_attempts: int
    completion_rate: float
    # weekday (0 = Monday) -> completion rate, all seven days present
    daily_rates: Mapping[int, float]


class WeeklyAggregation(NamedTuple):
    start_date: date
    end_date: date
    weekly_stats: Tuple[WeeklyStat, ...]

    @property
    def weekly_rates(self) -> List[float]:
        return [w.completion_rate for w in self.weekly_stats]


class HourlyStat(NamedTuple):
    hour: int
    total_attempts: int
    completed_attempts: int
    completion_rate: float


class HourlyAggregation(NamedTuple):
    hourly_stats: Tuple[HourlyStat, ...]

    @property
    def peak_hour(self) -> Optional[int]:
        """Hour with the best completion rate; None when nothing was timed."""
        timed = [s for s in self.hourly_stats if s.total_attempts > 0]
        if not timed:
            return None
        return max(timed, key=lambda s: (s.completion_rate, -s.hour)).hour


class StreakPeriod(NamedTuple):
    start_date: date
    end_date: date
    length: int


class StreakAnalysis(NamedTuple):
    habit_id: Optional[str]
    current_streak: int
    max_streak: int
    all_streaks: Tuple[StreakPeriod, ...]

    @property
    def average_streak(self) -> float:
        if not self.all_streaks:
            return 0.0
        return sum(s.length for s in self.all_streaks) / len(self.all_streaks)


class GroupDailyStat(NamedTuple):
    date: date
    total_attempts: int
    completed_attempts: int
    completion_rate: float
    # habit_id -> number of records for that habit on the day
    habit_participation: Mapping[str, int]


class GroupAggregation(NamedTuple):
    start_date: date
    end_date: date
    daily_stats: Tuple[GroupDailyStat, ...]

    @property
    def average_completion_rate(self) -> float:
        if not self.daily_stats:
            return 0.0
        return sum(s.completion_rate for s in self.daily_stats) / len(self.daily_stats)


# =============================================================================
# HELPERS
# =============================================================================

def _in_range(events: Iterable[EventRecord], start_date: date, end_date: date) -> List[EventRecord]:
    return [e for e in events if start_date <= e.date <= end_date]


def _counts_by(frame, key: str) -> Dict:
    """{key value: (total, completed)} from an events frame."""
    if frame.empty:
        return {}
    grouped = frame.groupby(key)['completed'].agg(['size', 'sum'])
    return {k: (int(row['size']), int(row['sum'])) for k, row in grouped.iterrows()}


# =============================================================================
# AGGREGATION SERVICE
# =============================================================================

class AggregationService:
    """Dense daily/weekly/hourly statistics and streak sequences."""

    @staticmethod
    def aggregate_daily(events: Iterable, start_date: date, end_date: date) -> DailyAggregation:
        """
        One DailyStat per calendar day in [start_date, end_date].

        Days without records are present with zero counts and rate 0.

        Raises:
            InvalidDateRangeError: if end_date < start_date
        """
        validate_date_range(start_date, end_date)
        records = _in_range(dedupe_events(to_records(events)), start_date, end_date)
        counts = _counts_by(metric_helpers.events_frame(records), 'date')

        stats = tuple(
            DailyStat(
                date=day,
                total_attempts=counts.get(day, (0, 0))[0],
                completed_attempts=counts.get(day, (0, 0))[1],
                completion_rate=metric_helpers.safe_rate(counts.get(day, (0, 0))[1], counts.get(day, (0, 0))[0]),
            )
            for day in date_range(start_date, end_date)
        )
        return DailyAggregation(start_date, end_date, stats)

    @staticmethod
    def aggregate_weekly(events: Iterable, start_date: date, end_date: date) -> WeeklyAggregation:
        """
        Weekly buckets keyed by Monday, for every week holding at least one
        record inside the range. Each bucket carries a seven-entry weekday
        rate map (0 for days without records).

        Raises:
            InvalidDateRangeError: if end_date < start_date
        """
        validate_date_range(start_date, end_date)
        records = _in_range(dedupe_events(to_records(events)), start_date, end_date)
        frame = metric_helpers.events_frame(records)
        if frame.empty:
            return WeeklyAggregation(start_date, end_date, ())

        frame['week_start'] = frame['date'].map(week_start)

        weeks = []
        for monday, week_frame in frame.groupby('week_start', sort=True):
            by_weekday = _counts_by(week_frame, 'weekday')
            total = len(week_frame)
            completed = int(week_frame['completed'].sum())
            weeks.append(WeeklyStat(
                week_start=monday,
                total_attempts=total,
                completed_attempts=completed,
                completion_rate=metric_helpers.safe_rate(completed, total),
                daily_rates=MappingProxyType({
                    wd: metric_helpers.safe_rate(by_weekday.get(wd, (0, 0))[1], by_weekday.get(wd, (0, 0))[0])
                    for wd in range(7)
                }),
            ))
        return WeeklyAggregation(start_date, end_date, tuple(weeks))

    @staticmethod
    def aggregate_hourly(events: Iterable) -> HourlyAggregation:
        """
        24 buckets keyed by the hour of ``completed_at``.

        Events never marked with a timestamp are ignored; empty hours have rate 0.
        """
        records = [e for e in dedupe_events(to_records(events)) if e.completed_at is not None]
        counts = _counts_by(metric_helpers.events_frame(records), 'hour')
        counts = {int(h): v for h, v in counts.items()}

        return HourlyAggregation(tuple(
            HourlyStat(
                hour=hour,
                total_attempts=counts.get(hour, (0, 0))[0],
                completed_attempts=counts.get(hour, (0, 0))[1],
                completion_rate=metric_helpers.safe_rate(counts.get(hour, (0, 0))[1], counts.get(hour, (0, 0))[0]),
            )
            for hour in range(24)
        ))

    @staticmethod
    def analyze_streaks(events: Iterable, habit_id: Optional[str] = None, as_of: date = None) -> StreakAnalysis:
        """
        Detect every streak of consecutive completed days for one habit.

        Args:
            events: Completion events (other habits are ignored when habit_id is given)
            habit_id: Habit to analyse; None analyses all events together
            as_of: Reference day for the current streak (default: today)

        Returns:
            StreakAnalysis over completions up to and including as_of.
            ``current_streak`` is the most recent streak's length if it
            ended on as_of or the day before, else 0.
        """
        as_of = as_of or date.today()
        records = dedupe_events(to_records(events))
        completed_dates = [
            e.date for e in records
            if e.completed and e.date <= as_of and (habit_id is None or e.habit_id == habit_id)
        ]

        runs = tuple(
            StreakPeriod(start, end, length)
            for start, end, length in metric_helpers.detect_streak_runs(completed_dates)
        )
        if not runs:
            return StreakAnalysis(habit_id, 0, 0, ())

        last = runs[-1]
        current = last.length if (as_of - last.end_date).days <= 1 else 0
        max_streak = max(r.length for r in runs)

        return StreakAnalysis(habit_id, current, max_streak, runs)

    @staticmethod
    def aggregate_group(events_by_habit: Mapping[str, Iterable], start_date: date,
                        end_date: date) -> GroupAggregation:
        """
        Per-day group totals across all group habits, zero-filled.

        Args:
            events_by_habit: {habit_id: events}

        Raises:
            InvalidDateRangeError: if end_date < start_date
        """
        validate_date_range(start_date, end_date)

        per_habit = {
            habit_id: _counts_by(
                metric_helpers.events_frame(
                    _in_range(dedupe_events(to_records(events)), start_date, end_date)
                ),
                'date',
            )
            for habit_id, events in events_by_habit.items()
        }

        stats = []
        for day in date_range(start_date, end_date):
            participation = {habit_id: counts.get(day, (0, 0))[0] for habit_id, counts in per_habit.items()}
            total = sum(participation.values())
            completed = sum(counts.get(day, (0, 0))[1] for counts in per_habit.values())
            stats.append(GroupDailyStat(
                date=day,
                total_attempts=total,
                completed_attempts=completed,
                completion_rate=metric_helpers.safe_rate(completed, total),
                habit_participation=MappingProxyType(participation),
            ))
        return GroupAggregation(start_date, end_date, tuple(stats))
