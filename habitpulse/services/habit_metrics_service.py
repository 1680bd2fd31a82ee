"""
Habit Metrics Service

Per-habit behavioral metrics derived from completion events:
- Success rate and consistency (coefficient of variation of weekly rates)
- Automaticity and context stability from completion timing
- Habit strength and the weakest-link formation stage
- Trend direction/strength and day-of-week patterns
- Pattern recognition (weekly cycle, streaks, seasonality, recovery)

Formation thresholds follow Lally et al. (2010): 66 days median to automaticity.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import logging

import numpy as np

from habitpulse.helpers import metric_helpers
from habitpulse.schemas import EventRecord, dedupe_events, to_records
from habitpulse.services.aggregation_service import AggregationService, WEEKDAYS
from habitpulse.utils import constants
from habitpulse.utils.error_handlers import validate_date_range
from habitpulse.utils.time_utils import calculate_days_in_range, date_range, midpoint

logger = logging.getLogger(__name__)


class FormationStage(Enum):
    """Four-level classification of how habitual a behavior has become"""
    INITIATION = "INITIATION"
    LEARNING = "LEARNING"
    STABILITY = "STABILITY"
    MASTERY = "MASTERY"

    @property
    def next_stage(self) -> Optional['FormationStage']:
        order = list(FormationStage)
        index = order.index(self)
        return order[index + 1] if index + 1 < len(order) else None


class TrendDirection(Enum):
    IMPROVING = "IMPROVING"
    DECLINING = "DECLINING"
    STABLE = "STABLE"


class PatternType(Enum):
    WEEKLY_CYCLE = "WEEKLY_CYCLE"
    STREAK_BEHAVIOR = "STREAK_BEHAVIOR"
    SEASONAL_VARIATION = "SEASONAL_VARIATION"
    RECOVERY_BEHAVIOR = "RECOVERY_BEHAVIOR"


# =============================================================================
# RESULT RECORDS
# =============================================================================

@dataclass(frozen=True)
class CompletionPattern:
    pattern_type: str
    description: str
    significance: float


@dataclass(frozen=True)
class RecognizedPattern:
    pattern_type: PatternType
    description: str
    confidence: float


@dataclass(frozen=True)
class TrendAnalysis:
    direction: TrendDirection
    strength: float
    day_of_week_rates: Mapping[int, float]
    significant_patterns: Tuple[CompletionPattern, ...]


@dataclass(frozen=True)
class PatternRecognition:
    patterns: Tuple[RecognizedPattern, ...]

    @property
    def confidence(self) -> Dict[str, float]:
        return {p.pattern_type.value: p.confidence for p in self.patterns}


@dataclass(frozen=True)
class FormationMilestone:
    name: str
    description: str
    threshold_days: int


@dataclass(frozen=True)
class FormationAnalysis:
    stage: FormationStage
    progress: float
    current_streak: int
    days_since_start: int
    milestones: Tuple[FormationMilestone, ...]


@dataclass(frozen=True)
class HabitAnalyticsResult:
    """
    Full metric set for one habit over one window.

    ``to_snapshot()`` yields exactly the fields persisted in HabitAnalytics.
    """
    habit_id: str
    user_id: Optional[str]
    start_date: date
    end_date: date
    success_rate: float
    consistency_score: float
    automaticity: float
    context_stability: float
    habit_strength: float
    current_streak: int
    max_streak: int
    days_since_start: int
    formation_stage: FormationStage
    formation_progress: float
    trend: TrendAnalysis
    patterns: PatternRecognition
    milestones: Tuple[FormationMilestone, ...] = field(default_factory=tuple)

    def to_snapshot(self) -> Dict:
        return {
            'success_rate': round(self.success_rate, 6),
            'consistency_score': round(self.consistency_score, 6),
            'habit_strength': round(self.habit_strength, 6),
            'formation_stage': self.formation_stage.value,
            'current_streak': self.current_streak,
        }

    def to_dict(self) -> Dict:
        return {
            'habit_id': self.habit_id,
            'user_id': self.user_id,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'success_rate': self.success_rate,
            'consistency_score': self.consistency_score,
            'automaticity': self.automaticity,
            'context_stability': self.context_stability,
            'habit_strength': self.habit_strength,
            'current_streak': self.current_streak,
            'max_streak': self.max_streak,
            'days_since_start': self.days_since_start,
            'formation_stage': self.formation_stage.value,
            'formation_progress': self.formation_progress,
            'trend': {
                'direction': self.trend.direction.value,
                'strength': self.trend.strength,
                'day_of_week_rates': {WEEKDAYS[k]: v for k, v in self.trend.day_of_week_rates.items()},
                'significant_patterns': [
                    {'type': p.pattern_type, 'description': p.description, 'significance': p.significance}
                    for p in self.trend.significant_patterns
                ],
            },
            'patterns': [
                {'type': p.pattern_type.value, 'description': p.description, 'confidence': p.confidence}
                for p in self.patterns.patterns
            ],
            'milestones': [m.name for m in self.milestones],
        }


# =============================================================================
# HELPERS
# =============================================================================

def _in_range(records: Iterable[EventRecord], start_date: date, end_date: date) -> List[EventRecord]:
    return [e for e in records if start_date <= e.date <= end_date]


def _completion_rate(records: List[EventRecord]) -> float:
    if not records:
        return 0.0
    return sum(1 for e in records if e.completed) / len(records)


def _timed_completion_hours(records: Iterable[EventRecord]) -> Dict[int, int]:
    hours: Dict[int, int] = {}
    for e in records:
        if e.completed and e.completed_at is not None:
            hours[e.hour] = hours.get(e.hour, 0) + 1
    return hours


# =============================================================================
# HABIT METRICS SERVICE
# =============================================================================

class HabitMetricsService:
    """
    Derives per-habit metrics from completion events.

    All methods are static and side-effect free; callers pass the events for
    one user's habit (events for other habits should be filtered out first,
    or passed through ``analyze_habit`` which filters by habit_id).
    """

    # =========================================================================
    # CORE SCORES
    # =========================================================================

    @staticmethod
    def success_rate(events: Iterable, start_date: date, end_date: date) -> float:
        """
        Completed days / days in range (inclusive), clamped to [0, 1].

        Raises:
            InvalidDateRangeError: if end_date < start_date
        """
        validate_date_range(start_date, end_date)
        records = _in_range(dedupe_events(to_records(events)), start_date, end_date)
        completed_days = len({e.date for e in records if e.completed})
        return metric_helpers.clamp_unit(
            metric_helpers.safe_rate(completed_days, calculate_days_in_range(start_date, end_date))
        )

    @staticmethod
    def consistency_score(events: Iterable, start_date: date, end_date: date) -> float:
        """
        Consistency of completion over the range (0-1).

        With two or more weekly buckets: max(0, 1 - CV) of the weekly
        completion rates (0 when the mean rate is 0). With fewer: gap-based
        max(0, 1 - stdev(gaps between completions) / 7).

        Raises:
            InvalidDateRangeError: if end_date < start_date
        """
        validate_date_range(start_date, end_date)
        records = _in_range(dedupe_events(to_records(events)), start_date, end_date)
        if not records:
            return 0.0

        weekly = AggregationService.aggregate_weekly(records, start_date, end_date)
        if len(weekly.weekly_stats) < 2:
            completed_dates = [e.date for e in records if e.completed]
            return metric_helpers.compute_interval_consistency(
                completed_dates, constants.GAP_CONSISTENCY_NORMALIZER
            )['consistency_score']

        dispersion = metric_helpers.coefficient_of_variation(weekly.weekly_rates)
        if dispersion['mean'] == 0:
            return 0.0
        return metric_helpers.clamp_unit(1.0 - dispersion['cv'])

    @staticmethod
    def automaticity(events: Iterable) -> float:
        """
        Share of timed completions falling in the single busiest hour.
        0 when nothing was completed with a timestamp.
        """
        hours = _timed_completion_hours(dedupe_events(to_records(events)))
        total = sum(hours.values())
        return metric_helpers.safe_rate(max(hours.values()), total) if total else 0.0

    @staticmethod
    def context_stability(events: Iterable) -> float:
        """1 - normalized entropy of the completion hour distribution (log 24)."""
        hours = _timed_completion_hours(dedupe_events(to_records(events)))
        if not hours:
            return 0.0
        entropy = metric_helpers.compute_normalized_entropy(hours, n_categories=24)
        return metric_helpers.clamp_unit(1.0 - entropy['normalized_entropy'])

    @staticmethod
    def habit_strength(success_rate: float, consistency: float, current_streak: int) -> float:
        w = constants.HABIT_STRENGTH_WEIGHTS
        streak_factor = min(1.0, current_streak / constants.HABIT_FORMATION_DAYS)
        return metric_helpers.clamp_unit(
            w['success_rate'] * success_rate + w['consistency'] * consistency + w['streak'] * streak_factor
        )

    @staticmethod
    def classify_stage(days_since_start: int, success_rate: float, consistency: float,
                       current_streak: int) -> FormationStage:
        """
        Weakest-link stage rule: the habit stays in the first stage whose
        criteria it does not clear.
        """
        for stage in (FormationStage.INITIATION, FormationStage.LEARNING, FormationStage.STABILITY):
            limits = constants.STAGE_THRESHOLDS[stage.value]
            below_consistency = limits['consistency'] is not None and consistency < limits['consistency']
            if (days_since_start < limits['days']
                    or success_rate < limits['success_rate']
                    or below_consistency
                    or current_streak < limits['streak']):
                return stage
        return FormationStage.MASTERY

    # =========================================================================
    # TRENDS
    # =========================================================================

    @staticmethod
    def day_of_week_rates(events: Iterable) -> Mapping[int, float]:
        """Completion rate per weekday (0 = Monday); days without records are 0."""
        records = dedupe_events(to_records(events))
        by_day = {wd: [e for e in records if e.date.weekday() == wd] for wd in range(7)}
        return MappingProxyType({wd: _completion_rate(day_records) for wd, day_records in by_day.items()})

    @staticmethod
    def trend_direction(events: Iterable, start_date: date, end_date: date) -> TrendDirection:
        """
        Compare success in the first half of the range (up to and including
        the midpoint) with the second half.
        """
        validate_date_range(start_date, end_date)
        records = dedupe_events(to_records(events))
        mid = midpoint(start_date, end_date)
        if mid >= end_date:
            return TrendDirection.STABLE

        first = HabitMetricsService.success_rate(records, start_date, mid)
        second = HabitMetricsService.success_rate(records, mid + timedelta(days=1), end_date)
        delta = second - first
        if abs(delta) < constants.TREND_STABLE_DELTA:
            return TrendDirection.STABLE
        return TrendDirection.IMPROVING if delta > 0 else TrendDirection.DECLINING

    @staticmethod
    def trend_strength(events: Iterable, start_date: date, end_date: date) -> float:
        """|OLS slope| of the day-indexed binary completion series over the range."""
        validate_date_range(start_date, end_date)
        days = date_range(start_date, end_date)
        if len(days) < 3:
            return 0.0
        completed = {e.date for e in dedupe_events(to_records(events)) if e.completed}
        y = np.array([1.0 if d in completed else 0.0 for d in days])
        x = np.arange(len(days), dtype=float)
        return abs(metric_helpers.compute_trend_line(x, y)['slope'])

    @staticmethod
    def significant_patterns(events: Iterable) -> Tuple[CompletionPattern, ...]:
        """Weekday/weekend split when the two rates differ by more than 0.2."""
        records = dedupe_events(to_records(events))
        weekend = [e for e in records if e.date.weekday() >= 5]
        weekday = [e for e in records if e.date.weekday() < 5]
        weekday_rate = _completion_rate(weekday)
        weekend_rate = _completion_rate(weekend)
        gap = abs(weekday_rate - weekend_rate)
        if gap <= constants.WEEKEND_WEEKDAY_DELTA:
            return ()
        description = ("Better performance on weekdays" if weekday_rate > weekend_rate
                       else "Better performance on weekends")
        return (CompletionPattern('WEEKEND_WEEKDAY', description, gap),)

    @staticmethod
    def detect_trends(events: Iterable, start_date: date, end_date: date) -> TrendAnalysis:
        validate_date_range(start_date, end_date)
        records = _in_range(dedupe_events(to_records(events)), start_date, end_date)
        if not records:
            return TrendAnalysis(TrendDirection.STABLE, 0.0, MappingProxyType({}), ())

        return TrendAnalysis(
            direction=HabitMetricsService.trend_direction(records, start_date, end_date),
            strength=HabitMetricsService.trend_strength(records, start_date, end_date),
            day_of_week_rates=HabitMetricsService.day_of_week_rates(records),
            significant_patterns=HabitMetricsService.significant_patterns(records),
        )

    # =========================================================================
    # PATTERN RECOGNITION
    # =========================================================================

    @staticmethod
    def _weekly_cycle(records: List[EventRecord]) -> RecognizedPattern:
        rates = HabitMetricsService.day_of_week_rates(records)
        spread = np.sqrt(metric_helpers.population_variance(list(rates.values())))
        confidence = max(0.0, 1.0 - float(spread))
        best_day = max(rates, key=lambda wd: (rates[wd], -wd))
        return RecognizedPattern(
            PatternType.WEEKLY_CYCLE,
            f"Best performance on {WEEKDAYS[best_day].lower()}",
            confidence,
        )

    @staticmethod
    def _streak_behavior(records: List[EventRecord]) -> RecognizedPattern:
        runs = metric_helpers.detect_streak_runs(e.date for e in records if e.completed)
        if not runs:
            return RecognizedPattern(PatternType.STREAK_BEHAVIOR, "No streak pattern detected", 0.0)
        average = sum(length for _, _, length in runs) / len(runs)
        return RecognizedPattern(
            PatternType.STREAK_BEHAVIOR,
            f"Average streak length: {average:.1f} days",
            min(1.0, average / 7.0),
        )

    @staticmethod
    def _seasonal_variation(records: List[EventRecord], start_date: date, end_date: date) -> RecognizedPattern:
        if calculate_days_in_range(start_date, end_date) < constants.SEASONAL_MIN_DAYS:
            return RecognizedPattern(PatternType.SEASONAL_VARIATION, "Insufficient data for seasonal analysis", 0.0)

        months: Dict[Tuple[int, int], List[EventRecord]] = {}
        for e in records:
            months.setdefault((e.date.year, e.date.month), []).append(e)
        if len(months) < constants.SEASONAL_MIN_MONTHS:
            return RecognizedPattern(PatternType.SEASONAL_VARIATION, "Insufficient months for seasonal analysis", 0.0)

        variance = metric_helpers.population_variance([_completion_rate(m) for m in months.values()])
        return RecognizedPattern(
            PatternType.SEASONAL_VARIATION,
            "Seasonal variation detected",
            metric_helpers.clamp_unit(variance),
        )

    @staticmethod
    def _recovery_behavior(records: List[EventRecord]) -> RecognizedPattern:
        completed_dates = sorted({e.date for e in records if e.completed})
        breaks = [
            (later - earlier).days - 1
            for earlier, later in zip(completed_dates, completed_dates[1:])
            if (later - earlier).days > 1
        ]
        if not breaks:
            return RecognizedPattern(PatternType.RECOVERY_BEHAVIOR, "No recovery pattern data", 0.0)
        average = sum(breaks) / len(breaks)
        return RecognizedPattern(
            PatternType.RECOVERY_BEHAVIOR,
            f"Average recovery time: {average:.1f} days",
            max(0.0, 1.0 - average / 7.0),
        )

    @staticmethod
    def recognize_patterns(events: Iterable, start_date: date, end_date: date) -> PatternRecognition:
        """
        Run every pattern detector and keep those whose confidence exceeds
        its own threshold.
        """
        validate_date_range(start_date, end_date)
        records = _in_range(dedupe_events(to_records(events)), start_date, end_date)
        if not records:
            return PatternRecognition(())

        candidates = [
            HabitMetricsService._weekly_cycle(records),
            HabitMetricsService._streak_behavior(records),
            HabitMetricsService._seasonal_variation(records, start_date, end_date),
            HabitMetricsService._recovery_behavior(records),
        ]
        found = tuple(
            p for p in candidates
            if p.confidence > constants.PATTERN_THRESHOLDS[p.pattern_type.value]
        )
        return PatternRecognition(found)

    # =========================================================================
    # FORMATION
    # =========================================================================

    @staticmethod
    def formation_progress(days_since_start: int, current_streak: int, success_rate: float) -> float:
        w = constants.FORMATION_PROGRESS_WEIGHTS
        time_progress = min(1.0, days_since_start / constants.HABIT_FORMATION_DAYS)
        streak_progress = min(1.0, current_streak / constants.FORMATION_PROGRESS_STREAK_TARGET)
        return metric_helpers.clamp_unit(
            w['time'] * time_progress + w['streak'] * streak_progress + w['success'] * success_rate
        )

    @staticmethod
    def reached_milestones(current_streak: int) -> Tuple[FormationMilestone, ...]:
        return tuple(
            FormationMilestone(name, description, days)
            for name, description, days in constants.STREAK_MILESTONES
            if current_streak >= days
        )

    @staticmethod
    def analyze_formation(events: Iterable, start_date: date, end_date: date,
                          habit_start: date = None, as_of: date = None) -> FormationAnalysis:
        """
        Stage, progress and streak milestones for one habit.

        Args:
            habit_start: First day of the habit (default: earliest event, else start_date)
            as_of: Reference day for the current streak (default: end_date)
        """
        validate_date_range(start_date, end_date)
        records = dedupe_events(to_records(events))
        as_of = as_of or end_date
        habit_start = habit_start or min((e.date for e in records), default=start_date)
        days_since_start = max(0, (as_of - habit_start).days)

        streaks = AggregationService.analyze_streaks(records, as_of=as_of)
        success = HabitMetricsService.success_rate(records, start_date, end_date)
        consistency = HabitMetricsService.consistency_score(records, start_date, end_date)

        stage = HabitMetricsService.classify_stage(
            days_since_start, success, consistency, streaks.current_streak
        )
        return FormationAnalysis(
            stage=stage,
            progress=HabitMetricsService.formation_progress(days_since_start, streaks.current_streak, success),
            current_streak=streaks.current_streak,
            days_since_start=days_since_start,
            milestones=HabitMetricsService.reached_milestones(streaks.current_streak),
        )

    # =========================================================================
    # FULL ANALYSIS
    # =========================================================================

    @staticmethod
    def analyze_habit(events: Iterable, habit_id: str, start_date: date, end_date: date,
                      user_id: str = None, habit_start: date = None,
                      as_of: date = None) -> HabitAnalyticsResult:
        """
        Compute every per-habit metric for one window.

        Args:
            events: Completion events; only those for habit_id (and user_id,
                when given) are used
            habit_id: Habit to analyse
            start_date, end_date: Inclusive analysis window
            habit_start: First day of the habit (default: earliest event seen)
            as_of: Reference day for the current streak (default: end_date)

        Returns:
            HabitAnalyticsResult; with no events every score is 0 and the
            stage is INITIATION.

        Raises:
            InvalidDateRangeError: if end_date < start_date
        """
        validate_date_range(start_date, end_date)
        as_of = as_of or end_date
        records = [
            e for e in dedupe_events(to_records(events))
            if e.habit_id == habit_id and (user_id is None or e.user_id == user_id)
        ]
        window = _in_range(records, start_date, end_date)

        streaks = AggregationService.analyze_streaks(records, habit_id, as_of=as_of)
        success = HabitMetricsService.success_rate(window, start_date, end_date)
        consistency = HabitMetricsService.consistency_score(window, start_date, end_date)
        strength = HabitMetricsService.habit_strength(success, consistency, streaks.current_streak)

        habit_start = habit_start or min((e.date for e in records), default=start_date)
        days_since_start = max(0, (as_of - habit_start).days)
        stage = HabitMetricsService.classify_stage(days_since_start, success, consistency, streaks.current_streak)

        logger.debug(
            f"Habit {habit_id}: success={success:.2f} consistency={consistency:.2f} "
            f"strength={strength:.2f} stage={stage.value}"
        )

        return HabitAnalyticsResult(
            habit_id=habit_id,
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
            success_rate=success,
            consistency_score=consistency,
            automaticity=HabitMetricsService.automaticity(window),
            context_stability=HabitMetricsService.context_stability(window),
            habit_strength=strength,
            current_streak=streaks.current_streak,
            max_streak=streaks.max_streak,
            days_since_start=days_since_start,
            formation_stage=stage,
            formation_progress=HabitMetricsService.formation_progress(
                days_since_start, streaks.current_streak, success
            ),
            trend=HabitMetricsService.detect_trends(window, start_date, end_date),
            patterns=HabitMetricsService.recognize_patterns(window, start_date, end_date),
            milestones=HabitMetricsService.reached_milestones(streaks.current_streak),
        )
