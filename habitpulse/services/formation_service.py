"""
Habit Formation Service

Looks at how a habit is being executed rather than how often:
- Strength score from frequency, consistency, automaticity and context stability
- Barriers holding the habit back (low success, irregular timing, gaps, ...)
- Trigger windows: hours where the habit reliably gets done
- Progress within the current formation stage
"""
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
import logging

import numpy as np

from habitpulse.helpers import metric_helpers
from habitpulse.schemas import EventRecord, dedupe_events, to_records
from habitpulse.services.aggregation_service import AggregationService
from habitpulse.services.habit_metrics_service import (
    FormationStage,
    HabitMetricsService,
    TrendDirection,
)
from habitpulse.utils import constants
from habitpulse.utils.error_handlers import validate_date_range
from habitpulse.utils.time_utils import midpoint

logger = logging.getLogger(__name__)


class BarrierType(Enum):
    LOW_SUCCESS_RATE = "LOW_SUCCESS_RATE"
    INCONSISTENT_TIMING = "INCONSISTENT_TIMING"
    EXECUTION_GAPS = "EXECUTION_GAPS"
    CONTEXT_INSTABILITY = "CONTEXT_INSTABILITY"
    MOTIVATION_DECLINE = "MOTIVATION_DECLINE"


class StrengthCategory(Enum):
    VERY_STRONG = "VERY_STRONG"
    STRONG = "STRONG"
    MODERATE = "MODERATE"
    WEAK = "WEAK"
    VERY_WEAK = "VERY_WEAK"


@dataclass(frozen=True)
class StrengthAnalysis:
    frequency: float
    consistency: float
    automaticity: float
    context_stability: float
    score: float
    category: StrengthCategory


@dataclass(frozen=True)
class FormationBarrier:
    barrier_type: BarrierType
    severity: float
    description: str


@dataclass(frozen=True)
class TriggerWindow:
    hour: int
    attempts: int
    effectiveness: float
    timing_consistency: float


@dataclass(frozen=True)
class TriggerAnalysis:
    windows: Tuple[TriggerWindow, ...]

    @property
    def overall_effectiveness(self) -> float:
        if not self.windows:
            return 0.0
        return sum(w.effectiveness for w in self.windows) / len(self.windows)


@dataclass(frozen=True)
class FormationReport:
    habit_id: str
    stage: FormationStage
    stage_progress: float
    days_since_start: int
    success_rate: float
    strength: StrengthAnalysis
    barriers: Tuple[FormationBarrier, ...]
    triggers: TriggerAnalysis

    def to_dict(self) -> Dict:
        return {
            'habit_id': self.habit_id,
            'stage': self.stage.value,
            'stage_progress': self.stage_progress,
            'days_since_start': self.days_since_start,
            'success_rate': self.success_rate,
            'strength': {
                'frequency': self.strength.frequency,
                'consistency': self.strength.consistency,
                'automaticity': self.strength.automaticity,
                'context_stability': self.strength.context_stability,
                'score': self.strength.score,
                'category': self.strength.category.value,
            },
            'barriers': [
                {'type': b.barrier_type.value, 'severity': b.severity, 'description': b.description}
                for b in self.barriers
            ],
            'triggers': [
                {
                    'hour': w.hour,
                    'attempts': w.attempts,
                    'effectiveness': w.effectiveness,
                    'timing_consistency': w.timing_consistency,
                }
                for w in self.triggers.windows
            ],
        }


def _categorize(score: float) -> StrengthCategory:
    for bound, name in constants.STRENGTH_CATEGORY_BOUNDS:
        if score >= bound:
            return StrengthCategory[name]
    return StrengthCategory.VERY_WEAK


class FormationService:
    """Strength, barrier and trigger analysis for a single habit."""

    @staticmethod
    def frequency(events: Iterable) -> float:
        """Share of recorded days on which the habit was completed."""
        records = dedupe_events(to_records(events))
        recorded = {e.date for e in records}
        completed = {e.date for e in records if e.completed}
        return metric_helpers.safe_rate(len(completed), len(recorded))

    @staticmethod
    def analyze_strength(events: Iterable, start_date: date, end_date: date) -> StrengthAnalysis:
        validate_date_range(start_date, end_date)
        records = [e for e in dedupe_events(to_records(events)) if start_date <= e.date <= end_date]

        frequency = FormationService.frequency(records)
        consistency = HabitMetricsService.consistency_score(records, start_date, end_date)
        automaticity = HabitMetricsService.automaticity(records)
        context_stability = HabitMetricsService.context_stability(records)

        w = constants.STRENGTH_SCORE_WEIGHTS
        score = metric_helpers.clamp_unit(
            w['frequency'] * frequency
            + w['consistency'] * consistency
            + w['automaticity'] * automaticity
            + w['context_stability'] * context_stability
        )
        return StrengthAnalysis(
            frequency=frequency,
            consistency=consistency,
            automaticity=automaticity,
            context_stability=context_stability,
            score=score,
            category=_categorize(score),
        )

    @staticmethod
    def first_execution_gap(events: Iterable) -> Optional[int]:
        """Length in days of the first gap between completions longer than 3 days."""
        completed = sorted({e.date for e in dedupe_events(to_records(events)) if e.completed})
        for earlier, later in zip(completed, completed[1:]):
            gap = (later - earlier).days
            if gap > constants.BARRIER_GAP_DAYS:
                return gap
        return None

    @staticmethod
    def identify_barriers(events: Iterable, start_date: date, end_date: date) -> Tuple[FormationBarrier, ...]:
        """
        Barriers ordered by severity (highest first).

        No events means no evidence of anything, so no barriers are reported.
        """
        validate_date_range(start_date, end_date)
        records = [e for e in dedupe_events(to_records(events)) if start_date <= e.date <= end_date]
        if not records:
            return ()

        barriers: List[FormationBarrier] = []

        success = HabitMetricsService.success_rate(records, start_date, end_date)
        if success < constants.BARRIER_LOW_SUCCESS_RATE:
            barriers.append(FormationBarrier(
                BarrierType.LOW_SUCCESS_RATE,
                metric_helpers.clamp_unit(1.0 - success),
                f"Success rate of {success:.0%} is below 50%",
            ))

        consistency = HabitMetricsService.consistency_score(records, start_date, end_date)
        if consistency < constants.BARRIER_INCONSISTENT_TIMING:
            barriers.append(FormationBarrier(
                BarrierType.INCONSISTENT_TIMING,
                metric_helpers.clamp_unit(1.0 - consistency),
                f"Consistency of {consistency:.2f} indicates irregular execution",
            ))

        gap = FormationService.first_execution_gap(records)
        if gap is not None:
            barriers.append(FormationBarrier(
                BarrierType.EXECUTION_GAPS,
                min(1.0, gap / 7.0),
                "Gap of %d days detected in habit execution" % gap,
            ))

        if any(e.completed and e.completed_at is not None for e in records):
            stability = HabitMetricsService.context_stability(records)
            if stability < 0.4:
                barriers.append(FormationBarrier(
                    BarrierType.CONTEXT_INSTABILITY,
                    metric_helpers.clamp_unit(1.0 - stability),
                    "Completion time varies widely from day to day",
                ))

        if HabitMetricsService.trend_direction(records, start_date, end_date) == TrendDirection.DECLINING:
            mid = midpoint(start_date, end_date)
            drop = (
                HabitMetricsService.success_rate(records, start_date, mid)
                - HabitMetricsService.success_rate(records, mid + timedelta(days=1), end_date)
            )
            barriers.append(FormationBarrier(
                BarrierType.MOTIVATION_DECLINE,
                metric_helpers.clamp_unit(drop),
                "Completion rate dropped in the second half of the period",
            ))

        return tuple(sorted(barriers, key=lambda b: b.severity, reverse=True))

    @staticmethod
    def analyze_triggers(events: Iterable) -> TriggerAnalysis:
        """
        Hours with at least three timed attempts, ranked by how often the
        habit gets done in them.
        """
        records = [e for e in dedupe_events(to_records(events)) if e.completed_at is not None]
        by_hour: Dict[int, List[EventRecord]] = {}
        for e in records:
            by_hour.setdefault(e.hour, []).append(e)

        windows = []
        for hour, hour_events in by_hour.items():
            if len(hour_events) < constants.TRIGGER_MIN_COMPLETIONS:
                continue
            minutes = [e.completed_at.minute for e in hour_events]
            if len(minutes) < 2:
                timing_consistency = 1.0
            else:
                timing_consistency = max(0.0, 1.0 - float(np.std(minutes)) / constants.TRIGGER_MINUTE_NORMALIZER)
            windows.append(TriggerWindow(
                hour=hour,
                attempts=len(hour_events),
                effectiveness=metric_helpers.safe_rate(sum(1 for e in hour_events if e.completed), len(hour_events)),
                timing_consistency=timing_consistency,
            ))

        windows.sort(key=lambda w: (-w.effectiveness, w.hour))
        return TriggerAnalysis(tuple(windows))

    @staticmethod
    def stage_progress(stage: FormationStage, days_since_start: int, consistency: float,
                       automaticity: float) -> float:
        """How far the habit has moved through its current stage (0-1)."""
        if stage == FormationStage.INITIATION:
            return min(1.0, days_since_start / 7.0)
        if stage == FormationStage.LEARNING:
            return metric_helpers.clamp_unit((consistency + automaticity) / 2.0)
        if stage == FormationStage.STABILITY:
            return metric_helpers.clamp_unit(0.6 * consistency + 0.4 * automaticity)
        return 1.0

    @staticmethod
    def analyze_formation(events: Iterable, habit_id: str, start_date: date, end_date: date,
                          habit_start: date = None, as_of: date = None) -> FormationReport:
        """
        Full formation report for one habit.

        Args:
            events: Completion events (other habits are ignored)
            habit_id: Habit to analyse
            start_date, end_date: Inclusive analysis window
            habit_start: First day of the habit (default: earliest event seen)
            as_of: Reference day for the current streak (default: end_date)

        Raises:
            InvalidDateRangeError: if end_date < start_date
        """
        validate_date_range(start_date, end_date)
        as_of = as_of or end_date
        records = [e for e in dedupe_events(to_records(events)) if e.habit_id == habit_id]
        window = [e for e in records if start_date <= e.date <= end_date]

        habit_start = habit_start or min((e.date for e in records), default=start_date)
        days_since_start = max(0, (as_of - habit_start).days)

        streak = AggregationService.analyze_streaks(records, habit_id, as_of=as_of).current_streak
        success = HabitMetricsService.success_rate(window, start_date, end_date)
        strength = FormationService.analyze_strength(window, start_date, end_date)
        stage = HabitMetricsService.classify_stage(days_since_start, success, strength.consistency, streak)

        return FormationReport(
            habit_id=habit_id,
            stage=stage,
            stage_progress=FormationService.stage_progress(
                stage, days_since_start, strength.consistency, strength.automaticity
            ),
            days_since_start=days_since_start,
            success_rate=success,
            strength=strength,
            barriers=FormationService.identify_barriers(window, start_date, end_date),
            triggers=FormationService.analyze_triggers(window),
        )
