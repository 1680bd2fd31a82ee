"""
Forecast Service - Pure NumPy Implementation

Predictive analytics on top of the habit metrics:
- Short-range success forecast (weekly-rate trend with exponential decay)
- Anomaly detection (unusual weeks, unusual completion times, exceptional streaks)
- Formation timeline from a stored analytics snapshot

NO heavy dependencies: scipy, scikit-learn and statsmodels are not used.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
import logging
import math

import numpy as np

from habitpulse.helpers import metric_helpers
from habitpulse.schemas import EventRecord, dedupe_events, to_records
from habitpulse.services.habit_metrics_service import FormationStage
from habitpulse.utils.time_utils import week_start

logger = logging.getLogger(__name__)

# Weekday multipliers applied to forecast rates (0 = Monday)
DAY_OF_WEEK_ADJUSTMENT = {0: 0.9, 5: 0.85, 6: 0.85}

MIN_RECORDS_FOR_CONFIDENCE = 14
WEEKLY_ANOMALY_DEVIATION = 0.3
TIMING_ANOMALY_HOURS = 6
MIN_TIMED_RECORDS = 10
EXCEPTIONAL_STREAK_DAYS = 21


class AnomalyType(Enum):
    UNUSUALLY_HIGH = "UNUSUALLY_HIGH"
    UNUSUALLY_LOW = "UNUSUALLY_LOW"
    UNUSUAL_TIMING = "UNUSUAL_TIMING"
    EXCEPTIONAL_STREAK = "EXCEPTIONAL_STREAK"


@dataclass(frozen=True)
class ForecastPoint:
    date: date
    predicted_rate: float
    confidence: float


@dataclass(frozen=True)
class HabitForecast:
    habit_id: Optional[str]
    base_rate: float
    trend: float
    confidence: float
    points: Tuple[ForecastPoint, ...]

    def to_dict(self) -> Dict:
        return {
            'habit_id': self.habit_id,
            'base_rate': self.base_rate,
            'trend': self.trend,
            'confidence': self.confidence,
            'forecast': [
                {'date': p.date.isoformat(), 'predicted_rate': p.predicted_rate, 'confidence': p.confidence}
                for p in self.points
            ],
        }


@dataclass(frozen=True)
class Anomaly:
    anomaly_type: AnomalyType
    date: date
    description: str
    severity: float


@dataclass(frozen=True)
class FormationTimeline:
    current_stage: str
    next_stage: Optional[str]
    days_to_next_stage: Optional[int]
    estimated_date: Optional[date]
    formation_probability: float


def _snapshot_value(snapshot, name: str, default=0.0):
    if isinstance(snapshot, dict):
        return snapshot.get(name, default)
    return getattr(snapshot, name, default)


class ForecastService:
    """Forecasts, anomalies and formation timelines for a single habit."""

    @staticmethod
    def weekly_trend(events: Iterable) -> float:
        """
        OLS slope of completion rates over consecutive 7-record chunks.
        0 with fewer than 7 records or fewer than two chunks.
        """
        records = dedupe_events(to_records(events))
        if len(records) < 7:
            return 0.0
        rates = [
            sum(1 for e in records[i:i + 7] if e.completed) / len(records[i:i + 7])
            for i in range(0, len(records), 7)
        ]
        if len(rates) < 2:
            return 0.0
        return metric_helpers.compute_trend_line(np.arange(len(rates)), np.array(rates))['slope']

    @staticmethod
    def forecast_confidence(record_count: int, trend: float) -> float:
        if record_count < MIN_RECORDS_FOR_CONFIDENCE:
            return 0.3
        data_confidence = min(0.8, record_count / 30.0)
        stability_confidence = max(0.2, 1.0 - 2.0 * abs(trend))
        return (data_confidence + stability_confidence) / 2.0

    @staticmethod
    def forecast_success(events: Iterable, as_of: date, days_ahead: int = 7,
                         habit_id: Optional[str] = None) -> HabitForecast:
        """
        Predict daily success rates for the days after as_of.

        Args:
            events: Historical completion events
            as_of: Last observed day; the forecast starts the day after
            days_ahead: Number of days to forecast
            habit_id: Restrict to one habit

        Returns:
            HabitForecast; the trend contribution decays as exp(-i/30) and
            each point is scaled by a weekday adjustment.
        """
        records = [
            e for e in dedupe_events(to_records(events))
            if e.date <= as_of and (habit_id is None or e.habit_id == habit_id)
        ]
        base_rate = metric_helpers.safe_rate(sum(1 for e in records if e.completed), len(records))
        trend = ForecastService.weekly_trend(records)

        points = []
        for i in range(1, days_ahead + 1):
            day = as_of + timedelta(days=i)
            rate = metric_helpers.clamp_unit(base_rate + trend * math.exp(-i / 30.0))
            rate = metric_helpers.clamp_unit(rate * DAY_OF_WEEK_ADJUSTMENT.get(day.weekday(), 1.0))
            points.append(ForecastPoint(
                date=day,
                predicted_rate=rate,
                confidence=max(0.1, 0.9 - (i / days_ahead) * 0.5),
            ))

        return HabitForecast(
            habit_id=habit_id,
            base_rate=base_rate,
            trend=trend,
            confidence=ForecastService.forecast_confidence(len(records), trend),
            points=tuple(points),
        )

    # =========================================================================
    # ANOMALIES
    # =========================================================================

    @staticmethod
    def _weekly_anomalies(records: List[EventRecord]) -> List[Anomaly]:
        if len(records) < MIN_RECORDS_FOR_CONFIDENCE:
            return []
        overall = sum(1 for e in records if e.completed) / len(records)

        weeks: Dict[date, List[EventRecord]] = {}
        for e in records:
            weeks.setdefault(week_start(e.date), []).append(e)

        anomalies = []
        for monday in sorted(weeks):
            week_records = weeks[monday]
            rate = sum(1 for e in week_records if e.completed) / len(week_records)
            deviation = rate - overall
            if abs(deviation) > WEEKLY_ANOMALY_DEVIATION:
                kind = AnomalyType.UNUSUALLY_HIGH if deviation > 0 else AnomalyType.UNUSUALLY_LOW
                anomalies.append(Anomaly(
                    kind, monday,
                    f"Week of {monday.isoformat()} completion rate {rate:.0%} vs usual {overall:.0%}",
                    min(1.0, abs(deviation)),
                ))
        return anomalies

    @staticmethod
    def _timing_anomalies(records: List[EventRecord]) -> List[Anomaly]:
        timed = [e for e in records if e.completed and e.completed_at is not None]
        if len(timed) < MIN_TIMED_RECORDS:
            return []
        average_hour = sum(e.hour for e in timed) / len(timed)
        return [
            Anomaly(
                AnomalyType.UNUSUAL_TIMING, e.date,
                f"Completed at {e.completed_at:%H:%M}, usually around {average_hour:.0f}:00",
                min(1.0, abs(e.hour - average_hour) / 12.0),
            )
            for e in timed
            if abs(e.hour - average_hour) > TIMING_ANOMALY_HOURS
        ]

    @staticmethod
    def _streak_anomalies(records: List[EventRecord]) -> List[Anomaly]:
        runs = metric_helpers.detect_streak_runs(e.date for e in records if e.completed)
        return [
            Anomaly(
                AnomalyType.EXCEPTIONAL_STREAK, start,
                f"Exceptional {length}-day streak through {end.isoformat()}",
                min(1.0, length / 66.0),
            )
            for start, end, length in runs
            if length > EXCEPTIONAL_STREAK_DAYS
        ]

    @staticmethod
    def detect_anomalies(events: Iterable, habit_id: Optional[str] = None) -> Tuple[Anomaly, ...]:
        """Every anomaly found in the history, ordered by date."""
        records = [
            e for e in dedupe_events(to_records(events))
            if habit_id is None or e.habit_id == habit_id
        ]
        anomalies = (
            ForecastService._weekly_anomalies(records)
            + ForecastService._timing_anomalies(records)
            + ForecastService._streak_anomalies(records)
        )
        return tuple(sorted(anomalies, key=lambda a: (a.date, a.anomaly_type.value)))

    # =========================================================================
    # FORMATION TIMELINE
    # =========================================================================

    @staticmethod
    def days_to_next_stage(stage: FormationStage, success_rate: float, consistency: float) -> int:
        if stage == FormationStage.INITIATION:
            estimate = 21 - 14 * success_rate
        elif stage == FormationStage.LEARNING:
            estimate = 45 - 24 * consistency
        elif stage == FormationStage.STABILITY:
            estimate = 30 - 20 * success_rate * consistency
        else:
            estimate = 0
        return int(round(max(0.0, estimate)))

    @staticmethod
    def predict_formation_timeline(snapshot, as_of: date = None) -> FormationTimeline:
        """
        Estimate when a habit reaches its next stage.

        Args:
            snapshot: HabitAnalytics row (or dict of its fields); None when
                the habit was never analysed
            as_of: Day the estimate counts from (default: today)
        """
        as_of = as_of or date.today()
        if snapshot is None:
            return FormationTimeline('UNKNOWN', None, None, None, 0.0)

        stage = FormationStage(_snapshot_value(snapshot, 'formation_stage', 'INITIATION'))
        success_rate = float(_snapshot_value(snapshot, 'success_rate'))
        consistency = float(_snapshot_value(snapshot, 'consistency_score'))
        strength = float(_snapshot_value(snapshot, 'habit_strength'))

        days = ForecastService.days_to_next_stage(stage, success_rate, consistency)
        next_stage = stage.next_stage
        return FormationTimeline(
            current_stage=stage.value,
            next_stage=next_stage.value if next_stage else None,
            days_to_next_stage=days,
            estimated_date=as_of + timedelta(days=days),
            formation_probability=metric_helpers.clamp_unit(
                0.4 * success_rate + 0.4 * consistency + 0.2 * strength
            ),
        )
