"""
Timing Service

Bins timed completion events by hour of day and day of week to find when a
habit is most likely to get done.
"""
from dataclasses import dataclass
from datetime import time
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import logging

from habitpulse.helpers import metric_helpers
from habitpulse.schemas import EventRecord, dedupe_events, to_records
from habitpulse.services.aggregation_service import AggregationService, HourlyStat
from habitpulse.utils import constants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimingStats:
    total_attempts: int
    successful_attempts: int
    success_rate: float


@dataclass(frozen=True)
class TimeWindow:
    start: time
    end: time
    success_rate: float = 0.0
    sample_size: int = 0

    @property
    def is_fallback(self) -> bool:
        """True for the default window used when no hour had enough data."""
        return self.sample_size == 0


@dataclass(frozen=True)
class SuccessPrediction:
    probability: float
    confidence: float
    hour_rate: float
    day_rate: float
    sample_size: int


@dataclass(frozen=True)
class TimingAnalysis:
    hourly: Mapping[int, TimingStats]
    daily: Mapping[int, TimingStats]
    optimal_window: TimeWindow
    best_windows: Tuple[TimeWindow, ...]

    def to_dict(self) -> Dict:
        return {
            'optimal_window': {
                'start': self.optimal_window.start.strftime('%H:%M'),
                'end': self.optimal_window.end.strftime('%H:%M'),
            },
            'best_windows': [
                {'start': w.start.strftime('%H:%M'), 'end': w.end.strftime('%H:%M'), 'success_rate': w.success_rate}
                for w in self.best_windows
            ],
            'hourly': {h: s.success_rate for h, s in self.hourly.items() if s.total_attempts},
            'daily': {d: s.success_rate for d, s in self.daily.items() if s.total_attempts},
        }


def _timed(events: Iterable) -> List[EventRecord]:
    return [e for e in dedupe_events(to_records(events)) if e.completed_at is not None]


def _stats(records: List[EventRecord]) -> TimingStats:
    done = sum(1 for e in records if e.completed)
    return TimingStats(len(records), done, metric_helpers.safe_rate(done, len(records)))


def default_window() -> TimeWindow:
    (start_h, start_m), (end_h, end_m) = constants.DEFAULT_OPTIMAL_WINDOW
    return TimeWindow(time(start_h, start_m), time(end_h, end_m))


class TimingService:
    """Hour-of-day and day-of-week success analysis."""

    @staticmethod
    def hourly_stats(events: Iterable) -> Mapping[int, TimingStats]:
        """TimingStats for every hour 0-23 (empty hours have rate 0)."""
        hourly = AggregationService.aggregate_hourly(_timed(events))
        return MappingProxyType({
            s.hour: TimingStats(s.total_attempts, s.completed_attempts, s.completion_rate)
            for s in hourly.hourly_stats
        })

    @staticmethod
    def daily_stats(events: Iterable) -> Mapping[int, TimingStats]:
        """TimingStats per weekday (0 = Monday) of timed events."""
        records = _timed(events)
        return MappingProxyType({
            wd: _stats([e for e in records if e.completed_at.weekday() == wd])
            for wd in range(7)
        })

    @staticmethod
    def _qualifying_hours(events: Iterable, min_attempts: int) -> List[Tuple[int, TimingStats]]:
        hourly = TimingService.hourly_stats(events)
        qualifying = [(h, s) for h, s in hourly.items() if s.total_attempts >= min_attempts]
        return sorted(qualifying, key=lambda item: (-item[1].success_rate, item[0]))

    @staticmethod
    def optimal_window(events: Iterable, min_attempts: int = constants.TIMING_MIN_ATTEMPTS) -> TimeWindow:
        """
        Best hour widened by one hour either side, e.g. a best hour of 7
        gives 06:00-08:59. Falls back to 08:00-10:00 when no hour has
        enough attempts.
        """
        ranked = TimingService._qualifying_hours(events, min_attempts)
        if not ranked:
            return default_window()
        hour, stats = ranked[0]
        return TimeWindow(
            start=time(max(0, hour - 1), 0),
            end=time(min(23, hour + 1), 59),
            success_rate=stats.success_rate,
            sample_size=stats.total_attempts,
        )

    @staticmethod
    def best_time_windows(events: Iterable, n: int = 3,
                          min_attempts: int = constants.TIMING_MIN_ATTEMPTS) -> Tuple[TimeWindow, ...]:
        """Top-n qualifying hours as one-hour windows, best first."""
        ranked = TimingService._qualifying_hours(events, min_attempts)
        return tuple(
            TimeWindow(time(hour, 0), time(hour, 59), stats.success_rate, stats.total_attempts)
            for hour, stats in ranked[:n]
        )

    @staticmethod
    def prediction_confidence(sample_size: int) -> float:
        for minimum, confidence in constants.PREDICTION_CONFIDENCE_BANDS:
            if sample_size >= minimum:
                return confidence
        return constants.PREDICTION_CONFIDENCE_FLOOR

    @staticmethod
    def predict_success(events: Iterable, at: time, day_of_week: int) -> SuccessPrediction:
        """
        Blend the hour's and the weekday's success rates (0.7 / 0.3).

        Args:
            at: Time of day the habit would be attempted
            day_of_week: 0 = Monday
        """
        records = _timed(events)
        hour_stats = TimingService.hourly_stats(records)[at.hour]
        day_stats = TimingService.daily_stats(records)[day_of_week]

        probability = metric_helpers.clamp_unit(
            constants.PREDICTION_HOUR_WEIGHT * hour_stats.success_rate
            + constants.PREDICTION_DAY_WEIGHT * day_stats.success_rate
        )
        sample_size = hour_stats.total_attempts + day_stats.total_attempts
        return SuccessPrediction(
            probability=probability,
            confidence=TimingService.prediction_confidence(sample_size),
            hour_rate=hour_stats.success_rate,
            day_rate=day_stats.success_rate,
            sample_size=sample_size,
        )

    @staticmethod
    def weekly_timing_pattern(events: Iterable) -> Mapping[int, Tuple[HourlyStat, ...]]:
        """{weekday: hourly stats for the hours that weekday saw attempts}."""
        records = _timed(events)
        pattern = {}
        for wd in range(7):
            day_records = [e for e in records if e.completed_at.weekday() == wd]
            hourly = AggregationService.aggregate_hourly(day_records)
            pattern[wd] = tuple(s for s in hourly.hourly_stats if s.total_attempts > 0)
        return MappingProxyType(pattern)

    @staticmethod
    def analyze_timing(events: Iterable, habit_id: Optional[str] = None,
                       min_attempts: int = constants.TIMING_MIN_ATTEMPTS) -> TimingAnalysis:
        """Hourly and weekday stats plus the optimal and best windows."""
        records = [e for e in _timed(events) if habit_id is None or e.habit_id == habit_id]
        return TimingAnalysis(
            hourly=TimingService.hourly_stats(records),
            daily=TimingService.daily_stats(records),
            optimal_window=TimingService.optimal_window(records, min_attempts),
            best_windows=TimingService.best_time_windows(records, min_attempts=min_attempts),
        )
