"""
Correlation Service

Pairwise Pearson correlation between one user's habits, computed on
day-aligned boolean completion series. Only days on which both habits have a
record take part; fewer than three such days gives a coefficient of 0.
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum
from itertools import combinations
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd

from habitpulse.helpers import metric_helpers
from habitpulse.schemas import dedupe_events, to_records
from habitpulse.utils import constants
from habitpulse.utils.error_handlers import validate_date_range

logger = logging.getLogger(__name__)


class CorrelationType(Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"
    # Reserved for lagged analysis; never produced by same-day correlation
    CAUSAL = "CAUSAL"
    INVERSE_CAUSAL = "INVERSE_CAUSAL"


@dataclass(frozen=True)
class HabitCorrelationResult:
    """Correlation for an unordered habit pair; habit1_id < habit2_id."""
    habit1_id: str
    habit2_id: str
    coefficient: float
    correlation_type: CorrelationType
    confidence: float
    sample_size: int

    def to_dict(self) -> Dict:
        return {
            'habit1_id': self.habit1_id,
            'habit2_id': self.habit2_id,
            'coefficient': self.coefficient,
            'correlation_type': self.correlation_type.value,
            'confidence': self.confidence,
            'sample_size': self.sample_size,
        }


def canonical_pair(habit_a: str, habit_b: str) -> Tuple[str, str]:
    return (habit_a, habit_b) if habit_a <= habit_b else (habit_b, habit_a)


def classify_coefficient(coefficient: float, threshold: float = constants.CORRELATION_STRONG_THRESHOLD) -> CorrelationType:
    if coefficient >= threshold:
        return CorrelationType.POSITIVE
    if coefficient <= -threshold:
        return CorrelationType.NEGATIVE
    return CorrelationType.NEUTRAL


def overlap_confidence(sample_size: int) -> float:
    """Grows with the number of overlapping days, saturating at 30."""
    if sample_size < constants.CORRELATION_MIN_OVERLAP:
        return 0.0
    return min(1.0, sample_size / 30.0)


class CorrelationService:
    """Pairwise habit correlation for a single user."""

    @staticmethod
    def completion_series(events: Iterable, start_date: date, end_date: date) -> Dict[str, Dict[date, bool]]:
        """{habit_id: {date: completed}} for events inside the range."""
        validate_date_range(start_date, end_date)
        series: Dict[str, Dict[date, bool]] = {}
        for e in dedupe_events(to_records(events)):
            if start_date <= e.date <= end_date:
                series.setdefault(e.habit_id, {})[e.date] = bool(e.completed)
        return series

    @staticmethod
    def _pair(series: Mapping[str, Mapping[date, bool]], habit_a: str, habit_b: str,
              threshold: float) -> HabitCorrelationResult:
        first, second = canonical_pair(habit_a, habit_b)
        a = series.get(first, {})
        b = series.get(second, {})
        common = sorted(set(a) & set(b))

        x = np.array([1.0 if a[d] else 0.0 for d in common])
        y = np.array([1.0 if b[d] else 0.0 for d in common])
        pearson = metric_helpers.compute_pearson_correlation(x, y)
        coefficient = pearson['correlation'] if len(common) >= constants.CORRELATION_MIN_OVERLAP else 0.0

        return HabitCorrelationResult(
            habit1_id=first,
            habit2_id=second,
            coefficient=coefficient,
            correlation_type=classify_coefficient(coefficient, threshold),
            confidence=overlap_confidence(len(common)),
            sample_size=len(common),
        )

    @staticmethod
    def correlate(events: Iterable, habit_a: str, habit_b: str, start_date: date, end_date: date,
                  threshold: float = constants.CORRELATION_STRONG_THRESHOLD) -> HabitCorrelationResult:
        """
        Correlation between two habits. Argument order does not matter: the
        result always carries the pair in canonical order.

        Raises:
            InvalidDateRangeError: if end_date < start_date
        """
        series = CorrelationService.completion_series(events, start_date, end_date)
        return CorrelationService._pair(series, habit_a, habit_b, threshold)

    @staticmethod
    def analyze_correlations(events: Iterable, start_date: date, end_date: date,
                             habit_ids: Optional[Sequence[str]] = None,
                             threshold: float = constants.CORRELATION_STRONG_THRESHOLD
                             ) -> Tuple[HabitCorrelationResult, ...]:
        """
        Correlate every unordered pair of habits.

        Args:
            habit_ids: Habits to include (default: every habit in the events)

        Returns:
            One result per pair, ordered by (habit1_id, habit2_id)
        """
        series = CorrelationService.completion_series(events, start_date, end_date)
        ids = sorted(set(habit_ids) if habit_ids is not None else set(series))
        results = tuple(
            CorrelationService._pair(series, a, b, threshold)
            for a, b in combinations(ids, 2)
        )
        logger.debug(f"Correlated {len(results)} habit pairs over {len(ids)} habits")
        return results

    @staticmethod
    def correlation_matrix(events: Iterable, start_date: date, end_date: date,
                           habit_ids: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Symmetric habit x habit coefficient matrix with a unit diagonal."""
        series = CorrelationService.completion_series(events, start_date, end_date)
        ids = sorted(set(habit_ids) if habit_ids is not None else set(series))
        matrix = pd.DataFrame(np.eye(len(ids)), index=ids, columns=ids)
        for a, b in combinations(ids, 2):
            coefficient = CorrelationService._pair(series, a, b, constants.CORRELATION_STRONG_THRESHOLD).coefficient
            matrix.loc[a, b] = coefficient
            matrix.loc[b, a] = coefficient
        return matrix

    @staticmethod
    def strong_correlations(results: Iterable[HabitCorrelationResult],
                            threshold: float = constants.CORRELATION_STRONG_THRESHOLD,
                            positive: bool = True) -> List[HabitCorrelationResult]:
        """Results at or beyond +threshold (or -threshold), strongest first."""
        if positive:
            chosen = [r for r in results if r.coefficient >= threshold]
        else:
            chosen = [r for r in results if r.coefficient <= -threshold]
        return sorted(chosen, key=lambda r: abs(r.coefficient), reverse=True)
