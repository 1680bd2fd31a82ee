"""
Metric helper functions for behavior analytics.
Implements the numeric primitives shared by the engines: streak run detection,
dispersion scores, trend lines, correlation and entropy.

All statistical methods use pure numpy - NO heavy dependencies (scipy/statsmodels/sklearn).
Variances are population variances throughout.
"""
import math
import numpy as np
import pandas as pd
from typing import Dict, Iterable, List, Sequence, Tuple
from datetime import date


EVENT_COLUMNS = ['habit_id', 'user_id', 'group_id', 'date', 'completed', 'hour', 'minute', 'weekday']


def clamp_unit(value: float) -> float:
    """Clamp to [0, 1], mapping NaN to 0."""
    if value is None or math.isnan(value):
        return 0.0
    return float(min(1.0, max(0.0, value)))


def safe_rate(numerator: float, denominator: float) -> float:
    return float(numerator) / denominator if denominator else 0.0


def events_frame(events: Iterable) -> pd.DataFrame:
    """
    Tabulate EventRecords into a DataFrame.

    Columns: habit_id, user_id, group_id, date, completed, hour, minute,
    weekday (0 = Monday). ``hour``/``minute`` are NaN when the event has no
    completion timestamp.
    """
    rows = [
        (
            e.habit_id, e.user_id, e.group_id, e.date, bool(e.completed),
            e.completed_at.hour if e.completed_at is not None else np.nan,
            e.completed_at.minute if e.completed_at is not None else np.nan,
            e.date.weekday(),
        )
        for e in events
    ]
    return pd.DataFrame(rows, columns=EVENT_COLUMNS)


def detect_streak_runs(dates: Iterable[date]) -> List[Tuple[date, date, int]]:
    """
    Detects runs of consecutive calendar days using NumPy run-length encoding.

    Args:
        dates: Completed dates, in any order, duplicates allowed

    Returns:
        [(start_date, end_date, length), ...] in chronological order
    """
    unique_dates = sorted(set(dates))
    if not unique_dates:
        return []

    ordinals = np.array([d.toordinal() for d in unique_dates])

    # A new run starts wherever the gap to the previous date is not exactly one day
    breaks = np.where(np.diff(ordinals) != 1)[0] + 1
    run_starts = np.concatenate(([0], breaks))
    run_ends = np.concatenate((breaks - 1, [len(ordinals) - 1]))

    return [
        (unique_dates[s], unique_dates[e], int(e - s + 1))
        for s, e in zip(run_starts, run_ends)
    ]


def population_variance(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.var(np.asarray(values, dtype=float)))


def coefficient_of_variation(values: Sequence[float]) -> Dict[str, float]:
    """
    Coefficient of variation (stdev / mean) of a series.

    Returns:
        {'mean': float, 'std': float, 'cv': float}; cv is 0 when the mean is 0
    """
    if len(values) == 0:
        return {'mean': 0.0, 'std': 0.0, 'cv': 0.0}

    arr = np.asarray(values, dtype=float)
    mean = float(np.mean(arr))
    std = float(np.std(arr))
    return {'mean': mean, 'std': std, 'cv': std / mean if mean > 0 else 0.0}


def compute_interval_consistency(dates: List[date], normalizer: float = 7.0) -> Dict[str, float]:
    """
    Computes consistency based on intervals between completion dates.
    Lower standard deviation = higher consistency.

    A single completion scores 0.5 and no completions score 0.

    Returns:
        {
            'interval_std': float (days),
            'interval_mean': float (days),
            'consistency_score': float (0-1)
        }
    """
    sorted_dates = sorted(set(dates))
    if len(sorted_dates) < 2:
        return {
            'interval_std': 0.0,
            'interval_mean': 0.0,
            'consistency_score': 0.5 if sorted_dates else 0.0
        }

    intervals = np.diff([d.toordinal() for d in sorted_dates])
    interval_std = float(np.std(intervals))
    interval_mean = float(np.mean(intervals))

    return {
        'interval_std': interval_std,
        'interval_mean': interval_mean,
        'consistency_score': max(0.0, 1.0 - interval_std / normalizer)
    }


def compute_trend_line(x_values: np.ndarray, y_values: np.ndarray) -> Dict[str, float]:
    """
    Computes linear regression trend line.

    Returns:
        {
            'slope': float,
            'intercept': float,
            'r_squared': float
        }
    """
    x_values = np.asarray(x_values, dtype=float)
    y_values = np.asarray(y_values, dtype=float)

    if len(x_values) < 2 or np.ptp(x_values) == 0:
        return {'slope': 0.0, 'intercept': float(np.mean(y_values)) if len(y_values) else 0.0, 'r_squared': 0.0}

    # Use numpy polyfit for linear regression
    slope, intercept = np.polyfit(x_values, y_values, 1)

    y_pred = slope * x_values + intercept
    ss_res = np.sum((y_values - y_pred) ** 2)
    ss_tot = np.sum((y_values - np.mean(y_values)) ** 2)
    r_squared = 1 - (ss_res / ss_tot) if ss_tot > 0 else 0.0

    return {
        'slope': float(slope),
        'intercept': float(intercept),
        'r_squared': float(r_squared)
    }


def compute_pearson_correlation(x: np.ndarray, y: np.ndarray) -> Dict:
    """
    Compute Pearson correlation without scipy (pure numpy)

    Fewer than 3 paired points, or a constant series, gives a correlation of 0.

    Returns:
        {
            'correlation': float in [-1, 1],
            'sample_size': int,
            'significant': bool
        }
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)

    if len(x) != len(y) or len(x) < 3:
        return {'correlation': 0.0, 'sample_size': int(min(len(x), len(y))), 'significant': False}

    # Remove NaN values
    mask = ~(np.isnan(x) | np.isnan(y))
    x = x[mask]
    y = y[mask]
    n = len(x)

    if n < 3:
        return {'correlation': 0.0, 'sample_size': n, 'significant': False}

    x_dev = x - np.mean(x)
    y_dev = y - np.mean(y)

    numerator = np.sum(x_dev * y_dev)
    denominator = np.sqrt(np.sum(x_dev ** 2) * np.sum(y_dev ** 2))

    if denominator == 0:
        return {'correlation': 0.0, 'sample_size': n, 'significant': False}

    r = float(np.clip(numerator / denominator, -1.0, 1.0))

    # t-test against |t| > 2 (roughly p < 0.05 for moderate n)
    t_stat = r * np.sqrt(n - 2) / np.sqrt(1 - r ** 2) if abs(r) < 1 else np.inf

    return {
        'correlation': r,
        'sample_size': n,
        'significant': bool(abs(t_stat) > 2.0)
    }


def compute_normalized_entropy(counts: Dict[int, int], n_categories: int = 24) -> Dict[str, float]:
    """
    Shannon entropy (natural log) of a count distribution, normalized by
    log(n_categories).

    Returns:
        {
            'entropy': float,
            'max_entropy': float,
            'normalized_entropy': float (0-1),
        }
    """
    values = np.array([c for c in counts.values() if c > 0], dtype=float)
    max_entropy = float(np.log(n_categories)) if n_categories > 1 else 0.0

    if values.size == 0 or max_entropy == 0:
        return {'entropy': 0.0, 'max_entropy': max_entropy, 'normalized_entropy': 0.0}

    p = values / values.sum()
    entropy = float(-np.sum(p * np.log(p)))
    return {
        'entropy': entropy,
        'max_entropy': max_entropy,
        'normalized_entropy': entropy / max_entropy,
    }


def recency_weighted_average(values: Sequence[float], base: float = 1.1) -> float:
    """
    Weighted mean where element i carries weight base**i, so the last
    (most recent) value weighs most.
    """
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=float)
    weights = np.power(base, np.arange(len(arr)))
    return float(np.sum(arr * weights) / np.sum(weights))
