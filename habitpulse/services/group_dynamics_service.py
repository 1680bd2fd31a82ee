"""
Group Dynamics Service

Group-level behavior metrics for shared habits:
- Momentum: recency-weighted daily group completion rate
- Cohesion: how evenly members follow through
- Synergy: how often members are active on the same days
- Group streak, participation and key-contributor ranking

Every score is clamped to [0, 1].
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging

import numpy as np

from habitpulse.helpers import metric_helpers
from habitpulse.schemas import EventRecord, dedupe_events, to_records
from habitpulse.services.aggregation_service import AggregationService
from habitpulse.utils import constants
from habitpulse.utils.error_handlers import validate_date_range
from habitpulse.utils.time_utils import date_range

logger = logging.getLogger(__name__)


class ContributorType(Enum):
    LEADER = "LEADER"
    HIGH_PERFORMER = "HIGH_PERFORMER"
    ACTIVE_PARTICIPANT = "ACTIVE_PARTICIPANT"
    CONSISTENT_CONTRIBUTOR = "CONSISTENT_CONTRIBUTOR"
    CASUAL_PARTICIPANT = "CASUAL_PARTICIPANT"


@dataclass(frozen=True)
class KeyContributor:
    user_id: str
    total_attempts: int
    successful_completions: int
    completion_rate: float
    contribution_score: float
    contributor_type: ContributorType


@dataclass(frozen=True)
class ParticipationMetrics:
    total_members: int
    active_members: int
    participation_rate: float
    total_attempts: int
    total_completions: int
    completion_rate: float


@dataclass(frozen=True)
class GroupDynamicsResult:
    group_id: str
    start_date: date
    end_date: date
    momentum_score: float
    cohesion_score: float
    synergistic_score: float
    group_streak: int
    participation: ParticipationMetrics
    key_contributors: Tuple[KeyContributor, ...]

    def to_metrics(self) -> Dict:
        """Fields persisted in GroupMetrics."""
        return {
            'group_streak': self.group_streak,
            'momentum_score': round(self.momentum_score, 6),
            'synergistic_score': round(self.synergistic_score, 6),
            'cohesion_score': round(self.cohesion_score, 6),
        }


# =============================================================================
# HELPERS
# =============================================================================

def _scoped(events: Iterable, start_date: date, end_date: date,
            member_ids: Optional[Sequence[str]] = None,
            habit_ids: Optional[Sequence[str]] = None) -> List[EventRecord]:
    members = set(member_ids) if member_ids is not None else None
    habits = set(habit_ids) if habit_ids is not None else None
    return [
        e for e in dedupe_events(to_records(events))
        if start_date <= e.date <= end_date
        and (members is None or e.user_id in members)
        and (habits is None or e.habit_id in habits)
    ]


def _member_ids(records: List[EventRecord], member_ids: Optional[Sequence[str]]) -> List[str]:
    if member_ids is not None:
        return sorted(set(member_ids))
    return sorted({e.user_id for e in records})


def _habit_ids(records: List[EventRecord], habit_ids: Optional[Sequence[str]]) -> List[str]:
    if habit_ids is not None:
        return sorted(set(habit_ids))
    return sorted({e.habit_id for e in records})


def _member_counts(records: List[EventRecord], members: List[str]) -> Dict[str, Tuple[int, int]]:
    """{user_id: (attempts, completions)} for every member, zeros included."""
    counts = {m: (0, 0) for m in members}
    for e in records:
        if e.user_id in counts:
            attempts, done = counts[e.user_id]
            counts[e.user_id] = (attempts + 1, done + (1 if e.completed else 0))
    return counts


# =============================================================================
# GROUP DYNAMICS SERVICE
# =============================================================================

class GroupDynamicsService:
    """Momentum, cohesion, synergy and contributor analysis for one group."""

    @staticmethod
    def momentum(events: Iterable, member_ids: Sequence[str], habit_ids: Sequence[str],
                 start_date: date, end_date: date) -> float:
        """
        Recency-weighted mean of daily completions / (habits x members),
        with day i weighted 1.1**i (the last day weighs most).
        """
        validate_date_range(start_date, end_date)
        if not member_ids or not habit_ids:
            return 0.0
        records = _scoped(events, start_date, end_date, member_ids, habit_ids)
        possible = len(set(member_ids)) * len(set(habit_ids))

        completions: Dict[date, int] = {}
        for e in records:
            if e.completed:
                completions[e.date] = completions.get(e.date, 0) + 1
        rates = [
            metric_helpers.clamp_unit(completions.get(day, 0) / possible)
            for day in date_range(start_date, end_date)
        ]
        if len(rates) < 2:
            return rates[0]
        return metric_helpers.clamp_unit(
            metric_helpers.recency_weighted_average(rates, constants.MOMENTUM_DECAY_BASE)
        )

    @staticmethod
    def member_rates(events: Iterable, member_ids: Sequence[str], start_date: date,
                     end_date: date) -> Dict[str, float]:
        """Per-member completion rate (completions / attempts, 0 without attempts)."""
        validate_date_range(start_date, end_date)
        records = _scoped(events, start_date, end_date, member_ids)
        counts = _member_counts(records, _member_ids(records, member_ids))
        return {m: metric_helpers.safe_rate(done, attempts) for m, (attempts, done) in counts.items()}

    @staticmethod
    def cohesion(events: Iterable, member_ids: Sequence[str], start_date: date, end_date: date) -> float:
        """
        1 - (stdev / mean) of member completion rates, plus a boost of up to
        0.2 proportional to the mean rate, capped at 1. A group where nobody
        completes anything has cohesion 0.

        The spread is the coefficient of variation rather than the plain
        standard deviation (1 - sqrt(variance)). Rates lie in [0, 1], so the
        plain form never drops below 0.5 and a group carried by one member
        would still look cohesive; dividing by the mean lets that group
        score near 0.
        """
        rates = list(GroupDynamicsService.member_rates(events, member_ids, start_date, end_date).values())
        dispersion = metric_helpers.coefficient_of_variation(rates)
        if dispersion['mean'] == 0:
            return 0.0
        base = max(0.0, 1.0 - dispersion['cv'])
        boost = min(constants.COHESION_BOOST_CAP, constants.COHESION_BOOST_CAP * dispersion['mean'])
        return metric_helpers.clamp_unit(base + boost)

    @staticmethod
    def group_streak(events: Iterable, habit_ids: Sequence[str], start_date: date, end_date: date,
                     member_ids: Optional[Sequence[str]] = None) -> int:
        """
        Consecutive days, counted back from end_date, whose group completion
        rate reaches max(0.5, the window's average daily rate).
        """
        validate_date_range(start_date, end_date)
        records = _scoped(events, start_date, end_date, member_ids, habit_ids)
        by_habit = {h: [e for e in records if e.habit_id == h] for h in _habit_ids(records, habit_ids)}
        aggregation = AggregationService.aggregate_group(by_habit, start_date, end_date)

        threshold = max(constants.GROUP_STREAK_MIN_RATE, aggregation.average_completion_rate)
        streak = 0
        for stat in reversed(aggregation.daily_stats):
            if stat.total_attempts == 0 or stat.completion_rate < threshold:
                break
            streak += 1
        return streak

    @staticmethod
    def synergy(events: Iterable, member_ids: Sequence[str], habit_ids: Sequence[str],
                start_date: date, end_date: date) -> float:
        """
        Average pairwise Pearson correlation of members' daily activity,
        remapped from [-1, 1] to [0, 1]. A member counts as active on a day
        when any of their records that day is completed. Pairs sharing fewer
        than three recorded days contribute a correlation of 0.
        """
        validate_date_range(start_date, end_date)
        members = sorted(set(member_ids or []))
        if len(members) < constants.MIN_SYNERGY_MEMBERS or not habit_ids:
            return 0.0
        records = _scoped(events, start_date, end_date, members, habit_ids)

        activity: Dict[str, Dict[date, bool]] = {m: {} for m in members}
        for e in records:
            activity[e.user_id][e.date] = activity[e.user_id].get(e.date, False) or bool(e.completed)

        correlations = []
        for a, b in combinations(members, 2):
            common = sorted(set(activity[a]) & set(activity[b]))
            if len(common) < constants.CORRELATION_MIN_OVERLAP:
                correlations.append(0.0)
                continue
            x = np.array([1.0 if activity[a][d] else 0.0 for d in common])
            y = np.array([1.0 if activity[b][d] else 0.0 for d in common])
            correlations.append(metric_helpers.compute_pearson_correlation(x, y)['correlation'])

        average = sum(correlations) / len(correlations)
        return metric_helpers.clamp_unit((average + 1.0) / 2.0)

    @staticmethod
    def participation(events: Iterable, member_ids: Sequence[str], start_date: date,
                      end_date: date) -> ParticipationMetrics:
        validate_date_range(start_date, end_date)
        records = _scoped(events, start_date, end_date, member_ids)
        members = _member_ids(records, member_ids)
        active = {e.user_id for e in records}
        completions = sum(1 for e in records if e.completed)
        return ParticipationMetrics(
            total_members=len(members),
            active_members=len(active),
            participation_rate=metric_helpers.safe_rate(len(active), len(members)),
            total_attempts=len(records),
            total_completions=completions,
            completion_rate=metric_helpers.safe_rate(completions, len(records)),
        )

    @staticmethod
    def classify_contributor(rate: float, attempts: int, average_rate: float,
                             average_attempts: float) -> ContributorType:
        if rate > constants.LEADER_RATE_FACTOR * average_rate and attempts > constants.LEADER_ATTEMPT_FACTOR * average_attempts:
            return ContributorType.LEADER
        if rate > constants.HIGH_PERFORMER_RATE_FACTOR * average_rate:
            return ContributorType.HIGH_PERFORMER
        if attempts > constants.ACTIVE_PARTICIPANT_ATTEMPT_FACTOR * average_attempts:
            return ContributorType.ACTIVE_PARTICIPANT
        if rate > average_rate:
            return ContributorType.CONSISTENT_CONTRIBUTOR
        return ContributorType.CASUAL_PARTICIPANT

    @staticmethod
    def key_contributors(events: Iterable, member_ids: Sequence[str], start_date: date,
                         end_date: date) -> Tuple[KeyContributor, ...]:
        """
        Members with at least one attempt, ranked by contribution score.

        Group averages are taken over every member, so members who never
        attempted anything pull the averages down.
        """
        validate_date_range(start_date, end_date)
        records = _scoped(events, start_date, end_date, member_ids)
        counts = _member_counts(records, _member_ids(records, member_ids))
        if not counts:
            return ()

        rates = {m: metric_helpers.safe_rate(done, attempts) for m, (attempts, done) in counts.items()}
        average_rate = sum(rates.values()) / len(rates)
        average_attempts = sum(attempts for attempts, _ in counts.values()) / len(counts)
        max_attempts = max(attempts for attempts, _ in counts.values())

        contributors = []
        for member, (attempts, done) in counts.items():
            if attempts == 0:
                continue
            relative_rate = rates[member] / average_rate if average_rate > 0 else 1.0
            score = (constants.CONTRIBUTION_PERFORMANCE_WEIGHT * relative_rate
                     + constants.CONTRIBUTION_ACTIVITY_WEIGHT * metric_helpers.safe_rate(attempts, max_attempts))
            contributors.append(KeyContributor(
                user_id=member,
                total_attempts=attempts,
                successful_completions=done,
                completion_rate=rates[member],
                contribution_score=score,
                contributor_type=GroupDynamicsService.classify_contributor(
                    rates[member], attempts, average_rate, average_attempts
                ),
            ))
        return tuple(sorted(contributors, key=lambda c: (-c.contribution_score, c.user_id)))

    @staticmethod
    def analyze_group(events: Iterable, group_id: str, member_ids: Sequence[str],
                      habit_ids: Sequence[str], start_date: date, end_date: date) -> GroupDynamicsResult:
        """
        Every group metric for one window.

        Args:
            events: Completion events of the group's habits
            member_ids: All group members, including ones with no events
            habit_ids: The group's habits

        Raises:
            InvalidDateRangeError: if end_date < start_date
        """
        validate_date_range(start_date, end_date)
        records = _scoped(events, start_date, end_date, member_ids, habit_ids)

        result = GroupDynamicsResult(
            group_id=group_id,
            start_date=start_date,
            end_date=end_date,
            momentum_score=GroupDynamicsService.momentum(records, member_ids, habit_ids, start_date, end_date),
            cohesion_score=GroupDynamicsService.cohesion(records, member_ids, start_date, end_date),
            synergistic_score=GroupDynamicsService.synergy(records, member_ids, habit_ids, start_date, end_date),
            group_streak=GroupDynamicsService.group_streak(records, habit_ids, start_date, end_date, member_ids),
            participation=GroupDynamicsService.participation(records, member_ids, start_date, end_date),
            key_contributors=GroupDynamicsService.key_contributors(records, member_ids, start_date, end_date),
        )
        logger.debug(
            f"Group {group_id}: momentum={result.momentum_score:.2f} cohesion={result.cohesion_score:.2f} "
            f"synergy={result.synergistic_score:.2f} streak={result.group_streak}"
        )
        return result
