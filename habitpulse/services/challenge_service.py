"""
Challenge Service

Generates adaptive team challenges from a group's current dynamics, scales
their difficulty to how the group is doing, and tracks progress.
"""
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple
import logging

from habitpulse.services.group_dynamics_service import GroupDynamicsResult
from habitpulse.utils import constants

logger = logging.getLogger(__name__)


class ChallengeType(Enum):
    STREAK = "STREAK"
    COLLABORATION = "COLLABORATION"
    IMPROVEMENT = "IMPROVEMENT"
    CONSISTENCY = "CONSISTENCY"
    PARTICIPATION = "PARTICIPATION"


class ChallengeMetric(Enum):
    GROUP_STREAK = "GROUP_STREAK"
    SYNERGY_SCORE = "SYNERGY_SCORE"
    MOMENTUM_SCORE = "MOMENTUM_SCORE"
    COHESION_SCORE = "COHESION_SCORE"
    COMPLETION_RATE = "COMPLETION_RATE"
    PARTICIPATION_RATE = "PARTICIPATION_RATE"


class ChallengeStatus(Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


class RewardType(Enum):
    POINTS = "POINTS"
    BADGE = "BADGE"
    ACHIEVEMENT = "ACHIEVEMENT"
    BONUS = "BONUS"


# Allowed status moves; terminal states have none
STATUS_TRANSITIONS = {
    ChallengeStatus.PENDING: {ChallengeStatus.ACTIVE, ChallengeStatus.EXPIRED},
    ChallengeStatus.ACTIVE: {ChallengeStatus.COMPLETED, ChallengeStatus.FAILED, ChallengeStatus.EXPIRED},
    ChallengeStatus.COMPLETED: set(),
    ChallengeStatus.FAILED: set(),
    ChallengeStatus.EXPIRED: set(),
}

# Metrics bounded to [0, 1]
UNIT_METRICS = frozenset((
    ChallengeMetric.SYNERGY_SCORE,
    ChallengeMetric.MOMENTUM_SCORE,
    ChallengeMetric.COHESION_SCORE,
    ChallengeMetric.COMPLETION_RATE,
    ChallengeMetric.PARTICIPATION_RATE,
))


@dataclass(frozen=True)
class ChallengeReward:
    reward_type: RewardType
    name: str
    value: int


@dataclass(frozen=True)
class TeamChallengeSpec:
    """A generated challenge; persisted only when a group accepts it."""
    group_id: str
    challenge_type: ChallengeType
    metric: ChallengeMetric
    title: str
    description: str
    current_value: float
    target_value: float
    duration_days: int
    difficulty_level: float
    priority: int
    rewards: Tuple[ChallengeReward, ...] = field(default_factory=tuple)
    status: ChallengeStatus = ChallengeStatus.PENDING

    def to_dict(self) -> Dict:
        return {
            'group_id': self.group_id,
            'challenge_type': self.challenge_type.value,
            'metric': self.metric.value,
            'title': self.title,
            'description': self.description,
            'current_value': self.current_value,
            'target_value': self.target_value,
            'duration_days': self.duration_days,
            'difficulty_level': self.difficulty_level,
            'priority': self.priority,
            'status': self.status.value,
            'rewards': [
                {'type': r.reward_type.value, 'name': r.name, 'value': r.value}
                for r in self.rewards
            ],
        }


@dataclass(frozen=True)
class ChallengeProgress:
    current_value: float
    target_value: float
    progress_percent: float
    reward_points_earned: int
    status: ChallengeStatus


class ChallengeService:
    """Builds, scales and tracks team challenges."""

    # =========================================================================
    # GENERATION
    # =========================================================================

    @staticmethod
    def streak_challenge(dynamics: GroupDynamicsResult) -> TeamChallengeSpec:
        current = dynamics.group_streak
        target = max(current + 3, 7)
        improvement = (target - current) / max(current, 1)
        return TeamChallengeSpec(
            group_id=dynamics.group_id,
            challenge_type=ChallengeType.STREAK,
            metric=ChallengeMetric.GROUP_STREAK,
            title="Streak Master Challenge",
            description=f"Keep the group streak going for {target} days in a row",
            current_value=float(current),
            target_value=float(target),
            duration_days=target + 2,
            difficulty_level=min(constants.MAX_DIFFICULTY, 0.3 + improvement * 0.6),
            priority=8 if current > 0 else 6,
            rewards=(
                ChallengeReward(RewardType.BADGE, "Streak Master Badge", target * 10),
                ChallengeReward(RewardType.POINTS, "Streak Points", target * 50),
            ),
        )

    @staticmethod
    def synergy_challenge(dynamics: GroupDynamicsResult) -> Optional[TeamChallengeSpec]:
        """Only offered to groups with at least two members."""
        if dynamics.participation.total_members < constants.MIN_SYNERGY_MEMBERS:
            return None
        current = dynamics.synergistic_score
        target = min(current + 0.2, 0.9)
        improvement = max(0.0, target - current)
        return TeamChallengeSpec(
            group_id=dynamics.group_id,
            challenge_type=ChallengeType.COLLABORATION,
            metric=ChallengeMetric.SYNERGY_SCORE,
            title="Team Synergy Boost",
            description=f"Raise team synergy to {target:.0%} by completing habits on the same days",
            current_value=current,
            target_value=target,
            duration_days=14,
            difficulty_level=min(constants.MAX_DIFFICULTY, 0.4 + improvement * 2),
            priority=9 if current < 0.5 else 7,
            rewards=(
                ChallengeReward(RewardType.BADGE, "Team Player Badge", 100),
                ChallengeReward(RewardType.BONUS, "Synergy Bonus", 200),
            ),
        )

    @staticmethod
    def momentum_challenge(dynamics: GroupDynamicsResult) -> TeamChallengeSpec:
        current = dynamics.momentum_score
        target = min(current + 0.15, 0.95)
        improvement = max(0.0, target - current)
        return TeamChallengeSpec(
            group_id=dynamics.group_id,
            challenge_type=ChallengeType.IMPROVEMENT,
            metric=ChallengeMetric.MOMENTUM_SCORE,
            title="Momentum Builder",
            description=f"Build group momentum up to {target:.0%}",
            current_value=current,
            target_value=target,
            duration_days=10,
            difficulty_level=min(constants.MAX_DIFFICULTY, 0.3 + improvement * 3),
            priority=8 if current < 0.6 else 6,
            rewards=(
                ChallengeReward(RewardType.ACHIEVEMENT, "Momentum Achievement", 75),
                ChallengeReward(RewardType.POINTS, "Momentum Points", 150),
            ),
        )

    @staticmethod
    def cohesion_challenge(dynamics: GroupDynamicsResult) -> TeamChallengeSpec:
        current = dynamics.cohesion_score
        target = min(current + 0.1, 0.9)
        improvement = max(0.0, target - current)
        return TeamChallengeSpec(
            group_id=dynamics.group_id,
            challenge_type=ChallengeType.CONSISTENCY,
            metric=ChallengeMetric.COHESION_SCORE,
            title="Unity Challenge",
            description=f"Bring every member along: reach {target:.0%} cohesion",
            current_value=current,
            target_value=target,
            duration_days=21,
            difficulty_level=min(constants.MAX_DIFFICULTY, 0.5 + improvement * 2.5),
            priority=7 if current < 0.7 else 5,
            rewards=(
                ChallengeReward(RewardType.BADGE, "Unity Badge", 80),
                ChallengeReward(RewardType.POINTS, "Unity Points", 180),
            ),
        )

    @staticmethod
    def generate_challenges(dynamics: GroupDynamicsResult) -> List[TeamChallengeSpec]:
        """
        Candidate challenges for a group, highest priority first (easier
        first among equal priorities), at most five.
        """
        candidates = [
            ChallengeService.streak_challenge(dynamics),
            ChallengeService.synergy_challenge(dynamics),
            ChallengeService.momentum_challenge(dynamics),
            ChallengeService.cohesion_challenge(dynamics),
        ]
        challenges = sorted(
            (c for c in candidates if c is not None),
            key=lambda c: (-c.priority, c.difficulty_level),
        )
        logger.debug(f"Generated {len(challenges)} challenges for group {dynamics.group_id}")
        return challenges[:constants.MAX_CHALLENGES]

    # =========================================================================
    # DIFFICULTY
    # =========================================================================

    @staticmethod
    def performance_factor(dynamics: GroupDynamicsResult) -> float:
        average = (dynamics.momentum_score + dynamics.cohesion_score + dynamics.synergistic_score) / 3.0
        if average > constants.HIGH_PERFORMANCE_AVERAGE:
            return constants.HARDER_MULTIPLIER
        if average < constants.LOW_PERFORMANCE_AVERAGE:
            return constants.EASIER_MULTIPLIER
        return 1.0

    @staticmethod
    def adjust_challenge_difficulty(challenge: TeamChallengeSpec,
                                    dynamics: GroupDynamicsResult) -> TeamChallengeSpec:
        """
        Scale target and difficulty by the group's overall performance
        (x1.2 above 0.8 average, x0.8 below 0.4) and give struggling groups
        30% more time. Score and rate targets stay within 1.0. The adjusted
        challenge starts over as PENDING.
        """
        factor = ChallengeService.performance_factor(dynamics)
        target = challenge.target_value * factor
        if challenge.metric in UNIT_METRICS:
            target = min(1.0, target)
        duration = challenge.duration_days
        if (dynamics.momentum_score + dynamics.cohesion_score) / 2.0 < constants.LOW_PERFORMANCE_AVERAGE:
            duration = int(round(duration * constants.STRUGGLING_DURATION_FACTOR))

        return replace(
            challenge,
            target_value=target,
            difficulty_level=min(constants.MAX_DIFFICULTY, challenge.difficulty_level * factor),
            duration_days=duration,
            status=ChallengeStatus.PENDING,
        )

    # =========================================================================
    # PROGRESS
    # =========================================================================

    @staticmethod
    def transition(challenge: TeamChallengeSpec, status: ChallengeStatus) -> TeamChallengeSpec:
        """
        Move a challenge to a new status.

        Raises:
            ValueError: if the move is not allowed from the current status
        """
        if status not in STATUS_TRANSITIONS[challenge.status]:
            raise ValueError(f"Cannot move challenge from {challenge.status.value} to {status.value}")
        return replace(challenge, status=status)

    @staticmethod
    def track_progress(challenge: TeamChallengeSpec, current_value: float,
                       expired: bool = False) -> ChallengeProgress:
        """
        Progress toward the target and the status it leads to.

        A PENDING challenge starts (ACTIVE) on its first report, or EXPIRED
        if its time ran out before it started. An ACTIVE challenge completes
        at 100% and fails when time runs out first. Terminal statuses never
        change. Every move goes through ``transition``.
        """
        if challenge.target_value > 0:
            percent = min(100.0, max(0.0, current_value / challenge.target_value * 100.0))
        else:
            percent = 100.0

        status = challenge.status
        if status == ChallengeStatus.PENDING:
            status = ChallengeStatus.EXPIRED if expired else ChallengeStatus.ACTIVE
        elif status == ChallengeStatus.ACTIVE:
            if percent >= 100.0:
                status = ChallengeStatus.COMPLETED
            elif expired:
                status = ChallengeStatus.FAILED
        if status != challenge.status:
            status = ChallengeService.transition(challenge, status).status

        return ChallengeProgress(
            current_value=current_value,
            target_value=challenge.target_value,
            progress_percent=percent,
            reward_points_earned=int(percent * 2),
            status=status,
        )

    @staticmethod
    def is_expired(started_on: date, challenge: TeamChallengeSpec, today: date) -> bool:
        return (today - started_on).days >= challenge.duration_days
