import pytest
from dataclasses import replace
from datetime import date

from habitpulse.services.challenge_service import (
    ChallengeMetric,
    ChallengeService,
    ChallengeStatus,
    ChallengeType,
    RewardType,
)
from habitpulse.services.group_dynamics_service import GroupDynamicsResult, ParticipationMetrics


def _dynamics(momentum=0.5, cohesion=0.5, synergy=0.5, streak=4, members=3):
    return GroupDynamicsResult(
        group_id='g1',
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 30),
        momentum_score=momentum,
        cohesion_score=cohesion,
        synergistic_score=synergy,
        group_streak=streak,
        participation=ParticipationMetrics(members, members, 1.0, 30, 20, 2 / 3),
        key_contributors=(),
    )


class TestGeneration:

    def test_streak_challenge(self):
        challenge = ChallengeService.streak_challenge(_dynamics(streak=4))
        assert challenge.challenge_type == ChallengeType.STREAK
        assert challenge.metric == ChallengeMetric.GROUP_STREAK
        assert challenge.target_value == 7.0
        assert challenge.duration_days == 9
        assert challenge.difficulty_level == pytest.approx(0.75)
        assert challenge.priority == 8
        assert challenge.status == ChallengeStatus.PENDING
        assert [(r.reward_type, r.value) for r in challenge.rewards] == [
            (RewardType.BADGE, 70), (RewardType.POINTS, 350)
        ]

    def test_streak_challenge_from_zero(self):
        challenge = ChallengeService.streak_challenge(_dynamics(streak=0))
        assert challenge.target_value == 7.0
        assert challenge.difficulty_level == 0.9
        assert challenge.priority == 6

    def test_long_streak_extends_by_three(self):
        assert ChallengeService.streak_challenge(_dynamics(streak=10)).target_value == 13.0

    def test_synergy_challenge(self):
        challenge = ChallengeService.synergy_challenge(_dynamics(synergy=0.3))
        assert challenge.target_value == pytest.approx(0.5)
        assert challenge.difficulty_level == pytest.approx(0.8)
        assert challenge.priority == 9
        assert ChallengeService.synergy_challenge(_dynamics(synergy=0.8)).target_value == pytest.approx(0.9)

    def test_synergy_needs_two_members(self):
        assert ChallengeService.synergy_challenge(_dynamics(members=1)) is None

    def test_momentum_and_cohesion(self):
        momentum = ChallengeService.momentum_challenge(_dynamics(momentum=0.5))
        assert momentum.target_value == pytest.approx(0.65)
        assert momentum.priority == 8
        cohesion = ChallengeService.cohesion_challenge(_dynamics(cohesion=0.5))
        assert cohesion.target_value == pytest.approx(0.6)
        assert cohesion.duration_days == 21
        assert cohesion.priority == 7

    def test_difficulty_capped(self):
        for challenge in ChallengeService.generate_challenges(_dynamics(0.0, 0.0, 0.0, streak=0)):
            assert 0.0 <= challenge.difficulty_level <= 0.9

    def test_generate_challenges_order(self):
        challenges = ChallengeService.generate_challenges(_dynamics(synergy=0.3))
        assert challenges[0].challenge_type == ChallengeType.COLLABORATION
        priorities = [c.priority for c in challenges]
        assert priorities == sorted(priorities, reverse=True)
        assert len(challenges) == 4

    def test_single_member_group(self):
        challenges = ChallengeService.generate_challenges(_dynamics(members=1))
        assert ChallengeType.COLLABORATION not in {c.challenge_type for c in challenges}
        assert len(challenges) == 3

    def test_to_dict(self):
        data = ChallengeService.streak_challenge(_dynamics()).to_dict()
        assert data['challenge_type'] == 'STREAK'
        assert data['status'] == 'PENDING'
        assert data['rewards'][0] == {'type': 'BADGE', 'name': 'Streak Master Badge', 'value': 70}


class TestDifficulty:

    @pytest.mark.parametrize('score,expected', [(0.9, 1.2), (0.5, 1.0), (0.2, 0.8)])
    def test_performance_factor(self, score, expected):
        assert ChallengeService.performance_factor(_dynamics(score, score, score)) == expected

    def test_thriving_group_gets_harder(self):
        challenge = ChallengeService.streak_challenge(_dynamics(streak=4))
        adjusted = ChallengeService.adjust_challenge_difficulty(challenge, _dynamics(0.9, 0.9, 0.9))
        assert adjusted.target_value == pytest.approx(8.4)
        assert adjusted.difficulty_level == pytest.approx(0.9)
        assert adjusted.duration_days == challenge.duration_days

    def test_struggling_group_gets_easier_and_longer(self):
        challenge = ChallengeService.streak_challenge(_dynamics(streak=4))
        adjusted = ChallengeService.adjust_challenge_difficulty(challenge, _dynamics(0.2, 0.2, 0.2))
        assert adjusted.target_value == pytest.approx(5.6)
        assert adjusted.difficulty_level == pytest.approx(0.6)
        assert adjusted.duration_days == 12

    def test_score_targets_capped_at_one(self):
        thriving = _dynamics(0.9, 0.9, 0.9)
        momentum = ChallengeService.momentum_challenge(thriving)
        assert momentum.target_value == pytest.approx(0.95)

        adjusted = ChallengeService.adjust_challenge_difficulty(momentum, thriving)
        assert adjusted.target_value == 1.0

        synergy = ChallengeService.adjust_challenge_difficulty(ChallengeService.synergy_challenge(thriving), thriving)
        assert synergy.target_value == 1.0

    def test_adjusted_challenge_is_pending(self):
        challenge = replace(ChallengeService.streak_challenge(_dynamics()), status=ChallengeStatus.ACTIVE)
        adjusted = ChallengeService.adjust_challenge_difficulty(challenge, _dynamics())
        assert adjusted.status == ChallengeStatus.PENDING


class TestProgress:

    @pytest.fixture
    def challenge(self):
        return ChallengeService.streak_challenge(_dynamics(streak=4))

    def test_transitions(self, challenge):
        active = ChallengeService.transition(challenge, ChallengeStatus.ACTIVE)
        assert active.status == ChallengeStatus.ACTIVE
        done = ChallengeService.transition(active, ChallengeStatus.COMPLETED)
        assert done.status == ChallengeStatus.COMPLETED

        with pytest.raises(ValueError):
            ChallengeService.transition(active, ChallengeStatus.PENDING)
        with pytest.raises(ValueError):
            ChallengeService.transition(done, ChallengeStatus.ACTIVE)

    def test_partial_progress_activates(self, challenge):
        progress = ChallengeService.track_progress(challenge, 3.5)
        assert progress.progress_percent == pytest.approx(50.0)
        assert progress.reward_points_earned == 100
        assert progress.status == ChallengeStatus.ACTIVE

    def test_target_reached(self, challenge):
        active = ChallengeService.transition(challenge, ChallengeStatus.ACTIVE)
        progress = ChallengeService.track_progress(active, 10)
        assert progress.progress_percent == 100.0
        assert progress.reward_points_earned == 200
        assert progress.status == ChallengeStatus.COMPLETED

    def test_expired_before_target(self, challenge):
        active = ChallengeService.transition(challenge, ChallengeStatus.ACTIVE)
        assert ChallengeService.track_progress(active, 3.5, expired=True).status == ChallengeStatus.FAILED
        assert ChallengeService.track_progress(active, 3.5).status == ChallengeStatus.ACTIVE

    def test_pending_at_target_starts_first(self, challenge):
        progress = ChallengeService.track_progress(challenge, 10)
        assert progress.progress_percent == 100.0
        assert progress.status == ChallengeStatus.ACTIVE

    def test_pending_out_of_time_expires(self, challenge):
        progress = ChallengeService.track_progress(challenge, 3.5, expired=True)
        assert progress.status == ChallengeStatus.EXPIRED

    @pytest.mark.parametrize('status', [
        ChallengeStatus.COMPLETED, ChallengeStatus.FAILED, ChallengeStatus.EXPIRED,
    ])
    def test_terminal_status_is_kept(self, challenge, status):
        finished = replace(challenge, status=status)
        assert ChallengeService.track_progress(finished, 10).status == status
        assert ChallengeService.track_progress(finished, 0, expired=True).status == status

    def test_is_expired(self, challenge):
        assert not ChallengeService.is_expired(date(2024, 1, 1), challenge, date(2024, 1, 9))
        assert ChallengeService.is_expired(date(2024, 1, 1), challenge, date(2024, 1, 10))
