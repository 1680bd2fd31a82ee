import numpy as np
import pytest
from datetime import date

from habitpulse.services.group_dynamics_service import ContributorType, GroupDynamicsService
from habitpulse.tests.factories import EventFactory


JAN_1 = date(2024, 1, 1)
JAN_10 = date(2024, 1, 10)
MEMBERS = ['u1', 'u2', 'u3', 'u4', 'u5']
HABITS = ['h1', 'h2']


def _member(user_id, pattern, habits=('h1',), start=JAN_1):
    events = []
    for habit_id in habits:
        events += EventFactory.series(habit_id, start, pattern, user_id=user_id, group_id='g1')
    return events


class TestSoloPerformerGroup:
    """Five members, two habits, only one member ever completes anything."""

    @pytest.fixture
    def events(self):
        return _member('u1', [True] * 10, habits=HABITS)

    def test_cohesion_is_low(self, events):
        assert GroupDynamicsService.cohesion(events, MEMBERS, JAN_1, JAN_10) < 0.3

    def test_participation(self, events):
        participation = GroupDynamicsService.participation(events, MEMBERS, JAN_1, JAN_10)
        assert participation.total_members == 5
        assert participation.active_members == 1
        assert participation.participation_rate == pytest.approx(0.2)
        assert participation.total_attempts == 20
        assert participation.completion_rate == 1.0

    def test_leader(self, events):
        contributors = GroupDynamicsService.key_contributors(events, MEMBERS, JAN_1, JAN_10)
        assert [c.user_id for c in contributors] == ['u1']
        assert contributors[0].contributor_type in (ContributorType.LEADER, ContributorType.HIGH_PERFORMER)

    def test_analyze_group(self, events):
        result = GroupDynamicsService.analyze_group(events, 'g1', MEMBERS, HABITS, JAN_1, JAN_10)
        assert result.momentum_score == pytest.approx(0.2)
        assert result.synergistic_score == pytest.approx(0.5)
        assert result.group_streak == 10
        for score in (result.momentum_score, result.cohesion_score, result.synergistic_score):
            assert 0.0 <= score <= 1.0
        assert set(result.to_metrics()) == {'group_streak', 'momentum_score', 'synergistic_score', 'cohesion_score'}


class TestMomentum:

    def test_recent_days_weigh_more(self):
        events = _member('u1', [False, True])
        score = GroupDynamicsService.momentum(events, ['u1'], ['h1'], JAN_1, date(2024, 1, 2))
        assert score == pytest.approx(1.1 / 2.1)

    def test_single_day(self):
        events = _member('u1', [True]) + _member('u2', [False])
        assert GroupDynamicsService.momentum(events, ['u1', 'u2'], ['h1'], JAN_1, JAN_1) == pytest.approx(0.5)

    def test_empty_group(self):
        assert GroupDynamicsService.momentum([], [], ['h1'], JAN_1, JAN_10) == 0.0
        assert GroupDynamicsService.momentum([], ['u1'], [], JAN_1, JAN_10) == 0.0


class TestCohesion:

    def test_equal_members(self):
        events = _member('u1', [True] * 4) + _member('u2', [True] * 4)
        assert GroupDynamicsService.cohesion(events, ['u1', 'u2'], JAN_1, JAN_10) == 1.0

    def test_uneven_members(self):
        events = _member('u1', [True] * 4) + _member('u2', [True, False] * 2)
        # Rates 1.0 and 0.5: 1 - 1/3 plus a 0.15 boost
        score = GroupDynamicsService.cohesion(events, ['u1', 'u2'], JAN_1, JAN_10)
        assert score == pytest.approx(1 - 1 / 3 + 0.15)

    def test_spread_is_relative_to_mean(self):
        events = _member('u1', [True] * 10)
        rates = list(GroupDynamicsService.member_rates(events, MEMBERS, JAN_1, JAN_10).values())
        plain = 1 - float(np.std(rates))

        # One member out of five carries the group
        assert plain >= 0.5
        assert GroupDynamicsService.cohesion(events, MEMBERS, JAN_1, JAN_10) == pytest.approx(0.04)

    def test_nobody_completes(self):
        events = _member('u1', [False] * 4) + _member('u2', [False] * 4)
        assert GroupDynamicsService.cohesion(events, ['u1', 'u2'], JAN_1, JAN_10) == 0.0


class TestSynergy:

    def test_members_in_step(self):
        pattern = [True, False] * 5
        events = _member('u1', pattern) + _member('u2', pattern)
        assert GroupDynamicsService.synergy(events, ['u1', 'u2'], ['h1'], JAN_1, JAN_10) == pytest.approx(1.0)

    def test_members_out_of_step(self):
        pattern = [True, False] * 5
        events = _member('u1', pattern) + _member('u2', [not p for p in pattern])
        assert GroupDynamicsService.synergy(events, ['u1', 'u2'], ['h1'], JAN_1, JAN_10) == pytest.approx(0.0)

    def test_any_completed_record_makes_the_day_active(self):
        events = (
            _member('u1', [True, False] * 5)
            + _member('u2', [True, False] * 5)
            + _member('u2', [False] * 10, habits=('h2',))
        )
        assert GroupDynamicsService.synergy(events, ['u1', 'u2'], HABITS, JAN_1, JAN_10) == pytest.approx(1.0)

    def test_single_member(self):
        events = _member('u1', [True] * 10)
        assert GroupDynamicsService.synergy(events, ['u1'], ['h1'], JAN_1, JAN_10) == 0.0


class TestGroupStreak:

    def test_counts_back_from_end(self):
        events = _member('u1', [True, False, True, True, True])
        assert GroupDynamicsService.group_streak(events, ['h1'], JAN_1, date(2024, 1, 5)) == 3

    def test_empty_day_breaks_streak(self):
        events = _member('u1', [True, True, True])
        assert GroupDynamicsService.group_streak(events, ['h1'], JAN_1, date(2024, 1, 4)) == 0


class TestContributors:

    @pytest.mark.parametrize('rate,attempts,expected', [
        (1.0, 10, ContributorType.LEADER),
        (1.0, 5, ContributorType.HIGH_PERFORMER),
        (0.5, 10, ContributorType.ACTIVE_PARTICIPANT),
        (0.52, 5, ContributorType.CONSISTENT_CONTRIBUTOR),
        (0.4, 5, ContributorType.CASUAL_PARTICIPANT),
    ])
    def test_classify_contributor(self, rate, attempts, expected):
        assert GroupDynamicsService.classify_contributor(rate, attempts, 0.5, 5) == expected

    def test_ranking(self):
        events = _member('u1', [True] * 6) + _member('u2', [True, False, True]) + _member('u3', [False] * 2)
        contributors = GroupDynamicsService.key_contributors(events, ['u1', 'u2', 'u3'], JAN_1, JAN_10)
        assert [c.user_id for c in contributors] == ['u1', 'u2', 'u3']
        scores = [c.contribution_score for c in contributors]
        assert scores == sorted(scores, reverse=True)
        assert contributors[0].successful_completions == 6

    def test_member_rates(self):
        events = _member('u1', [True, False])
        assert GroupDynamicsService.member_rates(events, ['u1', 'u2'], JAN_1, JAN_10) == {'u1': 0.5, 'u2': 0.0}
