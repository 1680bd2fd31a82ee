import pytest
from datetime import date, timedelta

from habitpulse.services.formation_service import (
    BarrierType,
    FormationService,
    StrengthCategory,
)
from habitpulse.services.habit_metrics_service import FormationStage
from habitpulse.tests.factories import EventFactory


JAN_1 = date(2024, 1, 1)


class TestStrength:

    def test_frequency(self):
        events = EventFactory.series('habit-1', JAN_1, [True, False, True])
        assert FormationService.frequency(events) == pytest.approx(2 / 3)
        assert FormationService.frequency([]) == 0.0

    def test_strong_habit(self):
        events = EventFactory.daily('habit-1', JAN_1, 14, hour=8)
        strength = FormationService.analyze_strength(events, JAN_1, date(2024, 1, 14))
        assert strength.frequency == 1.0
        assert strength.consistency == 1.0
        assert strength.automaticity == 1.0
        assert strength.context_stability == pytest.approx(1.0)
        assert strength.score == pytest.approx(1.0)
        assert strength.category == StrengthCategory.VERY_STRONG

    def test_no_events(self):
        strength = FormationService.analyze_strength([], JAN_1, date(2024, 1, 14))
        assert strength.score == 0.0
        assert strength.category == StrengthCategory.VERY_WEAK

    def test_untimed_habit_is_moderate(self):
        # frequency and consistency only: 0.3 + 0.3
        events = EventFactory.daily('habit-1', JAN_1, 14)
        strength = FormationService.analyze_strength(events, JAN_1, date(2024, 1, 14))
        assert strength.score == pytest.approx(0.6)
        assert strength.category == StrengthCategory.STRONG


class TestBarriers:

    def test_first_execution_gap(self):
        events = [EventFactory.record(day=date(2024, 1, d)) for d in (1, 2, 10)]
        assert FormationService.first_execution_gap(events) == 8
        events = [EventFactory.record(day=date(2024, 1, d)) for d in (1, 3, 5)]
        assert FormationService.first_execution_gap(events) is None

    def test_sparse_declining_habit(self):
        events = [EventFactory.record(day=date(2024, 1, d)) for d in (1, 2, 10)]
        barriers = FormationService.identify_barriers(events, JAN_1, date(2024, 1, 14))

        assert [b.barrier_type for b in barriers] == [
            BarrierType.EXECUTION_GAPS,
            BarrierType.LOW_SUCCESS_RATE,
            BarrierType.MOTIVATION_DECLINE,
        ]
        gap, low, decline = barriers
        assert gap.severity == 1.0
        assert gap.description == "Gap of 8 days detected in habit execution"
        assert low.severity == pytest.approx(11 / 14)
        assert decline.severity == pytest.approx(1 / 7)

    def test_inconsistent_weeks(self):
        events = EventFactory.series('habit-1', JAN_1, [True] * 7 + [False] * 7)
        barriers = FormationService.identify_barriers(events, JAN_1, date(2024, 1, 14))
        types = {b.barrier_type: b for b in barriers}
        assert BarrierType.INCONSISTENT_TIMING in types
        assert types[BarrierType.INCONSISTENT_TIMING].severity == pytest.approx(1.0)
        assert BarrierType.EXECUTION_GAPS not in types

    def test_context_instability(self):
        events = [EventFactory.record(day=JAN_1 + timedelta(days=i), hour=2 * i) for i in range(12)]
        barriers = FormationService.identify_barriers(events, JAN_1, date(2024, 1, 12))
        assert [b.barrier_type for b in barriers] == [BarrierType.CONTEXT_INSTABILITY]
        assert 0.7 < barriers[0].severity < 0.8

    def test_healthy_habit(self):
        events = EventFactory.daily('habit-1', JAN_1, 14, hour=7)
        assert FormationService.identify_barriers(events, JAN_1, date(2024, 1, 14)) == ()

    def test_no_events(self):
        assert FormationService.identify_barriers([], JAN_1, date(2024, 1, 14)) == ()

    def test_sorted_by_severity(self):
        events = [EventFactory.record(day=date(2024, 1, d)) for d in (1, 2, 10)]
        severities = [b.severity for b in FormationService.identify_barriers(events, JAN_1, date(2024, 1, 14))]
        assert severities == sorted(severities, reverse=True)


class TestTriggers:

    def _events(self):
        events = [
            EventFactory.record(day=date(2024, 1, d), hour=9, minute=m)
            for d, m in ((1, 0), (2, 10), (3, 20), (4, 30))
        ]
        events += [
            EventFactory.record(day=date(2024, 1, 5), hour=7),
            EventFactory.record(day=date(2024, 1, 6), hour=7),
            EventFactory.record(day=date(2024, 1, 7), hour=7, completed=False),
            EventFactory.record(day=date(2024, 1, 8), hour=20),
            EventFactory.record(day=date(2024, 1, 9), hour=20),
            EventFactory.record(day=date(2024, 1, 10)),
        ]
        return events

    def test_windows(self):
        analysis = FormationService.analyze_triggers(self._events())
        assert [w.hour for w in analysis.windows] == [9, 7]

        nine, seven = analysis.windows
        assert nine.attempts == 4
        assert nine.effectiveness == 1.0
        # Population stdev of minutes 0/10/20/30 is sqrt(125)
        assert nine.timing_consistency == pytest.approx(1 - 125 ** 0.5 / 30)
        assert seven.effectiveness == pytest.approx(2 / 3)
        assert seven.timing_consistency == 1.0

        assert analysis.overall_effectiveness == pytest.approx(5 / 6)

    def test_no_timed_events(self):
        analysis = FormationService.analyze_triggers(EventFactory.daily('habit-1', JAN_1, 5))
        assert analysis.windows == ()
        assert analysis.overall_effectiveness == 0.0


class TestFormationReport:

    def test_stage_progress(self):
        assert FormationService.stage_progress(FormationStage.INITIATION, 3, 0, 0) == pytest.approx(3 / 7)
        assert FormationService.stage_progress(FormationStage.INITIATION, 30, 0, 0) == 1.0
        assert FormationService.stage_progress(FormationStage.LEARNING, 30, 0.6, 0.4) == pytest.approx(0.5)
        assert FormationService.stage_progress(FormationStage.STABILITY, 30, 1.0, 0.5) == pytest.approx(0.8)
        assert FormationService.stage_progress(FormationStage.MASTERY, 30, 0, 0) == 1.0

    def test_analyze_formation(self):
        events = EventFactory.daily('habit-1', JAN_1, 70, hour=8) + EventFactory.daily('habit-2', JAN_1, 3)
        report = FormationService.analyze_formation(events, 'habit-1', date(2024, 2, 10), date(2024, 3, 10))

        assert report.stage == FormationStage.MASTERY
        assert report.stage_progress == 1.0
        assert report.days_since_start == 69
        assert report.success_rate == 1.0
        assert report.barriers == ()
        assert [w.hour for w in report.triggers.windows] == [8]

        data = report.to_dict()
        assert data['stage'] == 'MASTERY'
        assert data['strength']['category'] == 'VERY_STRONG'
        assert data['barriers'] == []

    def test_new_habit(self):
        events = EventFactory.daily('habit-1', JAN_1, 3)
        report = FormationService.analyze_formation(events, 'habit-1', JAN_1, date(2024, 1, 3))
        assert report.stage == FormationStage.INITIATION
        assert report.stage_progress == pytest.approx(2 / 7)
