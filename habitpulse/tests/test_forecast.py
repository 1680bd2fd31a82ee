import pytest
from datetime import date, timedelta
from types import SimpleNamespace

from habitpulse.services.forecast_service import AnomalyType, ForecastService
from habitpulse.services.habit_metrics_service import FormationStage
from habitpulse.tests.factories import EventFactory


JAN_1 = date(2024, 1, 1)  # Monday


class TestForecast:

    def test_weekly_trend(self):
        events = EventFactory.series('habit-1', JAN_1, [True] * 7 + [False] * 7)
        assert ForecastService.weekly_trend(events) == pytest.approx(-1.0)
        assert ForecastService.weekly_trend(EventFactory.daily('habit-1', JAN_1, 7)) == 0.0
        assert ForecastService.weekly_trend(EventFactory.daily('habit-1', JAN_1, 5)) == 0.0

    @pytest.mark.parametrize('count,trend,expected', [
        (10, 0.0, 0.3),
        (30, 0.0, 0.9),
        (30, 0.5, 0.5),
        (15, 0.0, 0.75),
    ])
    def test_forecast_confidence(self, count, trend, expected):
        assert ForecastService.forecast_confidence(count, trend) == pytest.approx(expected)

    def test_forecast_success(self):
        events = EventFactory.daily('habit-1', JAN_1, 14) + EventFactory.series('habit-1', date(2024, 1, 15), [False])
        forecast = ForecastService.forecast_success(events, as_of=date(2024, 1, 14), habit_id='habit-1')

        assert forecast.base_rate == 1.0
        assert forecast.trend == pytest.approx(0.0, abs=1e-9)
        assert len(forecast.points) == 7
        monday, tuesday = forecast.points[0], forecast.points[1]
        assert monday.date == date(2024, 1, 15)
        assert monday.predicted_rate == pytest.approx(0.9)
        assert tuesday.predicted_rate == pytest.approx(1.0)
        assert forecast.points[5].predicted_rate == pytest.approx(0.85)
        assert monday.confidence == pytest.approx(0.9 - 0.5 / 7)
        assert forecast.points[-1].confidence == pytest.approx(0.4)
        assert forecast.confidence == pytest.approx((14 / 30 + 1.0) / 2)

    def test_forecast_without_history(self):
        forecast = ForecastService.forecast_success([], as_of=JAN_1, days_ahead=3)
        assert [p.predicted_rate for p in forecast.points] == [0.0, 0.0, 0.0]
        assert forecast.confidence == 0.3

    def test_to_dict(self):
        data = ForecastService.forecast_success(EventFactory.daily('habit-1', JAN_1, 3), JAN_1, days_ahead=2).to_dict()
        assert [p['date'] for p in data['forecast']] == ['2024-01-02', '2024-01-03']


class TestAnomalies:

    def test_unusually_low_week(self):
        events = EventFactory.series('habit-1', JAN_1, [True] * 21 + [False] * 7)
        anomalies = ForecastService.detect_anomalies(events)
        assert len(anomalies) == 1
        assert anomalies[0].anomaly_type == AnomalyType.UNUSUALLY_LOW
        assert anomalies[0].date == date(2024, 1, 22)
        assert anomalies[0].severity == pytest.approx(0.75)

    def test_unusual_timing(self):
        events = [EventFactory.record(day=JAN_1 + timedelta(days=i), hour=8) for i in range(10)]
        events.append(EventFactory.record(day=date(2024, 1, 12), hour=22))
        anomalies = ForecastService.detect_anomalies(events)
        assert [(a.anomaly_type, a.date) for a in anomalies] == [(AnomalyType.UNUSUAL_TIMING, date(2024, 1, 12))]
        assert anomalies[0].severity == 1.0

    def test_too_few_timed_records(self):
        events = [EventFactory.record(day=JAN_1 + timedelta(days=i), hour=8) for i in range(8)]
        events.append(EventFactory.record(day=date(2024, 1, 12), hour=22))
        assert ForecastService.detect_anomalies(events) == ()

    def test_exceptional_streak(self):
        anomalies = ForecastService.detect_anomalies(EventFactory.daily('habit-1', JAN_1, 25))
        assert len(anomalies) == 1
        assert anomalies[0].anomaly_type == AnomalyType.EXCEPTIONAL_STREAK
        assert anomalies[0].date == JAN_1
        assert anomalies[0].severity == pytest.approx(25 / 66)

    def test_habit_filter(self):
        events = EventFactory.daily('habit-2', JAN_1, 25)
        assert ForecastService.detect_anomalies(events, habit_id='habit-1') == ()


class TestFormationTimeline:

    @pytest.mark.parametrize('stage,success,consistency,expected', [
        (FormationStage.INITIATION, 0.5, 0.0, 14),
        (FormationStage.INITIATION, 1.0, 0.0, 7),
        (FormationStage.LEARNING, 0.0, 0.5, 33),
        (FormationStage.STABILITY, 1.0, 1.0, 10),
        (FormationStage.MASTERY, 1.0, 1.0, 0),
    ])
    def test_days_to_next_stage(self, stage, success, consistency, expected):
        assert ForecastService.days_to_next_stage(stage, success, consistency) == expected

    def test_from_dict(self):
        snapshot = {
            'formation_stage': 'LEARNING',
            'success_rate': 0.8,
            'consistency_score': 0.5,
            'habit_strength': 0.6,
        }
        timeline = ForecastService.predict_formation_timeline(snapshot, as_of=JAN_1)
        assert timeline.current_stage == 'LEARNING'
        assert timeline.next_stage == 'STABILITY'
        assert timeline.days_to_next_stage == 33
        assert timeline.estimated_date == date(2024, 2, 3)
        assert timeline.formation_probability == pytest.approx(0.64)

    def test_from_object(self):
        snapshot = SimpleNamespace(formation_stage='MASTERY', success_rate=1.0, consistency_score=1.0, habit_strength=1.0)
        timeline = ForecastService.predict_formation_timeline(snapshot, as_of=JAN_1)
        assert timeline.next_stage is None
        assert timeline.estimated_date == JAN_1

    def test_never_analyzed(self):
        timeline = ForecastService.predict_formation_timeline(None)
        assert timeline.current_stage == 'UNKNOWN'
        assert timeline.days_to_next_stage is None
        assert timeline.formation_probability == 0.0
