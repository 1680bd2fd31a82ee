import pytest
from datetime import date, time, timedelta

from habitpulse.services.timing_service import TimingService, default_window
from habitpulse.tests.factories import EventFactory


JAN_1 = date(2024, 1, 1)  # Monday


def _at(hour, days, completed=True, start=JAN_1):
    return [
        EventFactory.record(day=start + timedelta(days=d), hour=hour, completed=completed)
        for d in days
    ]


class TestStats:

    def test_hourly_stats(self):
        events = _at(7, [0, 1]) + _at(7, [2], completed=False) + [EventFactory.record(day=date(2024, 1, 4))]
        stats = TimingService.hourly_stats(events)
        assert len(stats) == 24
        assert stats[7].total_attempts == 3
        assert stats[7].successful_attempts == 2
        assert stats[7].success_rate == pytest.approx(2 / 3)
        assert stats[8].total_attempts == 0

    def test_daily_stats(self):
        events = _at(7, [0, 7]) + _at(7, [1], completed=False)
        stats = TimingService.daily_stats(events)
        assert set(stats) == set(range(7))
        assert stats[0].total_attempts == 2
        assert stats[0].success_rate == 1.0
        assert stats[1].success_rate == 0.0


class TestOptimalWindow:

    def test_best_hour_widened(self):
        events = _at(7, [0, 1, 2]) + _at(9, [3]) + _at(9, [4, 5], completed=False)
        window = TimingService.optimal_window(events)
        assert window.start == time(6, 0)
        assert window.end == time(8, 59)
        assert window.success_rate == 1.0
        assert window.sample_size == 3
        assert not window.is_fallback

    def test_ties_pick_earliest_hour(self):
        events = _at(9, [0, 1, 2]) + _at(7, [3, 4, 5])
        assert TimingService.optimal_window(events).start == time(6, 0)

    def test_clamped_at_day_edges(self):
        assert TimingService.optimal_window(_at(0, [0, 1, 2])).start == time(0, 0)
        assert TimingService.optimal_window(_at(0, [0, 1, 2])).end == time(1, 59)
        assert TimingService.optimal_window(_at(23, [0, 1, 2])).end == time(23, 59)

    def test_fallback_without_enough_attempts(self):
        window = TimingService.optimal_window(_at(7, [0, 1]))
        assert window == default_window()
        assert window.start == time(8, 0)
        assert window.end == time(10, 0)
        assert window.is_fallback

    def test_min_attempts(self):
        assert not TimingService.optimal_window(_at(7, [0, 1]), min_attempts=2).is_fallback

    def test_best_time_windows(self):
        events = _at(7, [0, 1, 2]) + _at(9, [3, 4]) + _at(9, [5], completed=False) + _at(20, [6, 7])
        windows = TimingService.best_time_windows(events, n=3)
        assert [(w.start, w.end) for w in windows] == [(time(7, 0), time(7, 59)), (time(9, 0), time(9, 59))]
        assert windows[1].success_rate == pytest.approx(2 / 3)
        assert len(TimingService.best_time_windows(events, n=1)) == 1


class TestPrediction:

    @pytest.mark.parametrize('sample_size,expected', [
        (40, 0.95), (30, 0.95), (29, 0.85), (20, 0.85), (10, 0.75), (5, 0.60), (4, 0.40), (0, 0.40),
    ])
    def test_confidence_bands(self, sample_size, expected):
        assert TimingService.prediction_confidence(sample_size) == expected

    def test_blends_hour_and_day(self):
        # Hour 8: 4 of 5 done. Mondays: 3 of 4 done.
        events = _at(8, [0, 7, 14, 1]) + _at(8, [21], completed=False)
        prediction = TimingService.predict_success(events, time(8, 30), 0)
        assert prediction.hour_rate == pytest.approx(0.8)
        assert prediction.day_rate == pytest.approx(0.75)
        assert prediction.probability == pytest.approx(0.7 * 0.8 + 0.3 * 0.75)
        assert prediction.sample_size == 9
        assert prediction.confidence == 0.60

    def test_no_history(self):
        prediction = TimingService.predict_success([], time(8, 0), 3)
        assert prediction.probability == 0.0
        assert prediction.confidence == 0.40


class TestAnalyzeTiming:

    def test_weekly_timing_pattern(self):
        events = _at(7, [0, 7]) + _at(19, [1])
        pattern = TimingService.weekly_timing_pattern(events)
        assert [s.hour for s in pattern[0]] == [7]
        assert pattern[0][0].total_attempts == 2
        assert [s.hour for s in pattern[1]] == [19]
        assert pattern[2] == ()

    def test_analyze_timing(self):
        events = _at(7, [0, 1, 2]) + [EventFactory.record(habit_id='habit-2', day=JAN_1, hour=20)]
        analysis = TimingService.analyze_timing(events, habit_id='habit-1')
        assert analysis.hourly[20].total_attempts == 0
        data = analysis.to_dict()
        assert data['optimal_window'] == {'start': '06:00', 'end': '08:59'}
        assert data['hourly'] == {7: 1.0}
        assert data['best_windows'][0]['start'] == '07:00'
