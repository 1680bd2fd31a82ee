import pytest
from datetime import date, datetime, timezone

from habitpulse.exceptions import InvalidDateRangeError
from habitpulse.services.aggregation_service import AggregationService, StreakPeriod
from habitpulse.tests.factories import EventFactory


def _streak_example():
    # 01-01..03 done, 01-04 missed, 01-05..07 done
    return EventFactory.series('habit-1', date(2024, 1, 1), [True, True, True, False, True, True, True])


class TestAnalyzeStreaks:

    def test_documented_example(self):
        result = AggregationService.analyze_streaks(_streak_example(), 'habit-1', as_of=date(2024, 1, 7))
        assert result.current_streak == 3
        assert result.max_streak == 3
        assert result.all_streaks == (
            StreakPeriod(date(2024, 1, 1), date(2024, 1, 3), 3),
            StreakPeriod(date(2024, 1, 5), date(2024, 1, 7), 3),
        )

    def test_one_day_grace(self):
        events = _streak_example()
        assert AggregationService.analyze_streaks(events, 'habit-1', as_of=date(2024, 1, 8)).current_streak == 3
        assert AggregationService.analyze_streaks(events, 'habit-1', as_of=date(2024, 1, 9)).current_streak == 0

    def test_next_day_extends_current_streak(self):
        events = _streak_example() + [EventFactory.record(day=date(2024, 1, 8))]
        result = AggregationService.analyze_streaks(events, 'habit-1', as_of=date(2024, 1, 8))
        assert result.current_streak == 4
        assert result.max_streak == 4

    def test_gap_starts_new_streak(self):
        events = _streak_example() + [EventFactory.record(day=date(2024, 1, 9))]
        result = AggregationService.analyze_streaks(events, 'habit-1', as_of=date(2024, 1, 9))
        assert result.current_streak == 1
        assert result.all_streaks[-1] == StreakPeriod(date(2024, 1, 9), date(2024, 1, 9), 1)
        assert result.all_streaks[-2].length == 3

    def test_empty(self):
        result = AggregationService.analyze_streaks([], 'habit-1', as_of=date(2024, 1, 7))
        assert result.current_streak == 0
        assert result.max_streak == 0
        assert result.all_streaks == ()
        assert result.average_streak == 0.0

    def test_completions_after_as_of_ignored(self):
        events = EventFactory.daily('habit-1', date(2024, 1, 1), 20)
        result = AggregationService.analyze_streaks(events, 'habit-1', as_of=date(2024, 1, 7))
        assert result.current_streak == 7
        assert result.max_streak == 7
        assert result.all_streaks == (StreakPeriod(date(2024, 1, 1), date(2024, 1, 7), 7),)

    def test_other_habits_ignored(self):
        events = _streak_example() + EventFactory.daily('habit-2', date(2024, 1, 1), 7)
        result = AggregationService.analyze_streaks(events, 'habit-1', as_of=date(2024, 1, 7))
        assert result.max_streak == 3

    def test_duplicates_keep_latest_write(self):
        earlier = datetime(2024, 1, 7, 9, tzinfo=timezone.utc)
        later = datetime(2024, 1, 7, 21, tzinfo=timezone.utc)
        # The later write un-marks the day even though it comes first in the input
        events = _streak_example() + [
            EventFactory.record(day=date(2024, 1, 7), completed=False, updated_at=later),
            EventFactory.record(day=date(2024, 1, 7), completed=True, updated_at=earlier),
        ]
        events = events[-2:] + events[:-2]
        result = AggregationService.analyze_streaks(events, 'habit-1', as_of=date(2024, 1, 7))
        assert result.all_streaks[-1] == StreakPeriod(date(2024, 1, 5), date(2024, 1, 6), 2)


class TestAggregateDaily:

    def test_zero_fills_missing_days(self):
        events = [
            EventFactory.record(day=date(2024, 1, 2)),
            EventFactory.record(habit_id='habit-2', day=date(2024, 1, 2), completed=False),
        ]
        result = AggregationService.aggregate_daily(events, date(2024, 1, 1), date(2024, 1, 5))
        assert len(result.daily_stats) == 5
        assert [s.date for s in result.daily_stats] == [date(2024, 1, d) for d in range(1, 6)]

        by_date = result.stats_by_date()
        assert by_date[date(2024, 1, 1)].total_attempts == 0
        assert by_date[date(2024, 1, 1)].completion_rate == 0.0
        assert by_date[date(2024, 1, 2)].total_attempts == 2
        assert by_date[date(2024, 1, 2)].completed_attempts == 1
        assert by_date[date(2024, 1, 2)].completion_rate == 0.5
        assert result.average_completion_rate == pytest.approx(0.1)

    def test_events_outside_range_ignored(self):
        events = [EventFactory.record(day=date(2023, 12, 31)), EventFactory.record(day=date(2024, 1, 3))]
        result = AggregationService.aggregate_daily(events, date(2024, 1, 1), date(2024, 1, 2))
        assert sum(s.total_attempts for s in result.daily_stats) == 0

    def test_invalid_range(self):
        with pytest.raises(InvalidDateRangeError):
            AggregationService.aggregate_daily([], date(2024, 1, 5), date(2024, 1, 1))


class TestAggregateWeekly:

    def test_buckets_keyed_by_monday(self):
        # 2024-01-01 is a Monday
        events = EventFactory.series('habit-1', date(2024, 1, 1), [True] * 7 + [True, False] + [None] * 5)
        result = AggregationService.aggregate_weekly(events, date(2024, 1, 1), date(2024, 1, 14))

        assert [w.week_start for w in result.weekly_stats] == [date(2024, 1, 1), date(2024, 1, 8)]
        first, second = result.weekly_stats
        assert first.completion_rate == 1.0
        assert second.total_attempts == 2
        assert second.completion_rate == 0.5
        assert set(second.daily_rates) == set(range(7))
        assert second.daily_rates[0] == 1.0
        assert second.daily_rates[1] == 0.0
        assert result.weekly_rates == [1.0, 0.5]

    def test_empty(self):
        assert AggregationService.aggregate_weekly([], date(2024, 1, 1), date(2024, 1, 14)).weekly_stats == ()


class TestAggregateHourly:

    def test_hour_buckets(self):
        events = [
            EventFactory.record(day=date(2024, 1, 1), hour=8),
            EventFactory.record(day=date(2024, 1, 2), hour=8, completed=False),
            EventFactory.record(day=date(2024, 1, 3), hour=20),
            EventFactory.record(day=date(2024, 1, 4)),  # never timed
        ]
        result = AggregationService.aggregate_hourly(events)
        assert len(result.hourly_stats) == 24
        assert result.hourly_stats[8].total_attempts == 2
        assert result.hourly_stats[8].completion_rate == 0.5
        assert result.hourly_stats[20].completion_rate == 1.0
        assert result.hourly_stats[0].completion_rate == 0.0
        assert sum(s.total_attempts for s in result.hourly_stats) == 3
        assert result.peak_hour == 20

    def test_no_timed_events(self):
        result = AggregationService.aggregate_hourly([EventFactory.record()])
        assert result.peak_hour is None


class TestAggregateGroup:

    def test_participation_per_habit(self):
        events_by_habit = {
            'habit-1': [
                EventFactory.record('habit-1', 'u1', date(2024, 1, 1)),
                EventFactory.record('habit-1', 'u2', date(2024, 1, 1), completed=False),
            ],
            'habit-2': [EventFactory.record('habit-2', 'u1', date(2024, 1, 2))],
        }
        result = AggregationService.aggregate_group(events_by_habit, date(2024, 1, 1), date(2024, 1, 3))
        assert len(result.daily_stats) == 3
        day1, day2, day3 = result.daily_stats
        assert day1.habit_participation == {'habit-1': 2, 'habit-2': 0}
        assert day1.completion_rate == 0.5
        assert day2.completion_rate == 1.0
        assert day3.total_attempts == 0
        assert result.average_completion_rate == pytest.approx(0.5)
