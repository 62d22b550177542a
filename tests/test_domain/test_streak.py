"""
Tests for the streak engine: progress mutations, streak continuation and reset
"""
import random
from datetime import date, datetime, timedelta, timezone

import pytest

from routinely.domain.streak import (
    Decrement,
    Increment,
    SetProgress,
    Toggle,
    apply_mutation,
    completed_on,
    is_completed,
    is_completed_on,
    roll_over,
)

UTC = timezone.utc
DAY1 = datetime(2026, 2, 14, 10, 0, tzinfo=UTC)


def on_day(offset: int, hour: int = 10) -> datetime:
    return DAY1.replace(hour=hour) + timedelta(days=offset)


def complete(habit, now):
    return apply_mutation(habit, Toggle(True), now, UTC)


class TestIncrement:
    def test_first_unit_starts_streak(self, habit_factory):
        habit = apply_mutation(habit_factory(target_value=3), Increment(), DAY1, UTC)
        assert habit.current_value == 1
        assert habit.current_streak == 1
        assert habit.best_streak == 1
        assert habit.last_completed_date == DAY1
        assert habit.progress_day == date(2026, 2, 14)

    def test_capped_at_target(self, habit_factory):
        habit = habit_factory(target_value=2)
        for _ in range(5):
            habit = apply_mutation(habit, Increment(), DAY1, UTC)
        assert habit.current_value == 2
        assert habit.current_streak == 1

    def test_further_units_do_not_touch_streak(self, habit_factory):
        habit = apply_mutation(habit_factory(target_value=5), Increment(), DAY1, UTC)
        later = DAY1 + timedelta(hours=2)
        habit = apply_mutation(habit, Increment(), later, UTC)
        assert habit.current_value == 2
        assert habit.current_streak == 1
        assert habit.last_completed_date == DAY1

    def test_yesterday_completion_continues_streak(self, habit_factory):
        habit = habit_factory(
            current_streak=4, best_streak=4, last_completed_date=on_day(-1, hour=23),
        )
        habit = apply_mutation(habit, Increment(), on_day(0, hour=0), UTC)
        assert habit.current_streak == 5
        assert habit.best_streak == 5

    def test_gap_restarts_streak(self, habit_factory):
        habit = habit_factory(current_streak=4, best_streak=6, last_completed_date=on_day(-2))
        habit = apply_mutation(habit, Increment(), DAY1, UTC)
        assert habit.current_streak == 1
        assert habit.best_streak == 6

    def test_second_activity_same_day_after_reset_value(self, habit_factory):
        """Already completed today (e.g. progress was reset by an edit) -> no double count."""
        habit = habit_factory(
            target_value=3, current_value=0, current_streak=2, best_streak=2,
            last_completed_date=DAY1 - timedelta(hours=1),
        )
        habit = apply_mutation(habit, Increment(), DAY1, UTC)
        assert habit.current_streak == 2


class TestDecrement:
    def test_back_to_zero_resets_streak(self, habit_factory):
        habit = habit_factory(current_streak=3, best_streak=3)
        habit = apply_mutation(habit, Increment(), DAY1, UTC)
        habit = apply_mutation(habit, Decrement(), DAY1, UTC)
        assert habit.current_value == 0
        assert habit.current_streak == 0
        assert habit.last_completed_date is None
        assert habit.best_streak == 3
        assert habit.progress_day is None

    def test_partial_undo_keeps_streak(self, habit_factory):
        habit = habit_factory(target_value=3)
        habit = apply_mutation(habit, SetProgress(3), DAY1, UTC)
        habit = apply_mutation(habit, Decrement(), DAY1, UTC)
        assert habit.current_value == 2
        assert habit.current_streak == 1
        assert habit.last_completed_date == DAY1

    def test_floored_at_zero(self, habit_factory):
        habit = apply_mutation(habit_factory(), Decrement(), DAY1, UTC)
        assert habit.current_value == 0
        assert habit.current_streak == 0


class TestSetProgress:
    def test_counts_once_when_target_reached(self, habit_factory):
        habit = habit_factory(target_value=10)
        habit = apply_mutation(habit, SetProgress(5), DAY1, UTC)
        assert habit.current_value == 5
        assert habit.current_streak == 0
        habit = apply_mutation(habit, SetProgress(10), DAY1 + timedelta(minutes=5), UTC)
        assert habit.current_streak == 1
        habit = apply_mutation(habit, SetProgress(10), DAY1 + timedelta(minutes=10), UTC)
        assert habit.current_streak == 1
        assert habit.best_streak == 1

    def test_clamped(self, habit_factory):
        habit = habit_factory(target_value=10)
        assert apply_mutation(habit, SetProgress(25), DAY1, UTC).current_value == 10
        assert apply_mutation(habit, SetProgress(-3), DAY1, UTC).current_value == 0

    def test_drop_to_zero_resets(self, habit_factory):
        habit = apply_mutation(habit_factory(target_value=4), SetProgress(4), DAY1, UTC)
        habit = apply_mutation(habit, SetProgress(0), DAY1, UTC)
        assert habit.current_streak == 0
        assert habit.last_completed_date is None

    def test_decrease_above_zero_keeps_streak(self, habit_factory):
        habit = apply_mutation(habit_factory(target_value=4), SetProgress(4), DAY1, UTC)
        habit = apply_mutation(habit, SetProgress(1), DAY1, UTC)
        assert habit.current_value == 1
        assert habit.current_streak == 1


class TestToggle:
    def test_toggle_on_then_off_same_day(self, habit_factory):
        habit = habit_factory(target_value=1)
        habit = apply_mutation(habit, Toggle(True), DAY1, UTC)
        assert habit.current_value == 1
        assert habit.current_streak == 1
        habit = apply_mutation(habit, Toggle(False), DAY1, UTC)
        assert habit.current_value == 0
        assert habit.current_streak == 0
        assert habit.last_completed_date is None

    def test_toggle_on_twice_counts_once(self, habit_factory):
        habit = complete(habit_factory(), DAY1)
        habit = complete(habit, DAY1 + timedelta(hours=1))
        assert habit.current_streak == 1

    def test_unknown_mutation(self, habit_factory):
        with pytest.raises(TypeError):
            apply_mutation(habit_factory(), "increment", DAY1, UTC)


class TestConsecutiveDays:
    def test_daily_increments_by_one(self, habit_factory):
        habit = habit_factory()
        for offset in range(5):
            habit = roll_over(habit, on_day(offset).date())
            habit = complete(habit, on_day(offset))
            assert habit.current_streak == offset + 1

    def test_skipped_day_resets_to_one(self, habit_factory):
        habit = complete(habit_factory(), on_day(0))
        habit = roll_over(habit, on_day(2).date())
        habit = complete(habit, on_day(2))
        assert habit.current_streak == 1
        assert habit.best_streak == 1

    def test_late_night_then_early_morning_across_year(self, habit_factory):
        habit = habit_factory(current_streak=1, best_streak=1,
                              last_completed_date=datetime(2025, 12, 31, 23, 59, tzinfo=UTC))
        habit = complete(habit, datetime(2026, 1, 1, 0, 1, tzinfo=UTC))
        assert habit.current_streak == 2

    def test_adjacent_days_not_hours(self, habit_factory):
        """Adjacency is decided by calendar day, not by elapsed hours."""
        habit = habit_factory(current_streak=1, best_streak=1,
                              last_completed_date=datetime(2026, 3, 1, 0, 30, tzinfo=UTC))
        habit = complete(habit, datetime(2026, 3, 2, 23, 30, tzinfo=UTC))
        assert habit.current_streak == 2
        habit = habit_factory(current_streak=1, best_streak=1,
                              last_completed_date=datetime(2026, 3, 1, 23, 30, tzinfo=UTC))
        habit = complete(habit, datetime(2026, 3, 3, 0, 30, tzinfo=UTC))
        assert habit.current_streak == 1

    def test_calendar_day_uses_time_zone(self, habit_factory):
        tz = timezone(timedelta(hours=3))
        # 22:00 UTC on the 1st is already the 2nd at UTC+3
        habit = habit_factory(current_streak=1, best_streak=1,
                              last_completed_date=datetime(2026, 3, 1, 10, 0, tzinfo=UTC))
        habit = apply_mutation(habit, Toggle(True), datetime(2026, 3, 1, 22, 0, tzinfo=UTC), tz)
        assert habit.current_streak == 2

    def test_weekly_schedule_continues_over_off_days(self, habit_factory):
        # Mon 2026-02-09, Wed 2026-02-11, Fri 2026-02-13
        habit = habit_factory(schedule="1,3,5")
        for day in (9, 11, 13):
            now = datetime(2026, 2, day, 8, 0, tzinfo=UTC)
            habit = roll_over(habit, now.date())
            habit = complete(habit, now)
        assert habit.current_streak == 3

    def test_off_schedule_day_keeps_streak_going(self, habit_factory):
        # Mon 2026-02-16 (due), Tue (not due), Wed (due)
        habit = habit_factory(schedule="1,3,5")
        streaks = []
        for day in (16, 17, 18):
            now = datetime(2026, 2, day, 8, 0, tzinfo=UTC)
            habit = roll_over(habit, now.date())
            habit = complete(habit, now)
            streaks.append(habit.current_streak)
        assert streaks == [1, 2, 3]
        assert habit.best_streak == 3

    def test_completion_on_weekend_bridges_to_monday(self, habit_factory):
        # Fri 2026-02-13 (due), Sat (not due), Mon 2026-02-16 (due)
        habit = habit_factory(schedule="1,3,5")
        for day in (13, 14, 16):
            now = datetime(2026, 2, day, 8, 0, tzinfo=UTC)
            habit = roll_over(habit, now.date())
            habit = complete(habit, now)
        assert habit.current_streak == 3

    def test_completion_before_previous_due_day_resets(self, habit_factory):
        # last done Tue 2026-02-10; previous due day for Fri 13th is Wed 11th
        habit = habit_factory(schedule="1,3,5", current_streak=4, best_streak=4,
                              last_completed_date=datetime(2026, 2, 10, 8, 0, tzinfo=UTC))
        habit = complete(habit, datetime(2026, 2, 13, 8, 0, tzinfo=UTC))
        assert habit.current_streak == 1
        assert habit.best_streak == 4

    def test_weekly_schedule_missed_due_day_resets(self, habit_factory):
        habit = habit_factory(schedule="1,3,5")
        habit = complete(habit, datetime(2026, 2, 9, 8, 0, tzinfo=UTC))
        habit = roll_over(habit, date(2026, 2, 13))
        habit = complete(habit, datetime(2026, 2, 13, 8, 0, tzinfo=UTC))
        assert habit.current_streak == 1


class TestInvariants:
    def test_random_sequences_keep_invariants(self, habit_factory):
        rng = random.Random(20260214)
        for target in (1, 3, 10):
            habit = habit_factory(target_value=target)
            now = DAY1
            for _ in range(300):
                if rng.random() < 0.1:
                    now += timedelta(days=rng.choice([1, 2]))
                    habit = roll_over(habit, now.date())
                mutation = rng.choice([Increment(), Decrement(), SetProgress(rng.randint(-2, target + 2))])
                habit = apply_mutation(habit, mutation, now, UTC)
                assert 0 <= habit.current_value <= habit.target_value
                assert 0 <= habit.current_streak <= habit.best_streak


class TestHelpers:
    def test_roll_over_resets_stale_progress(self, habit_factory):
        habit = habit_factory(target_value=5, current_value=3, progress_day=date(2026, 2, 13),
                              current_streak=2, best_streak=2)
        rolled = roll_over(habit, date(2026, 2, 14))
        assert rolled.current_value == 0
        assert rolled.progress_day is None
        assert rolled.current_streak == 2

    def test_roll_over_keeps_todays_progress(self, habit_factory):
        habit = habit_factory(target_value=5, current_value=3, progress_day=date(2026, 2, 14))
        assert roll_over(habit, date(2026, 2, 14)) == habit

    def test_is_completed(self, habit_factory):
        assert is_completed(habit_factory(target_value=2, current_value=2))
        assert not is_completed(habit_factory(target_value=2, current_value=1))

    def test_completed_on(self, habit_factory):
        habit = habit_factory(last_completed_date=DAY1)
        assert completed_on(habit, date(2026, 2, 14), UTC)
        assert not completed_on(habit, date(2026, 2, 15), UTC)
        assert not completed_on(habit_factory(), date(2026, 2, 14), UTC)

    def test_is_completed_on_requires_todays_progress(self, habit_factory):
        habit = habit_factory(target_value=2, current_value=2, progress_day=date(2026, 2, 13))
        assert is_completed_on(habit, date(2026, 2, 13))
        assert not is_completed_on(habit, date(2026, 2, 14))
        assert not is_completed_on(habit_factory(current_value=1), date(2026, 2, 14))
