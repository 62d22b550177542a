"""
Streak engine: pure (habit, mutation) -> habit transitions.

Mutation kinds:
  Increment      - +1 unit, capped at target_value
  Decrement      - -1 unit, floored at 0
  SetProgress    - absolute value, clamped to [0, target_value]
  Toggle         - checked=True fills to target, checked=False empties

Streak rules:
  - Increment that moves current_value off 0, or SetProgress/Toggle that
    reaches target_value, counts as today's completion unless the habit
    was already completed today.
  - A completion continues the streak when the previous completion fell
    between the previous due day of the schedule and yesterday, otherwise
    the streak restarts at 1. Off-schedule completions count like any other.
  - Dropping current_value back to exactly 0 resets current_streak to 0 and
    clears last_completed_date.
"""
from dataclasses import dataclass, replace
from datetime import date, datetime, tzinfo
from typing import Union

from routinely.domain import schedule
from routinely.domain.habit import Habit
from routinely.utils.dates import local_day


@dataclass(frozen=True)
class Increment:
    pass


@dataclass(frozen=True)
class Decrement:
    pass


@dataclass(frozen=True)
class SetProgress:
    value: int


@dataclass(frozen=True)
class Toggle:
    checked: bool


Mutation = Union[Increment, Decrement, SetProgress, Toggle]


def is_completed(habit: Habit) -> bool:
    return habit.current_value >= habit.target_value


def is_completed_on(habit: Habit, day: date) -> bool:
    """Target reached with progress that belongs to `day`."""
    return is_completed(habit) and habit.progress_day == day


def completed_on(habit: Habit, day: date, tz: tzinfo | None = None) -> bool:
    if habit.last_completed_date is None:
        return False
    return local_day(habit.last_completed_date, tz) == day


def apply_mutation(habit: Habit, mutation: Mutation, now: datetime, tz: tzinfo | None = None) -> Habit:
    today = local_day(now, tz)
    old_value = habit.current_value
    target = habit.target_value

    if isinstance(mutation, Increment):
        new_value = min(old_value + 1, target)
        counts_as_completion = old_value == 0 and new_value > 0
    elif isinstance(mutation, Decrement):
        new_value = max(old_value - 1, 0)
        counts_as_completion = False
    elif isinstance(mutation, SetProgress):
        new_value = max(0, min(mutation.value, target))
        counts_as_completion = new_value == target
    elif isinstance(mutation, Toggle):
        new_value = target if mutation.checked else 0
        counts_as_completion = mutation.checked
    else:
        raise TypeError(f"Unknown mutation: {mutation!r}")

    updated = replace(
        habit,
        current_value=new_value,
        progress_day=today if new_value > 0 else None,
    )

    if old_value > 0 and new_value == 0:
        return replace(updated, current_streak=0, last_completed_date=None)

    if counts_as_completion and not completed_on(habit, today, tz):
        return _continue_streak(updated, habit.last_completed_date, today, now, tz)

    return updated


def _continue_streak(
    habit: Habit,
    previous: datetime | None,
    today: date,
    now: datetime,
    tz: tzinfo | None,
) -> Habit:
    last_due = schedule.previous_due_day(habit.schedule, today)
    if previous is not None and last_due <= local_day(previous, tz) < today:
        streak = habit.current_streak + 1
    else:
        streak = 1
    return replace(
        habit,
        current_streak=streak,
        best_streak=max(habit.best_streak, streak),
        last_completed_date=now,
    )


def roll_over(habit: Habit, today: date) -> Habit:
    """Reset progress left over from an earlier day. Streak fields are kept."""
    if habit.current_value == 0 or habit.progress_day == today:
        return habit
    return replace(habit, current_value=0, progress_day=None)
