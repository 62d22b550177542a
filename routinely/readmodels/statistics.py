"""
Habit statistics - completion ratios, weekly trend, calendar week, heatmap.

All functions are pure and work on calendar days; StatisticsProjector
recomputes a StatisticsSnapshot whenever habits, completions or the
selected day change.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Callable, Iterable, Mapping

from routinely.application.pubsub import Channel, Subscription
from routinely.application.store import CompletionsSnapshot, HabitStore, HabitsSnapshot
from routinely.domain import schedule
from routinely.domain.habit import CompletionRecord, Habit
from routinely.domain.streak import is_completed_on
from routinely.utils.dates import day_range, local_day, week_start

HEATMAP_DAYS = 90
TREND_DAYS = 7


@dataclass(frozen=True)
class CalendarDay:
    day: date
    completed: bool
    selected: bool


@dataclass(frozen=True)
class TodaySummary:
    done: int
    total: int


@dataclass(frozen=True)
class HeatmapCell:
    day: date
    done: int
    total: int
    level: int  # 0-4


def completion_percentage(records: Iterable[CompletionRecord], start_day: date, end_day: date) -> int:
    """Share (0-100) of days in [start_day, end_day] with at least one completion."""
    if start_day > end_day:
        return 0
    total_days = (end_day - start_day).days + 1
    done_days = {r.day for r in records if start_day <= r.day <= end_day}
    return round(len(done_days) / total_days * 100)


def month_completion_percentage(records: Iterable[CompletionRecord], day: date) -> int:
    """completion_percentage over the calendar month containing `day`."""
    last = calendar.monthrange(day.year, day.month)[1]
    return completion_percentage(records, day.replace(day=1), day.replace(day=last))


def completions_by_day(records: Iterable[CompletionRecord]) -> dict[date, int]:
    """Number of distinct habits completed on each day."""
    habits_per_day: dict[date, set[int]] = {}
    for r in records:
        habits_per_day.setdefault(r.day, set()).add(r.habit_id)
    return {d: len(ids) for d, ids in habits_per_day.items()}


def weekly_trend(
    habits_by_completion_day: Mapping[date, int],
    total_habit_count: int,
    reference_day: date,
) -> list[float]:
    """Daily completed/total ratios for reference_day-6 .. reference_day, oldest first."""
    start = reference_day - timedelta(days=TREND_DAYS - 1)
    result = []
    for d in day_range(start, reference_day):
        if total_habit_count <= 0:
            result.append(0.0)
        else:
            result.append(habits_by_completion_day.get(d, 0) / total_habit_count)
    return result


def calendar_week(records: Iterable[CompletionRecord], selected_day: date) -> list[CalendarDay]:
    """Monday..Sunday of the week containing selected_day."""
    done_days = {r.day for r in records}
    monday = week_start(selected_day)
    return [
        CalendarDay(day=d, completed=d in done_days, selected=d == selected_day)
        for d in day_range(monday, monday + timedelta(days=6))
    ]


def best_streak_overall(habits: Iterable[Habit]) -> int:
    return max((h.best_streak for h in habits), default=0)


def habit_count(habits: Iterable[Habit]) -> int:
    return sum(1 for _ in habits)


def today_summary(habits: Iterable[Habit], today: date) -> TodaySummary:
    """Completed vs total among habits due today."""
    due = [h for h in habits if schedule.is_due_on_date(h.schedule, today)]
    return TodaySummary(done=sum(1 for h in due if is_completed_on(h, today)), total=len(due))


def heatmap(
    habits_by_completion_day: Mapping[date, int],
    total_habit_count: int,
    today: date,
    days: int = HEATMAP_DAYS,
) -> list[HeatmapCell]:
    """Last `days` days, each cell graded 0-4 by the share of habits completed."""
    start = today - timedelta(days=days - 1)
    result = []
    for d in day_range(start, today):
        done = habits_by_completion_day.get(d, 0)
        if total_habit_count == 0:
            level = 0
        else:
            pct = done / total_habit_count
            if pct == 0:
                level = 0
            elif pct < 0.34:
                level = 1
            elif pct < 0.67:
                level = 2
            elif pct < 1.0:
                level = 3
            else:
                level = 4
        result.append(HeatmapCell(day=d, done=done, total=total_habit_count, level=level))
    return result


@dataclass(frozen=True)
class StatisticsSnapshot:
    selected_day: date
    habit_count: int
    best_streak: int
    today: TodaySummary
    week_percentage: int
    month_percentage: int
    weekly_trend: list[float]
    calendar_week: list[CalendarDay]


def build_snapshot(
    habits: HabitsSnapshot,
    records: CompletionsSnapshot,
    selected_day: date,
    today: date,
) -> StatisticsSnapshot:
    count = habit_count(habits)
    return StatisticsSnapshot(
        selected_day=selected_day,
        habit_count=count,
        best_streak=best_streak_overall(habits),
        today=today_summary(habits, today),
        week_percentage=completion_percentage(records, today - timedelta(days=TREND_DAYS - 1), today),
        month_percentage=month_completion_percentage(records, today),
        weekly_trend=weekly_trend(completions_by_day(records), count, selected_day),
        calendar_week=calendar_week(records, selected_day),
    )


class StatisticsProjector:
    """Publishes a StatisticsSnapshot on `snapshots` after every store change."""

    def __init__(
        self,
        store: HabitStore,
        clock: Callable[[], datetime] | None = None,
        tz: tzinfo | None = None,
    ):
        self.store = store
        self.tz = tz if tz is not None else store.tz
        self._clock = clock or store.now
        self._habits: HabitsSnapshot = store.habits
        self._records: CompletionsSnapshot = store.completions
        self._selected_day = self._today()
        self.snapshots: Channel[StatisticsSnapshot] = Channel(self._build(), name="statistics")
        self._subscriptions: list[Subscription] = [
            store.subscribe_all(self._on_habits),
            store.subscribe_completions(self._on_completions),
        ]

    @property
    def selected_day(self) -> date:
        return self._selected_day

    @property
    def current(self) -> StatisticsSnapshot:
        return self.snapshots.value

    def select_day(self, day: date) -> None:
        self._selected_day = day
        self.refresh()

    def heatmap(self, days: int = HEATMAP_DAYS) -> list[HeatmapCell]:
        return heatmap(completions_by_day(self._records), habit_count(self._habits), self._today(), days)

    def habit_percentage(self, habit_id: int, start_day: date, end_day: date) -> int:
        records = [r for r in self._records if r.habit_id == habit_id]
        return completion_percentage(records, start_day, end_day)

    def refresh(self) -> None:
        self.snapshots.publish(self._build())

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions = []

    def _on_habits(self, habits: HabitsSnapshot) -> None:
        self._habits = habits
        self.refresh()

    def _on_completions(self, records: CompletionsSnapshot) -> None:
        self._records = records
        self.refresh()

    def _today(self) -> date:
        return local_day(self._clock(), self.tz)

    def _build(self) -> StatisticsSnapshot:
        return build_snapshot(self._habits, self._records, self._selected_day, self._today())
