"""
Habit list read model - filtered and sorted views of the habit collection.

project_habits() is a pure function of (habits, options, today).
HabitListProjector keeps a projected list up to date from store snapshots
and view option changes.
"""
from dataclasses import dataclass, replace
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Callable, Iterable, Optional

from routinely.application.pubsub import Channel, Subscription
from routinely.application.store import HabitStore, HabitsSnapshot
from routinely.domain import schedule
from routinely.domain.habit import Habit
from routinely.domain.streak import is_completed_on
from routinely.utils.dates import local_day


class HabitFilter(str, Enum):
    TODAY = "today"
    ALL = "all"
    UNCOMPLETED = "uncompleted"


class SortOrder(str, Enum):
    BY_DATE = "by_date"
    BY_NAME = "by_name"
    BY_STREAK = "by_streak"


@dataclass(frozen=True)
class ViewOptions:
    filter: HabitFilter = HabitFilter.TODAY
    sort: SortOrder = SortOrder.BY_DATE
    name_ascending: bool = True
    category: str | None = None

    def select_sort(self, sort: SortOrder) -> "ViewOptions":
        """Re-selecting BY_NAME flips its direction; other choices keep it."""
        if sort == SortOrder.BY_NAME and self.sort == SortOrder.BY_NAME:
            return replace(self, name_ascending=not self.name_ascending)
        return replace(self, sort=sort)

    def select_filter(self, habit_filter: HabitFilter) -> "ViewOptions":
        return replace(self, filter=habit_filter)

    def select_category(self, category: str | None) -> "ViewOptions":
        return replace(self, category=category or None)


def _matches(habit: Habit, options: ViewOptions, today: date) -> bool:
    if options.category is not None and habit.category != options.category:
        return False
    if options.filter == HabitFilter.TODAY:
        return schedule.is_due_on_date(habit.schedule, today)
    if options.filter == HabitFilter.UNCOMPLETED:
        return not is_completed_on(habit, today)
    return True


def _sorted(habits: list[Habit], options: ViewOptions) -> list[Habit]:
    if options.sort == SortOrder.BY_NAME:
        return sorted(
            habits,
            key=lambda h: (h.name.casefold(), h.id),
            reverse=not options.name_ascending,
        )
    if options.sort == SortOrder.BY_STREAK:
        # streak desc, then newest first
        return sorted(
            habits,
            key=lambda h: (h.current_streak, h.creation_date, h.id),
            reverse=True,
        )
    return sorted(habits, key=lambda h: (h.creation_date, h.id), reverse=True)


def project_habits(habits: Iterable[Habit], options: ViewOptions, today: date) -> list[Habit]:
    return _sorted([h for h in habits if _matches(h, options, today)], options)


def categories(habits: Iterable[Habit]) -> list[str]:
    return sorted({h.category for h in habits if h.category})


class HabitListProjector:
    """
    Keeps `lists` (a Channel of projected habit lists) in sync with the store.

    Usage:
        projector = HabitListProjector(store)
        projector.lists.subscribe(render)
        projector.select_sort(SortOrder.BY_NAME)
    """

    def __init__(
        self,
        store: HabitStore,
        options: ViewOptions | None = None,
        clock: Callable[[], datetime] | None = None,
        tz: tzinfo | None = None,
    ):
        self.store = store
        self.tz = tz if tz is not None else store.tz
        self._clock = clock or store.now
        self._options = options or ViewOptions()
        self._habits: HabitsSnapshot = store.habits
        self.lists: Channel[list[Habit]] = Channel(self._project(), name="habit_list")
        self._subscription: Optional[Subscription[HabitsSnapshot]] = store.subscribe_all(self._on_habits)

    @property
    def options(self) -> ViewOptions:
        return self._options

    @property
    def current(self) -> list[Habit]:
        return self.lists.value

    def set_options(self, options: ViewOptions) -> None:
        self._options = options
        self.refresh()

    def select_sort(self, sort: SortOrder) -> None:
        self.set_options(self._options.select_sort(sort))

    def select_filter(self, habit_filter: HabitFilter) -> None:
        self.set_options(self._options.select_filter(habit_filter))

    def select_category(self, category: str | None) -> None:
        self.set_options(self._options.select_category(category))

    def categories(self) -> list[str]:
        return categories(self._habits)

    def refresh(self) -> None:
        self.lists.publish(self._project())

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def _on_habits(self, habits: HabitsSnapshot) -> None:
        self._habits = habits
        self.refresh()

    def _project(self) -> list[Habit]:
        today = local_day(self._clock(), self.tz)
        return project_habits(self._habits, self._options, today)
