"""Habit domain entity - immutable snapshots plus creation/edit validation"""
import re
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any

from routinely.domain import schedule

NOTIFICATION_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
EDITABLE_FIELDS = ("name", "icon", "color", "category", "schedule", "target_value", "notification_time")


class InvalidHabitError(ValueError):
    pass


@dataclass(frozen=True)
class HabitDraft:
    name: str
    icon: str | None = None
    color: str | None = None
    category: str | None = None
    schedule: str = schedule.DAILY
    target_value: int = 1
    notification_time: str | None = None


@dataclass(frozen=True)
class Habit:
    id: int
    name: str
    creation_date: datetime
    icon: str | None = None
    color: str | None = None
    category: str | None = None
    schedule: str = schedule.DAILY
    target_value: int = 1
    current_value: int = 0
    last_completed_date: datetime | None = None
    current_streak: int = 0
    best_streak: int = 0
    notification_time: str | None = None
    progress_day: date | None = None

    @staticmethod
    def create(habit_id: int, draft: HabitDraft, now: datetime) -> "Habit":
        validate_fields(
            name=draft.name,
            schedule_token=draft.schedule,
            target_value=draft.target_value,
            notification_time=draft.notification_time,
        )
        return Habit(
            id=habit_id,
            name=draft.name.strip(),
            creation_date=now,
            icon=draft.icon,
            color=draft.color,
            category=draft.category,
            schedule=draft.schedule,
            target_value=draft.target_value,
            notification_time=draft.notification_time,
        )

    def with_changes(self, **changes: Any) -> "Habit":
        """Apply an edit. Streak and progress fields are not editable."""
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidHabitError(f"Нельзя изменить поля: {', '.join(sorted(unknown))}")
        return self.apply_edit(replace(self, **changes))

    def apply_edit(self, edited: "Habit") -> "Habit":
        """
        Take the editable fields of `edited` onto this habit.

        current_value is clamped into the new target range when the target shrinks.
        """
        validate_fields(
            name=edited.name,
            schedule_token=edited.schedule,
            target_value=edited.target_value,
            notification_time=edited.notification_time,
        )
        return replace(
            self,
            name=edited.name.strip(),
            icon=edited.icon,
            color=edited.color,
            category=edited.category,
            schedule=edited.schedule,
            target_value=edited.target_value,
            notification_time=edited.notification_time,
            current_value=min(self.current_value, edited.target_value),
        )


@dataclass(frozen=True)
class CompletionRecord:
    habit_id: int
    day: date
    completed_at: datetime


def validate_fields(
    name: str | None,
    schedule_token: str | None,
    target_value: int,
    notification_time: str | None,
) -> None:
    """Validate habit invariants. Raises InvalidHabitError on failure."""
    if name is None or not name.strip():
        raise InvalidHabitError("Название привычки не может быть пустым")
    if not isinstance(target_value, int) or target_value < 1:
        raise InvalidHabitError("Цель должна быть целым числом >= 1")
    if not schedule.decode(schedule_token):
        raise InvalidHabitError("Выберите хотя бы один день недели")
    if notification_time is not None and not NOTIFICATION_TIME_RE.match(notification_time):
        raise InvalidHabitError(f"Неверное время напоминания: {notification_time}")
