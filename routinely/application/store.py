"""
HabitStore - single owner of the habit collection and completion records.

All mutations go through one writer lock: the repository write is committed
first, then the in-memory snapshot is replaced and published to subscribers.
A failed write leaves the snapshot untouched and raises HabitPersistenceError.
"""
import logging
import threading
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from routinely.application.pubsub import Channel, Subscription
from routinely.application.reminder_scheduler import ReminderScheduler, parse_notification_time
from routinely.domain.habit import CompletionRecord, Habit, HabitDraft
from routinely.domain.streak import (
    Decrement,
    Increment,
    Mutation,
    SetProgress,
    Toggle,
    apply_mutation,
    is_completed,
    roll_over,
)
from routinely.infrastructure.habits.repository import HabitRepository
from routinely.utils.dates import local_day

logger = logging.getLogger(__name__)

HabitsSnapshot = tuple[Habit, ...]
CompletionsSnapshot = tuple[CompletionRecord, ...]


class HabitNotFoundError(LookupError):
    pass


class HabitPersistenceError(RuntimeError):
    pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HabitStore:
    def __init__(
        self,
        repository: HabitRepository,
        reminders: ReminderScheduler | None = None,
        clock: Callable[[], datetime] | None = None,
        tz: tzinfo | None = None,
    ):
        self.repository = repository
        self.reminders = reminders
        self.tz = tz
        self._clock = clock or _utc_now
        self._lock = threading.RLock()

        habits = self._persist(repository.list_habits)
        self._habits: dict[int, Habit] = {h.id: h for h in habits}
        stale = self._roll_over_all(self.today())
        if stale:
            logger.info("Progress from earlier days reset for %d habit(s) on load", len(stale))
        self._completions: CompletionsSnapshot = tuple(self._persist(repository.list_completions))
        self._habits_channel: Channel[HabitsSnapshot] = Channel(self._snapshot(), name="habits")
        self._completions_channel: Channel[CompletionsSnapshot] = Channel(self._completions, name="completions")

    # --- Reads ---

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return local_day(self._clock(), self.tz)

    @property
    def habits(self) -> HabitsSnapshot:
        return self._habits_channel.value

    @property
    def completions(self) -> CompletionsSnapshot:
        return self._completions_channel.value

    def get(self, habit_id: int) -> Optional[Habit]:
        return self._habits.get(habit_id)

    def subscribe_all(self, listener: Callable[[HabitsSnapshot], None]) -> Subscription[HabitsSnapshot]:
        return self._habits_channel.subscribe(listener)

    def subscribe_completions(
        self, listener: Callable[[CompletionsSnapshot], None]
    ) -> Subscription[CompletionsSnapshot]:
        return self._completions_channel.subscribe(listener)

    # --- CRUD ---

    def create(self, draft: HabitDraft) -> Habit:
        """Validate and store a new habit. Raises InvalidHabitError for a bad draft."""
        habit = Habit.create(habit_id=0, draft=draft, now=self._clock())
        with self._lock:
            stored = self._persist(self.repository.insert_habit, habit)
            self._habits[stored.id] = stored
            self._publish_habits()
        logger.info("Habit %d created: %s", stored.id, stored.name)
        self._sync_reminder(stored)
        return stored

    def update(self, habit: Habit) -> Habit:
        """Save the editable fields of `habit`. Streak and progress are kept as stored."""
        with self._lock:
            current = self._require(habit.id)
            return self._save_edit(current, current.apply_edit(habit))

    def edit(self, habit_id: int, **changes) -> Habit:
        with self._lock:
            current = self._require(habit_id)
            return self._save_edit(current, current.with_changes(**changes))

    def delete(self, habit_id: int) -> None:
        """Delete a habit with its completions. Unknown ids are ignored."""
        with self._lock:
            if habit_id not in self._habits:
                return
            self._persist(self.repository.delete_habit, habit_id)
            del self._habits[habit_id]
            self._completions = tuple(r for r in self._completions if r.habit_id != habit_id)
            self._publish_habits()
            self._completions_channel.publish(self._completions)
        logger.info("Habit %d deleted", habit_id)
        self._cancel_reminder(habit_id)

    def clear_all(self) -> None:
        """Data reset: wipe habits and completions, cancel every reminder."""
        with self._lock:
            self._persist(self.repository.delete_all)
            habit_ids = list(self._habits)
            self._habits.clear()
            self._completions = ()
            self._publish_habits()
            self._completions_channel.publish(self._completions)
        logger.info("All habits cleared (%d removed)", len(habit_ids))
        for habit_id in habit_ids:
            self._cancel_reminder(habit_id)

    def record_completion(self, habit_id: int, day: date) -> CompletionRecord:
        """Mark `day` as completed for the habit. Repeated calls return the same record."""
        with self._lock:
            self._require(habit_id)
            record = self._persist(self.repository.upsert_completion, habit_id, day, self._clock())
            self._add_completion(record)
            return record

    # --- Progress intents ---

    def increment(self, habit_id: int) -> Habit:
        return self.apply(habit_id, Increment())

    def decrement(self, habit_id: int) -> Habit:
        return self.apply(habit_id, Decrement())

    def set_progress(self, habit_id: int, value: int) -> Habit:
        return self.apply(habit_id, SetProgress(value))

    def toggle(self, habit_id: int, checked: bool) -> Habit:
        return self.apply(habit_id, Toggle(checked))

    def apply(self, habit_id: int, mutation: Mutation) -> Habit:
        with self._lock:
            now = self._clock()
            today = local_day(now, self.tz)
            stored = self._require(habit_id)
            current = roll_over(stored, today)
            updated = apply_mutation(current, mutation, now, self.tz)
            if updated == stored:
                return stored

            completed_day = today if is_completed(updated) else None
            record = self._persist(self.repository.save_habit, updated, completed_day, now)
            self._habits[habit_id] = updated
            self._publish_habits()
            if record is not None:
                self._add_completion(record)
            return updated

    def start_new_day(self) -> int:
        """Reset progress left over from previous days. Returns how many habits changed."""
        with self._lock:
            today = self.today()
            changed = self._roll_over_all(today)
            if not changed:
                return 0
            self._publish_habits()
        logger.info("New day %s: progress reset for %d habit(s)", today.isoformat(), len(changed))
        return len(changed)

    def sync_reminders(self) -> None:
        """Schedule reminders for every stored habit that has a notification time."""
        for habit in self.habits:
            if habit.notification_time:
                self._sync_reminder(habit)

    # --- Internals ---

    def _roll_over_all(self, today: date) -> list[Habit]:
        changed = []
        for habit in self._habits.values():
            rolled = roll_over(habit, today)
            if rolled != habit:
                changed.append(rolled)
        if changed:
            self._persist(self.repository.save_habits, changed)
            for habit in changed:
                self._habits[habit.id] = habit
        return changed

    def _save_edit(self, current: Habit, edited: Habit) -> Habit:
        if edited == current:
            return current
        self._persist(self.repository.save_habit, edited)
        self._habits[edited.id] = edited
        self._publish_habits()
        self._sync_reminder(edited)
        return edited

    def _require(self, habit_id: int) -> Habit:
        habit = self._habits.get(habit_id)
        if habit is None:
            raise HabitNotFoundError(f"Привычка #{habit_id} не найдена")
        return habit

    def _snapshot(self) -> HabitsSnapshot:
        return tuple(sorted(
            self._habits.values(),
            key=lambda h: (h.creation_date, h.id),
            reverse=True,
        ))

    def _publish_habits(self) -> None:
        self._habits_channel.publish(self._snapshot())

    def _add_completion(self, record: CompletionRecord) -> None:
        key = (record.habit_id, record.day)
        if any((r.habit_id, r.day) == key for r in self._completions):
            return
        self._completions = tuple(sorted(self._completions + (record,), key=lambda r: (r.day, r.habit_id)))
        self._completions_channel.publish(self._completions)

    def _persist(self, operation, *args):
        try:
            return operation(*args)
        except SQLAlchemyError as e:
            logger.warning("Habit storage operation %s failed: %s", operation.__name__, e)
            raise HabitPersistenceError(f"Не удалось сохранить изменения: {e}") from e

    def _sync_reminder(self, habit: Habit) -> None:
        if self.reminders is None:
            return
        try:
            if habit.notification_time:
                self.reminders.schedule(habit.id, parse_notification_time(habit.notification_time))
            else:
                self.reminders.cancel(habit.id)
        except Exception:
            logger.exception("Reminder update failed for habit_id=%d", habit.id)

    def _cancel_reminder(self, habit_id: int) -> None:
        if self.reminders is None:
            return
        try:
            self.reminders.cancel(habit_id)
        except Exception:
            logger.exception("Reminder cancel failed for habit_id=%d", habit_id)
