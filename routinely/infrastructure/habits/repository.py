"""
Habit Repository - persistence for habits and completion records

Each public method runs in its own transaction: either every row change of
the call is committed or none is.
"""
from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from routinely.domain.habit import CompletionRecord, Habit
from routinely.infrastructure.db.models import HabitCompletionModel, HabitModel
from routinely.utils.dates import from_epoch_ms, to_epoch_ms


class HabitRepository:
    """
    Repository для работы с привычками и отметками выполнения
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # --- Habits ---

    def list_habits(self) -> List[Habit]:
        with self.session_factory() as db:
            rows = db.query(HabitModel).order_by(HabitModel.id.asc()).all()
            return [_to_habit(row) for row in rows]

    def get_habit(self, habit_id: int) -> Optional[Habit]:
        with self.session_factory() as db:
            row = db.get(HabitModel, habit_id)
            return _to_habit(row) if row else None

    def insert_habit(self, habit: Habit) -> Habit:
        """
        Insert a new habit. habit.id is ignored; the database assigns it.

        Returns:
            The stored habit with its id
        """
        with self.session_factory() as db, db.begin():
            row = HabitModel()
            _fill_row(row, habit)
            db.add(row)
            db.flush()
            return _to_habit(row)

    def save_habit(self, habit: Habit, completed_day: date | None = None,
                   completed_at: datetime | None = None) -> Optional[CompletionRecord]:
        """
        Replace a stored habit, optionally upserting its completion for a day
        in the same transaction.

        Raises:
            LookupError: if the habit does not exist
        """
        with self.session_factory() as db, db.begin():
            row = db.get(HabitModel, habit.id)
            if row is None:
                raise LookupError(f"habit {habit.id} not found")
            _fill_row(row, habit)
            if completed_day is None:
                return None
            return self._upsert_completion(db, habit.id, completed_day, completed_at or datetime.now().astimezone())

    def save_habits(self, habits: Iterable[Habit]) -> None:
        with self.session_factory() as db, db.begin():
            for habit in habits:
                row = db.get(HabitModel, habit.id)
                if row is not None:
                    _fill_row(row, habit)

    def delete_habit(self, habit_id: int) -> bool:
        """Delete a habit with its completions. Returns False if it did not exist."""
        with self.session_factory() as db, db.begin():
            db.query(HabitCompletionModel).filter(
                HabitCompletionModel.habit_id == habit_id
            ).delete(synchronize_session=False)
            deleted = db.query(HabitModel).filter(
                HabitModel.id == habit_id
            ).delete(synchronize_session=False)
            return deleted > 0

    def delete_all(self) -> None:
        with self.session_factory() as db, db.begin():
            db.query(HabitCompletionModel).delete(synchronize_session=False)
            db.query(HabitModel).delete(synchronize_session=False)

    # --- Completions ---

    def list_completions(
        self,
        habit_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[CompletionRecord]:
        """
        Completion records ordered by (day, habit_id)

        Args:
            habit_id: Only this habit (optional)
            start: First day, inclusive (optional)
            end: Last day, inclusive (optional)
        """
        with self.session_factory() as db:
            query = db.query(HabitCompletionModel)
            if habit_id is not None:
                query = query.filter(HabitCompletionModel.habit_id == habit_id)
            if start is not None:
                query = query.filter(HabitCompletionModel.day >= start)
            if end is not None:
                query = query.filter(HabitCompletionModel.day <= end)
            rows = query.order_by(HabitCompletionModel.day.asc(), HabitCompletionModel.habit_id.asc()).all()
            return [_to_record(row) for row in rows]

    def upsert_completion(self, habit_id: int, day: date, completed_at: datetime) -> CompletionRecord:
        with self.session_factory() as db, db.begin():
            if db.get(HabitModel, habit_id) is None:
                raise LookupError(f"habit {habit_id} not found")
            return self._upsert_completion(db, habit_id, day, completed_at)

    @staticmethod
    def _upsert_completion(db: Session, habit_id: int, day: date, completed_at: datetime) -> CompletionRecord:
        existing = db.query(HabitCompletionModel).filter(
            HabitCompletionModel.habit_id == habit_id,
            HabitCompletionModel.day == day,
        ).first()
        if existing:
            return _to_record(existing)
        row = HabitCompletionModel(habit_id=habit_id, day=day, completed_at=to_epoch_ms(completed_at))
        db.add(row)
        db.flush()
        return _to_record(row)


def _fill_row(row: HabitModel, habit: Habit) -> None:
    row.name = habit.name
    row.icon = habit.icon
    row.color = habit.color
    row.category = habit.category
    row.schedule = habit.schedule
    row.notification_time = habit.notification_time
    row.target_value = habit.target_value
    row.current_value = habit.current_value
    row.progress_day = habit.progress_day
    row.creation_date = to_epoch_ms(habit.creation_date)
    row.last_completed_date = (
        to_epoch_ms(habit.last_completed_date) if habit.last_completed_date else None
    )
    row.current_streak = habit.current_streak
    row.best_streak = habit.best_streak


def _to_habit(row: HabitModel) -> Habit:
    return Habit(
        id=row.id,
        name=row.name,
        creation_date=from_epoch_ms(row.creation_date),
        icon=row.icon,
        color=row.color,
        category=row.category,
        schedule=row.schedule,
        target_value=row.target_value,
        current_value=row.current_value,
        last_completed_date=from_epoch_ms(row.last_completed_date) if row.last_completed_date is not None else None,
        current_streak=row.current_streak,
        best_streak=row.best_streak,
        notification_time=row.notification_time,
        progress_day=row.progress_day,
    )


def _to_record(row: HabitCompletionModel) -> CompletionRecord:
    return CompletionRecord(
        habit_id=row.habit_id,
        day=row.day,
        completed_at=from_epoch_ms(row.completed_at),
    )
