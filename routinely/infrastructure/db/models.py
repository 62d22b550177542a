"""
SQLAlchemy ORM models
"""
from datetime import date as date_type

from sqlalchemy import BigInteger, Date, Integer, String, Text, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from routinely.infrastructure.db.session import Base


class HabitModel(Base):
    """Habits with progress and streak tracking. Timestamps are epoch milliseconds (UTC)."""
    __tablename__ = "habits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True)
    schedule: Mapped[str] = mapped_column(String(32), nullable=False, server_default="daily")
    notification_time: Mapped[str | None] = mapped_column(String(5), nullable=True)  # "HH:MM"

    target_value: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    progress_day: Mapped[date_type | None] = mapped_column(Date, nullable=True)

    creation_date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_completed_date: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    __table_args__ = {"sqlite_autoincrement": True}


class HabitCompletionModel(Base):
    """One row per (habit, calendar day) on which the habit reached its target"""
    __tablename__ = "habit_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    habit_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    day: Mapped[date_type] = mapped_column(Date, nullable=False)
    completed_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint('habit_id', 'day', name='uq_habit_completion_day'),
        Index('ix_habit_completion_day', 'day'),
    )
