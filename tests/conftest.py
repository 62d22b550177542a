"""
Pytest fixtures for testing
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from routinely.application.store import HabitStore
from routinely.domain.habit import Habit
from routinely.infrastructure.db.session import Base, init_db
from routinely.infrastructure.habits.repository import HabitRepository

UTC = timezone.utc


class FakeClock:
    """Controllable clock; call it to get the current moment."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeReminders:
    """Records reminder calls instead of scheduling jobs."""

    def __init__(self):
        self.scheduled: dict[int, str] = {}
        self.cancelled: list[int] = []

    def schedule(self, habit_id, time_of_day):
        self.scheduled[habit_id] = time_of_day.strftime("%H:%M")

    def cancel(self, habit_id):
        self.scheduled.pop(habit_id, None)
        self.cancelled.append(habit_id)


def make_habit(**overrides) -> Habit:
    fields = dict(
        id=1,
        name="Зарядка",
        creation_date=datetime(2026, 1, 1, 9, 0, tzinfo=UTC),
    )
    fields.update(overrides)
    return Habit(**fields)


@pytest.fixture
def habit_factory():
    return make_habit


@pytest.fixture
def db_engine():
    """Create in-memory SQLite engine shared by all sessions of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def repository(session_factory):
    return HabitRepository(session_factory)


@pytest.fixture
def clock():
    # 2026-02-14 is a Saturday
    return FakeClock(datetime(2026, 2, 14, 10, 0, tzinfo=UTC))


@pytest.fixture
def reminders():
    return FakeReminders()


@pytest.fixture
def store(repository, reminders, clock):
    return HabitStore(repository, reminders=reminders, clock=clock, tz=UTC)
