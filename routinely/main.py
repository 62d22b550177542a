"""
Store factory - wires configuration, persistence and background jobs together

Jobs (one BackgroundScheduler per store):
  - Day rollover (00:00 in the configured time zone)
  - Habit reminders (daily, per habit, when REMINDERS_ENABLED)
"""
import logging
import weakref
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from routinely.application.reminder_scheduler import ApschedulerReminderScheduler
from routinely.application.store import HabitStore
from routinely.config import Settings, get_settings
from routinely.infrastructure.db.session import (
    build_engine,
    create_session_factory,
    get_engine,
    get_session_factory,
    init_db,
)
from routinely.infrastructure.habits.repository import HabitRepository

logger = logging.getLogger(__name__)

DAY_ROLLOVER_JOB_ID = "day_rollover"

_schedulers: "weakref.WeakKeyDictionary[HabitStore, BackgroundScheduler]" = weakref.WeakKeyDictionary()


def _log_reminder(habit_id: int) -> None:
    logger.info("Reminder due for habit %d", habit_id)


def _run_day_rollover(store: HabitStore) -> None:
    try:
        store.start_new_day()
    except Exception:
        logger.exception("Day rollover job failed")


def get_scheduler(store: HabitStore) -> BackgroundScheduler | None:
    """Background scheduler running the jobs of a store made by create_store."""
    return _schedulers.get(store)


def create_store(
    settings: Settings | None = None,
    notify: Callable[[int], None] | None = None,
) -> HabitStore:
    """
    Application factory - создаёт и настраивает HabitStore

    Args:
        settings: Settings instance (default: cached environment settings)
        notify: Called with habit_id when a reminder fires

    Returns:
        HabitStore loaded from the configured database, with the day
        rollover job (and reminders, if enabled) running
    """
    if settings is None:
        settings = get_settings()
        engine = get_engine()
        session_factory = get_session_factory()
    else:
        engine = build_engine(settings.get_sqlalchemy_url())
        session_factory = create_session_factory(engine)
    logging.basicConfig(level=settings.LOG_LEVEL)

    init_db(engine)
    repository = HabitRepository(session_factory)
    tz = settings.get_timezone()
    scheduler = BackgroundScheduler(daemon=True, timezone=tz)

    reminders = None
    if settings.REMINDERS_ENABLED:
        reminders = ApschedulerReminderScheduler(notify or _log_reminder, tz=tz, scheduler=scheduler)

    store = HabitStore(repository, reminders=reminders, tz=tz)
    store.sync_reminders()

    scheduler.add_job(
        _run_day_rollover,
        CronTrigger(hour=0, minute=0, timezone=tz),
        args=[store],
        id=DAY_ROLLOVER_JOB_ID,
        replace_existing=True,
    )
    scheduler.start()
    _schedulers[store] = scheduler
    logger.info("Habit store ready: %d habit(s), day rollover at 00:00", len(store.habits))
    return store


def shutdown_store(store: HabitStore) -> None:
    """Gracefully stop the background jobs of a store."""
    scheduler = _schedulers.pop(store, None)
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
