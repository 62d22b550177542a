"""
Habit reminders - one daily job per habit with a notification time.

The store calls schedule() after saving a habit that has notification_time
set, cancel() after saving one without it and after deleting a habit.
"""
import logging
from datetime import datetime, time, timedelta, tzinfo
from typing import Callable, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)


class ReminderScheduler(Protocol):
    def schedule(self, habit_id: int, time_of_day: time) -> None: ...

    def cancel(self, habit_id: int) -> None: ...


def parse_notification_time(value: str) -> time:
    """Parse "HH:MM". Raises ValueError on malformed input."""
    hour_str, minute_str = value.split(":")
    return time(hour=int(hour_str), minute=int(minute_str))


def next_reminder_at(time_of_day: time, now: datetime) -> datetime:
    """Next moment the reminder fires: today if still ahead, otherwise tomorrow."""
    candidate = now.replace(hour=time_of_day.hour, minute=time_of_day.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def reminder_job_id(habit_id: int) -> str:
    return f"habit-reminder-{habit_id}"


class ApschedulerReminderScheduler:
    """Daily reminders on an APScheduler BackgroundScheduler."""

    def __init__(
        self,
        notify: Callable[[int], None],
        tz: tzinfo | None = None,
        scheduler: BackgroundScheduler | None = None,
    ):
        self.notify = notify
        self.tz = tz
        if scheduler is None:
            scheduler = BackgroundScheduler(daemon=True, timezone=tz) if tz else BackgroundScheduler(daemon=True)
        self.scheduler = scheduler

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Reminder scheduler started")

    def shutdown(self) -> None:
        """Gracefully stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reminder scheduler stopped")

    def schedule(self, habit_id: int, time_of_day: time) -> None:
        self.scheduler.add_job(
            self._fire,
            CronTrigger(hour=time_of_day.hour, minute=time_of_day.minute, timezone=self.tz),
            args=[habit_id],
            id=reminder_job_id(habit_id),
            replace_existing=True,
        )
        logger.info(
            "Reminder for habit %d scheduled at %s, next at %s",
            habit_id,
            time_of_day.strftime("%H:%M"),
            next_reminder_at(time_of_day, datetime.now(self.tz)).isoformat(),
        )

    def cancel(self, habit_id: int) -> None:
        try:
            self.scheduler.remove_job(reminder_job_id(habit_id))
        except JobLookupError:
            return
        logger.info("Reminder for habit %d cancelled", habit_id)

    def _fire(self, habit_id: int) -> None:
        try:
            self.notify(habit_id)
        except Exception:
            logger.exception("Reminder notification failed for habit_id=%d", habit_id)
