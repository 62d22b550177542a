"""
Calendar-day helpers.

Habit timestamps are timezone-aware datetimes; streak and statistics logic
works on calendar days in a single configurable zone.
"""
from datetime import date, datetime, timedelta, timezone, tzinfo


def local_day(moment: datetime, tz: tzinfo | None = None) -> date:
    """
    Calendar day of `moment` in `tz` (local zone when tz is None).

    Naive datetimes are taken as UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def to_epoch_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return round(moment.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value // 1000, tz=timezone.utc) + timedelta(milliseconds=value % 1000)


def week_start(day: date) -> date:
    """Monday of the ISO week containing `day`."""
    return day - timedelta(days=day.weekday())


def day_range(start: date, end: date) -> list[date]:
    """Inclusive list of days; empty when start > end."""
    if start > end:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]
