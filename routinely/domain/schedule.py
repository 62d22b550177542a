"""
Schedule token codec.

A habit's recurrence is stored as a compact string:
  "daily"  - every day of the week
  "1,3,5"  - ISO weekdays (1=Monday .. 7=Sunday), sorted, comma separated

Malformed tokens never raise: unparsable entries are dropped and a token
with nothing valid in it decodes to an empty set (due on no day).
"""
from datetime import date, timedelta
from typing import Iterable

DAILY = "daily"
ALL_DAYS = frozenset(range(1, 8))
WEEKDAYS = frozenset({1, 2, 3, 4, 5})
WEEKEND = frozenset({6, 7})

DAY_ABBREVIATIONS = {1: "Mon", 2: "Tue", 3: "Wed", 4: "Thu", 5: "Fri", 6: "Sat", 7: "Sun"}


def encode(selected_weekdays: Iterable[int]) -> str:
    days = set(selected_weekdays)
    if days == ALL_DAYS:
        return DAILY
    return ",".join(str(d) for d in sorted(days))


def decode(token: str | None) -> frozenset[int]:
    if not token:
        return frozenset()
    token = token.strip()
    if token.lower() == DAILY:
        return ALL_DAYS

    days = set()
    for part in token.split(","):
        try:
            day = int(part.strip())
        except ValueError:
            continue
        if 1 <= day <= 7:
            days.add(day)
    return frozenset(days)


def is_due_on(token: str | None, weekday: int) -> bool:
    return weekday in decode(token)


def iso_weekday(day: date) -> int:
    return day.isoweekday()


def from_sunday_first(value: int) -> int:
    """Remap 1=Sunday..7=Saturday numbering to ISO (1=Monday..7=Sunday)."""
    if not 1 <= value <= 7:
        raise ValueError(f"day of week out of range: {value}")
    return 7 if value == 1 else value - 1


def is_due_on_date(token: str | None, day: date) -> bool:
    return is_due_on(token, iso_weekday(day))


def describe(token: str | None) -> str:
    days = decode(token)
    if days == ALL_DAYS:
        return "Daily"
    if days == WEEKDAYS:
        return "Weekdays"
    if days == WEEKEND:
        return "Weekend"
    if not days:
        return "Never"
    return ", ".join(DAY_ABBREVIATIONS[d] for d in sorted(days))


def previous_due_day(token: str | None, day: date) -> date:
    """
    Most recent day strictly before `day` on which the schedule is due.

    Falls back to the calendar day before `day` for an empty schedule.
    """
    days = decode(token)
    for offset in range(1, 8):
        candidate = day - timedelta(days=offset)
        if candidate.isoweekday() in days:
            return candidate
    return day - timedelta(days=1)
