"""Recurrence calculator — pure business logic.

Computes the calendar dates on which a recurring schedule is due.
The reference date is always passed in; nothing here reads the clock.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from datetime import date, timedelta

from slotmatch.data.models import DayOfWeek, Frequency

_DEFAULT_INTERVAL_DAYS = 7


def add_one_month(from_date: date) -> date:
    """Same day-of-month in the following month.

    A day that does not exist in the following month rolls over into the
    month after it (Jan 31 -> Mar 3 in a non-leap year) rather than being
    clamped to the month's last day.
    """
    year, month = from_date.year, from_date.month + 1
    if month > 12:
        year, month = year + 1, 1
    return date(year, month, 1) + timedelta(days=from_date.day - 1)


def walk_to_weekday(start: date, day_of_week: DayOfWeek) -> date:
    """Advance day by day from start (inclusive) until the weekday matches."""
    offset = (day_of_week.weekday - start.weekday()) % 7
    return start + timedelta(days=offset)


def first_occurrence(start: date, day_of_week: DayOfWeek) -> date:
    """First date on or after start that falls on day_of_week.

    Used when a schedule is created and when it is resumed.
    """
    return walk_to_weekday(start, day_of_week)


def next_occurrence(
    from_date: date,
    frequency: Frequency,
    day_of_week: DayOfWeek,
    custom_interval_days: int | None = None,
) -> date:
    """Next occurrence strictly after from_date.

    Monthly cadence keeps the weekday, not the ordinal ("2nd Monday"):
    one calendar month is added, then the date walks forward to the
    target weekday.
    """
    if frequency is Frequency.WEEKLY:
        return from_date + timedelta(days=7)
    if frequency is Frequency.BIWEEKLY:
        return from_date + timedelta(days=14)
    if frequency is Frequency.MONTHLY:
        return walk_to_weekday(add_one_month(from_date), day_of_week)
    if frequency is Frequency.CUSTOM:
        return from_date + timedelta(days=custom_interval_days or _DEFAULT_INTERVAL_DAYS)
    raise ValueError(f"Unknown frequency: {frequency!r}")
