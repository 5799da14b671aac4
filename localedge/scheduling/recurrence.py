"""Occurrence expansion for recurring bookings."""

import calendar
from datetime import date, datetime, timedelta
from typing import Literal

RecurrencePattern = Literal["none", "daily", "weekly", "monthly"]

MAX_OCCURRENCES = 365


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    # Jan 31 + 1 month lands on the last day of February
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def generate_occurrences(
    first_start: datetime,
    pattern: RecurrencePattern,
    end_date: date | None,
    *,
    max_occurrences: int = MAX_OCCURRENCES,
) -> list[datetime]:
    """
    Start times for a recurring series, the first occurrence included.

    The first occurrence is always part of the series, even when `end_date`
    falls before it in the start's own timezone (the client picked the end
    date in its own offset). Later occurrences run while they fall on or
    before `end_date` and stop at `max_occurrences`. A pattern of "none" or a
    missing end date yields only the first occurrence.
    """
    if pattern == "none" or end_date is None:
        return [first_start]
    if pattern not in ("daily", "weekly", "monthly"):
        raise ValueError(f"Unknown recurrence pattern: {pattern}")

    occurrences = [first_start]
    index = 1
    while len(occurrences) < max_occurrences:
        if pattern == "daily":
            current = first_start + timedelta(days=index)
        elif pattern == "weekly":
            current = first_start + timedelta(weeks=index)
        else:
            current = _add_months(first_start, index)
        if current.date() > end_date:
            break
        occurrences.append(current)
        index += 1
    return occurrences
