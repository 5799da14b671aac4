from datetime import UTC, date, datetime

import pytest
from conftest import at

from localedge.scheduling.recurrence import generate_occurrences


def test_none_pattern_yields_single_occurrence():
    assert generate_occurrences(at(9), "none", date(2025, 3, 1)) == [at(9)]


def test_missing_end_date_yields_single_occurrence():
    assert generate_occurrences(at(9), "weekly", None) == [at(9)]


def test_daily_series_includes_end_date():
    occurrences = generate_occurrences(at(9), "daily", date(2025, 1, 18))

    assert occurrences == [at(9, day=day) for day in (15, 16, 17, 18)]


def test_weekly_series():
    occurrences = generate_occurrences(at(9), "weekly", date(2025, 2, 5))

    assert [value.day for value in occurrences] == [15, 22, 29, 5]


def test_monthly_series_clamps_to_month_end():
    first = at(9, day=31)

    occurrences = generate_occurrences(first, "monthly", date(2025, 4, 30))

    assert [value.date() for value in occurrences] == [
        date(2025, 1, 31),
        date(2025, 2, 28),
        date(2025, 3, 31),
        date(2025, 4, 30),
    ]


def test_series_is_capped():
    occurrences = generate_occurrences(at(9), "daily", date(2030, 1, 1), max_occurrences=10)

    assert len(occurrences) == 10


def test_unknown_pattern_rejected():
    with pytest.raises(ValueError):
        generate_occurrences(at(9), "yearly", date(2026, 1, 1))


def test_first_occurrence_kept_when_end_date_precedes_it_locally():
    # 23:30 at -05:00 on Jan 1 is already Jan 2 in UTC
    first = datetime(2025, 1, 2, 4, 30, tzinfo=UTC)

    assert generate_occurrences(first, "daily", date(2025, 1, 1)) == [first]
