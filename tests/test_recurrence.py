from datetime import date

import pytest

from errors import ValidationError
from recurrence import (
    DAILY,
    MONTHLY,
    WEEKLY,
    YEARLY,
    build_recurring_dates,
    days_in_month,
)


def test_daily_and_weekly_series():
    assert build_recurring_dates(date(2024, 2, 27), 3, DAILY) == [
        date(2024, 2, 28),
        date(2024, 2, 29),
        date(2024, 3, 1),
    ]
    assert build_recurring_dates(date(2024, 1, 1), 2, WEEKLY) == [
        date(2024, 1, 8),
        date(2024, 1, 15),
    ]


def test_monthly_keeps_day_and_snaps_short_months():
    assert build_recurring_dates(date(2024, 1, 30), 3, MONTHLY) == [
        date(2024, 2, 29),
        date(2024, 3, 30),
        date(2024, 4, 30),
    ]


def test_monthly_month_end_anchor_stays_at_month_end():
    assert build_recurring_dates(date(2024, 2, 29), 3, MONTHLY) == [
        date(2024, 3, 31),
        date(2024, 4, 30),
        date(2024, 5, 31),
    ]


def test_yearly_leap_day_falls_back():
    assert build_recurring_dates(date(2024, 2, 29), 2, YEARLY) == [
        date(2025, 2, 28),
        date(2026, 2, 28),
    ]


def test_monthly_series_crosses_year_boundary():
    assert build_recurring_dates(date(2024, 11, 15), 2, MONTHLY) == [
        date(2024, 12, 15),
        date(2025, 1, 15),
    ]


def test_invalid_arguments():
    with pytest.raises(ValidationError) as exc:
        build_recurring_dates(date(2024, 1, 1), 2, 14)
    assert exc.value.field == "interval_days"
    with pytest.raises(ValidationError) as exc:
        build_recurring_dates(date(2024, 1, 1), 0, DAILY)
    assert exc.value.field == "repeat_count"


def test_days_in_month():
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2023, 2) == 28
    assert days_in_month(2024, 12) == 31
