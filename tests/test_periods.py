from datetime import date

import pytest

from errors import ValidationError
from periods import Period, month_bounds, parse_iso_date, parse_period


def test_parse_period_accepts_dates_and_timestamps():
    period = parse_period("2024-01-01", "2024-02-28T23:59:59.000Z")
    assert period == Period(date(2024, 1, 1), date(2024, 2, 28))
    assert period.contains(date(2024, 2, 28))
    assert not period.contains(date(2024, 2, 29))


def test_parse_period_rejects_inverted_range():
    with pytest.raises(ValidationError) as exc:
        parse_period("2024-03-01", "2024-02-01")
    assert exc.value.field == "period__gte"


@pytest.mark.parametrize("raw", [None, "", "2024-13-01", "yesterday"])
def test_parse_iso_date_rejects_missing_or_invalid(raw):
    with pytest.raises(ValidationError) as exc:
        parse_iso_date(raw, "period__lte")
    assert exc.value.field == "period__lte"


def test_month_bounds():
    assert month_bounds(date(2024, 2, 14)) == Period(date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(date(2023, 12, 31)) == Period(
        date(2023, 12, 1), date(2023, 12, 31)
    )
