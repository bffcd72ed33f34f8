from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from errors import ValidationError


@dataclass(frozen=True)
class Period:
    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def parse_iso_date(value: Optional[str], field: str) -> date:
    """Accept ``YYYY-MM-DD`` or a full ISO timestamp and return its date part."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    raw = str(value).strip()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {raw}", field=field) from exc


def parse_period(
    start: Optional[str],
    end: Optional[str],
    *,
    start_field: str = "period__gte",
    end_field: str = "period__lte",
) -> Period:
    start_date = parse_iso_date(start, start_field)
    end_date = parse_iso_date(end, end_field)
    if start_date > end_date:
        raise ValidationError("Start date must be before end date", field=start_field)
    return Period(start_date, end_date)


def month_bounds(value: date) -> Period:
    first = value.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return Period(first, next_month - date.resolution)
