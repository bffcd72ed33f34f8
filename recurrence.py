from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from config import get_settings
from errors import ValidationError

DAILY = 1
WEEKLY = 7
MONTHLY = 30
YEARLY = 365

SUPPORTED_INTERVALS = (DAILY, WEEKLY, MONTHLY, YEARLY)


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int, *, snap_to_end: bool) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1

    dim = days_in_month(year, month)
    if snap_to_end or base.day > dim:
        return date(year, month, dim)
    return date(year, month, base.day)


def _add_years(base: date, years: int) -> date:
    year = base.year + years
    # 29 Feb falls back to 28 Feb in non-leap years
    day = min(base.day, days_in_month(year, base.month))
    return date(year, base.month, day)


def build_recurring_dates(base: date, count: int, interval_days: int) -> list[date]:
    """Return the ``count`` follow-up dates after ``base``.

    ``interval_days`` selects the cadence: 1 (daily), 7 (weekly), 30 (monthly)
    or 365 (yearly). Monthly series keep the base day-of-month, snapping to the
    last day when a month is shorter; a base on the last day of its month stays
    on the last day of every following month.
    """
    if interval_days not in SUPPORTED_INTERVALS:
        raise ValidationError(
            f"Unsupported interval: {interval_days}", field="interval_days"
        )
    if count < 1:
        raise ValidationError("Repeat count must be positive", field="repeat_count")

    is_month_end = base.day == days_in_month(base.year, base.month)
    dates: list[date] = []
    for i in range(1, count + 1):
        if interval_days == DAILY:
            next_date = base + timedelta(days=i)
        elif interval_days == WEEKLY:
            next_date = base + timedelta(weeks=i)
        elif interval_days == MONTHLY:
            next_date = _add_months(base, i, snap_to_end=is_month_end)
        else:
            next_date = _add_years(base, i)
        dates.append(next_date)
    return dates
