from calendar import monthrange
from datetime import date


def first_day_of_month(value: date) -> date:
    return value.replace(day=1)


def last_day_of_month(value: date) -> date:
    return value.replace(day=days_in_month(value))


def shift_months(value: date, delta_months: int) -> date:
    month_index = (value.month - 1) + delta_months
    year = value.year + (month_index // 12)
    month = (month_index % 12) + 1
    return date(year, month, 1)


def days_in_month(value: date) -> int:
    return monthrange(value.year, value.month)[1]


def months_spanned(start: date, end: date) -> int:
    """Number of calendar months touched by the inclusive range."""
    if end < start:
        return 0
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def month_bounds(year: int, month: int) -> tuple[date, date]:
    start = date(year, month, 1)
    return start, last_day_of_month(start)
