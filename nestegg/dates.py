"""Calendar helpers for month-stepped projection."""

from __future__ import annotations

from datetime import date, datetime


def parse_date(value: str | None) -> date | None:
    """Parse ``YYYY-MM-DD`` (or ``YYYY-MM``); empty values mean open-ended."""
    if not value:
        return None
    text = value.strip()
    fmt = "%Y-%m" if len(text) == 7 else "%Y-%m-%d"
    try:
        return datetime.strptime(text[:10], fmt).date()
    except ValueError:
        return None


def month_start(value: date) -> date:
    return value.replace(day=1)


def add_months(value: date, months: int) -> date:
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def months_between(start: date, end: date) -> int:
    """Whole months from ``start`` to ``end``, never negative."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(0, months)


def is_within_range(current: date, start: str | None, end: str | None) -> bool:
    """True when ``start <= current < end``; missing bounds are open."""
    start_date = parse_date(start)
    end_date = parse_date(end)
    if start_date is not None and current < month_start(start_date):
        return False
    if end_date is not None and current >= end_date:
        return False
    return True


def is_same_month(current: date, target: str | None) -> bool:
    target_date = parse_date(target)
    if target_date is None:
        return False
    return current.year == target_date.year and current.month == target_date.month


def age_at(date_of_birth: str, current: date) -> float:
    """Fractional age in years at the first of ``current``'s month."""
    birth = parse_date(date_of_birth)
    if birth is None:
        return 0.0
    months = (current.year - birth.year) * 12 + (current.month - birth.month)
    return max(0.0, months / 12.0)
