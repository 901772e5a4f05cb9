"""Inflation assumptions by category."""

from __future__ import annotations

from datetime import date

from .dates import months_between, parse_date
from .schema import InflationDefault

INFLATION_TYPES = {"none", "cpi", "medical", "housing", "education"}


def rates_by_type(defaults: list[InflationDefault]) -> dict[str, float]:
    rates = {name: 0.0 for name in INFLATION_TYPES}
    for item in defaults:
        rates[item.type] = item.rate
    rates["none"] = 0.0
    return rates


def to_monthly_rate(annual_rate: float) -> float:
    return (1.0 + annual_rate) ** (1.0 / 12.0) - 1.0


def inflate(amount: float, rate: float, start: date | str | None, current: date) -> float:
    """Grow ``amount`` from ``start`` to ``current`` at an annual ``rate``."""
    start_date = parse_date(start) if isinstance(start, str) or start is None else start
    if start_date is None or rate == 0 or amount == 0:
        return amount
    months = months_between(start_date, current)
    return amount * (1.0 + rate) ** (months / 12.0)
