"""Required Minimum Distribution helpers."""

from __future__ import annotations

from .schema import RmdTableEntry
from .tax_data import UNIFORM_LIFETIME_DIVISORS


def _age_whole_years(age_years: float) -> int:
    return int(max(0.0, age_years))


def divisor_table(entries: list[RmdTableEntry]) -> dict[int, float]:
    """Snapshot divisors keyed by age, or the Uniform Lifetime Table."""
    if not entries:
        return dict(UNIFORM_LIFETIME_DIVISORS)
    return {entry.age: entry.divisor for entry in entries}


def divisor_for_age(age_years: float, table: dict[int, float]) -> float | None:
    if not table:
        return None
    age = _age_whole_years(age_years)
    if age < min(table):
        return None
    if age in table:
        return table[age]
    if age > max(table):
        return table[max(table)]
    # Gap inside the table: fall back to the nearest lower age.
    lower = [known for known in table if known < age]
    return table[max(lower)] if lower else None


def compute_rmd_amount(prior_year_end_balance: float, age_years: float, table: dict[int, float]) -> float:
    divisor = divisor_for_age(age_years, table)
    if divisor is None or divisor <= 0 or prior_year_end_balance <= 0:
        return 0.0
    return max(0.0, prior_year_end_balance / divisor)


def required_distribution(
    *,
    prior_year_end_balances: dict[str, float],
    eligible_ids: list[str],
    age_years: float,
    start_age: float,
    table: dict[int, float],
) -> float:
    """Statutory minimum for the year across all eligible holdings."""
    if age_years < start_age:
        return 0.0
    balance = sum(max(0.0, prior_year_end_balances.get(holding_id, 0.0)) for holding_id in eligible_ids)
    return compute_rmd_amount(balance, age_years, table)


def outstanding_rmd(
    *,
    required: float,
    ytd_withdrawals: dict[str, float],
    eligible_ids: list[str],
) -> float:
    taken = sum(ytd_withdrawals.get(holding_id, 0.0) for holding_id in eligible_ids)
    return max(0.0, required - taken)
