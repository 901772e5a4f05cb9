"""Roth conversion helpers."""

from __future__ import annotations

from typing import Callable

from .schema import IrmaaTable, RothConversionStrategy, RothLadderStrategy
from .tax_policy import ResolvedTaxPolicy, bracket_ceiling


def _in_age_window(age: float, start_age: float, end_age: float) -> bool:
    if start_age and age < start_age:
        return False
    if end_age and age > end_age:
        return False
    return True


def bracket_headroom(policy: ResolvedTaxPolicy, rate: float, ytd_ordinary_income: float) -> float | None:
    """Ordinary income that still fits under the bracket taxed at ``rate``."""
    upper = bracket_ceiling(policy, rate)
    if upper is None:
        return None
    return max(0.0, upper - max(0.0, ytd_ordinary_income))


def irmaa_headroom(table: IrmaaTable | None, magi: float) -> float | None:
    """Room below the first IRMAA tier, or None when there is no cap."""
    if table is None or not table.tiers or table.tiers[0].max_magi is None:
        return None
    return max(0.0, table.tiers[0].max_magi - max(0.0, magi))


def planned_conversion(
    strategy: RothConversionStrategy,
    *,
    age: float,
    policy: ResolvedTaxPolicy | None,
    ytd_ordinary_income: float,
    ytd_magi: float,
    irmaa_table: IrmaaTable | None,
    inflation_factor: float,
) -> float:
    """Annual conversion amount for the configured strategy."""
    if not strategy.enabled or not _in_age_window(age, strategy.start_age, strategy.end_age):
        return 0.0

    amount = 0.0
    if strategy.annual_amount > 0:
        amount = strategy.annual_amount
    elif strategy.target_bracket_rate > 0 and policy is not None:
        room = bracket_headroom(policy, strategy.target_bracket_rate, ytd_ordinary_income)
        amount = room or 0.0

    if strategy.respect_irmaa:
        cap = irmaa_headroom(irmaa_table, ytd_magi)
        if cap is not None:
            amount = min(amount, cap)

    if strategy.min_conversion > 0:
        amount = max(amount, strategy.min_conversion * inflation_factor)
    if strategy.max_conversion > 0:
        amount = min(amount, strategy.max_conversion * inflation_factor)
    return max(0.0, amount)


def planned_ladder_conversion(ladder: RothLadderStrategy, *, age: float, inflation_factor: float) -> float:
    """Ladder rung converted ``lead_time_years`` before it is spent.

    Without a fixed ``annual_conversion`` the rung is sized to the after-tax
    spending it will fund.
    """
    rung = ladder.annual_conversion if ladder.annual_conversion > 0 else ladder.target_after_tax_spending
    if not ladder.enabled or rung <= 0:
        return 0.0
    start = max(0.0, ladder.start_age - ladder.lead_time_years) if ladder.start_age > 0 else 0.0
    end = max(0.0, ladder.end_age - ladder.lead_time_years) if ladder.end_age > 0 else 0.0
    if not _in_age_window(age, start, end):
        return 0.0
    return rung * inflation_factor


def tax_adjusted_conversion(
    candidate: float,
    *,
    tax_cost: Callable[[float], float],
    cash: float,
    traditional_needed: Callable[[float], float],
    irmaa_room: float | None,
    minimum: float,
    maximum: float,
) -> float:
    """Shrink a bracket-filling conversion by the traditional money that pays its tax.

    ``tax_cost`` maps extra ordinary income to extra tax. Tax that ``cash``
    cannot cover is raised through the withdrawal order and
    ``traditional_needed`` reports the traditional share of that, which
    is itself ordinary income. Two passes settle the estimate.
    """
    planned = candidate
    withdrawal = 0.0
    for _ in range(2):
        owed = tax_cost(planned + withdrawal)
        withdrawal = traditional_needed(max(0.0, owed - cash))
        planned = max(0.0, candidate - withdrawal)
        if irmaa_room is not None:
            planned = min(planned, max(0.0, irmaa_room - withdrawal))
        if minimum > 0:
            planned = max(planned, minimum)
        if maximum > 0:
            planned = min(planned, maximum)
    return planned
