"""Social Security benefit estimation from an earnings record."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from .dates import add_months, months_between, parse_date
from .schema import (
    BendPoints,
    FutureWorkPeriod,
    Person,
    RetirementAdjustment,
    SocialSecurityEarnings,
    SocialSecurityStrategy,
    SpendingLineItem,
    WageIndex,
)

MAX_CLAIM_AGE_MONTHS = 70 * 12
DEFAULT_NRA_MONTHS = 67 * 12
COMPUTATION_YEARS = 35
PIA_RATES = (0.90, 0.32, 0.15)


@dataclass(slots=True)
class SocialSecurityEstimate:
    claim_date: date
    claim_year: int
    claim_age_months: int
    nra_months: int
    aime: float
    pia: float
    adjustment_factor: float
    monthly_benefit: float
    indexed_earnings: dict[int, float] = field(default_factory=dict)


def awi_value(year: int, records: list[WageIndex], cpi_rate: float) -> float:
    """Average wage index for ``year``; CPI-extended past the table."""
    if not records:
        return 0.0
    ordered = sorted(records, key=lambda record: record.year)
    for record in ordered:
        if record.year == year:
            return record.index
    last = ordered[-1]
    if year > last.year:
        return last.index * (1.0 + cpi_rate) ** (year - last.year)
    earlier = [record for record in ordered if record.year < year]
    return earlier[-1].index if earlier else ordered[0].index


def bend_points_for(year: int, records: list[BendPoints], cpi_rate: float) -> tuple[float, float] | None:
    if not records:
        return None
    ordered = sorted(records, key=lambda record: record.year)
    for record in ordered:
        if record.year == year:
            return record.first, record.second
    last = ordered[-1]
    if year > last.year:
        factor = (1.0 + cpi_rate) ** (year - last.year)
        return last.first * factor, last.second * factor
    earlier = [record for record in ordered if record.year < year]
    chosen = earlier[-1] if earlier else ordered[0]
    return chosen.first, chosen.second


def primary_insurance_amount(aime: float, bends: tuple[float, float]) -> float:
    first, second = bends
    first_piece = min(aime, first)
    second_piece = min(max(aime - first, 0.0), second - first)
    third_piece = max(aime - second, 0.0)
    return first_piece * PIA_RATES[0] + second_piece * PIA_RATES[1] + third_piece * PIA_RATES[2]


def claiming_adjustment(claim_age_months: int, nra_months: int, credit_per_year: float | None) -> float:
    diff = claim_age_months - nra_months
    if diff == 0:
        return 1.0
    if diff < 0:
        early = abs(diff)
        first_36 = min(36, early)
        additional = max(0, early - 36)
        reduction = first_36 * (5.0 / 900.0) + additional * (5.0 / 1200.0)
        return max(0.0, 1.0 - reduction)
    if credit_per_year is None:
        return 1.0
    return 1.0 + diff * (credit_per_year / 12.0)


def _retirement_adjustment(birth_year: int, adjustments: list[RetirementAdjustment]) -> RetirementAdjustment | None:
    for entry in adjustments:
        if entry.birth_year_start <= birth_year <= entry.birth_year_end:
            return entry
    return None


def _months_active_in_year(start: date | None, end: date | None, year: int, cutoff: date | None) -> int:
    months = 0
    for month in range(1, 13):
        month_start = date(year, month, 1)
        month_end = add_months(month_start, 1)
        if start is not None and month_end <= start:
            continue
        if end is not None and month_start >= end:
            continue
        if cutoff is not None and month_start >= cutoff:
            continue
        months += 1
    return months


def _future_earnings(
    *,
    periods: list[FutureWorkPeriod],
    pre_tax_items: list[SpendingLineItem],
    claim_date: date,
    last_reported_year: int | None,
    base_year: int,
    inflation: dict[str, float],
) -> dict[int, float]:
    gross_by_year: dict[int, float] = {}
    months_by_year: dict[int, int] = {}
    cpi_rate = inflation.get("cpi", 0.0)
    for period in periods:
        start = parse_date(period.start_date)
        end = parse_date(period.end_date) or claim_date
        first_year = start.year if start is not None else base_year
        for year in range(first_year, min(end.year, claim_date.year) + 1):
            cutoff = claim_date if year == claim_date.year else None
            months = _months_active_in_year(start, end, year, cutoff)
            if months == 0:
                continue
            factor = (1.0 + cpi_rate) ** (year - base_year)
            gross_by_year[year] = gross_by_year.get(year, 0.0) + (period.salary + period.bonus) * factor * months / 12.0
            months_by_year[year] = min(12, months_by_year.get(year, 0) + months)

    earnings: dict[int, float] = {}
    for year, gross in gross_by_year.items():
        if last_reported_year is not None and year <= last_reported_year:
            continue
        cutoff = claim_date if year == claim_date.year else None
        pre_tax = 0.0
        for item in pre_tax_items:
            item_start = parse_date(item.start_date) or date(year, 1, 1)
            active = _months_active_in_year(item_start, parse_date(item.end_date), year, cutoff)
            if active <= 0:
                continue
            rate = inflation.get(item.inflation_type, 0.0)
            annual = (item.need_amount + item.want_amount) * 12.0 * (1.0 + rate) ** max(0, year - item_start.year)
            pre_tax += annual * min(active, months_by_year[year]) / 12.0
        earnings[year] = max(0.0, gross - pre_tax)
    return earnings


def estimate_benefit(
    *,
    person: Person,
    strategy: SocialSecurityStrategy,
    earnings: list[SocialSecurityEarnings],
    work_periods: list[FutureWorkPeriod],
    pre_tax_items: list[SpendingLineItem],
    wage_index: list[WageIndex],
    bend_points: list[BendPoints],
    adjustments: list[RetirementAdjustment],
    inflation: dict[str, float],
    base_year: int,
) -> SocialSecurityEstimate | None:
    """Estimate the monthly benefit fixed at the claim date.

    Returns None when the inputs cannot produce an estimate (no claim date,
    no wage index or no bend points).
    """
    birth = parse_date(person.date_of_birth)
    claim_date = parse_date(strategy.start_date)
    if birth is None or claim_date is None:
        return None
    cpi_rate = inflation.get("cpi", 0.0)
    claim_year = claim_date.year
    claim_age_months = min(months_between(birth, claim_date), MAX_CLAIM_AGE_MONTHS)
    claim_cutoff_months = claim_date.month - 1 if claim_date.day == 1 else claim_date.month

    by_year: dict[int, float] = {}
    for record in earnings:
        if record.person_id != person.id or record.year > claim_year:
            continue
        months = min(record.months, claim_cutoff_months) if record.year == claim_year else record.months
        by_year[record.year] = record.amount * max(0.0, min(1.0, months / 12.0))
    last_reported = max(by_year) if by_year else None

    by_year.update(
        _future_earnings(
            periods=work_periods,
            pre_tax_items=pre_tax_items,
            claim_date=claim_date,
            last_reported_year=last_reported,
            base_year=base_year,
            inflation=inflation,
        )
    )

    awi_claim = awi_value(claim_year - 2, wage_index, cpi_rate)
    bends = bend_points_for(claim_year, bend_points, cpi_rate)
    if not awi_claim or bends is None:
        return None

    indexed: dict[int, float] = {}
    for year, amount in by_year.items():
        awi_year = awi_value(year, wage_index, cpi_rate)
        indexed[year] = amount * (awi_claim / awi_year) if awi_year else 0.0
    top_years = sorted(indexed.values(), reverse=True)[:COMPUTATION_YEARS]
    aime = sum(top_years) / (COMPUTATION_YEARS * 12)
    pia = primary_insurance_amount(aime, bends)

    adjustment = _retirement_adjustment(birth.year, adjustments)
    nra_months = adjustment.normal_retirement_age_months if adjustment is not None else DEFAULT_NRA_MONTHS
    credit = adjustment.delayed_retirement_credit_per_year if adjustment is not None else None
    factor = claiming_adjustment(claim_age_months, nra_months, credit)

    return SocialSecurityEstimate(
        claim_date=claim_date,
        claim_year=claim_year,
        claim_age_months=claim_age_months,
        nra_months=nra_months,
        aime=aime,
        pia=pia,
        adjustment_factor=factor,
        monthly_benefit=max(0.0, pia * factor),
        indexed_earnings=indexed,
    )


def monthly_benefit(estimate: SocialSecurityEstimate, current: date, cpi_rate: float) -> float:
    """Benefit paid in ``current``'s month, COLA-adjusted since the claim."""
    if current < date(estimate.claim_date.year, estimate.claim_date.month, 1):
        return 0.0
    months = months_between(estimate.claim_date, current)
    return estimate.monthly_benefit * (1.0 + cpi_rate) ** (months / 12.0)
