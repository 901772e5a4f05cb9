"""Year and filing-status lookup for tax reference tables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, TypeVar

from .schema import InputError, IrmaaTable, IrmaaTier, ProvisionalIncomeBracket, StateTaxPolicy, TaxBracket, TaxPolicy
from .tax_data import STATE_BRACKETS, STATE_TAX_YEAR


class TaxPolicyNotFound(InputError):
    """Raised when no policy exists at or before the requested year."""


class _YearRecord(Protocol):
    year: int
    filing_status: str


RecordT = TypeVar("RecordT", bound=_YearRecord)


@dataclass(slots=True)
class ResolvedTaxPolicy:
    year: int
    source_year: int
    filing_status: str
    standard_deduction: float
    ordinary_brackets: list[tuple[float | None, float]]
    capital_gains_brackets: list[tuple[float | None, float]]


def select_by_year(records: list[RecordT], *, year: int, filing_status: str) -> RecordT | None:
    """Return the latest record at or before ``year`` for ``filing_status``."""
    best: RecordT | None = None
    for record in records:
        if record.filing_status != filing_status or record.year > year:
            continue
        if best is None or record.year > best.year:
            best = record
    return best


def year_factor(target_year: int, source_year: int, inflation_rate: float) -> float:
    return (1.0 + inflation_rate) ** (target_year - source_year)


def _scale(brackets: list[TaxBracket], factor: float) -> list[tuple[float | None, float]]:
    return [(None if item.up_to is None else item.up_to * factor, item.rate) for item in brackets]


def resolve_tax_policy(
    policies: list[TaxPolicy],
    *,
    year: int,
    filing_status: str,
    inflation_rate: float,
) -> ResolvedTaxPolicy:
    policy = select_by_year(policies, year=year, filing_status=filing_status)
    if policy is None:
        raise TaxPolicyNotFound(f"tax_policies: no {filing_status} policy at or before {year}")
    factor = year_factor(year, policy.year, inflation_rate)
    return ResolvedTaxPolicy(
        year=year,
        source_year=policy.year,
        filing_status=filing_status,
        standard_deduction=policy.standard_deduction * factor,
        ordinary_brackets=_scale(policy.ordinary_brackets, factor),
        capital_gains_brackets=_scale(policy.capital_gains_brackets, factor),
    )


def resolve_provisional_bracket(
    brackets: list[ProvisionalIncomeBracket],
    *,
    year: int,
    filing_status: str,
) -> ProvisionalIncomeBracket:
    # Provisional-income thresholds are fixed in statute and never indexed.
    bracket = select_by_year(brackets, year=year, filing_status=filing_status)
    if bracket is None:
        raise TaxPolicyNotFound(
            f"social_security_provisional_brackets: no {filing_status} bracket at or before {year}"
        )
    return bracket


def resolve_irmaa_table(
    tables: list[IrmaaTable],
    *,
    year: int,
    filing_status: str,
    inflation_rate: float,
) -> IrmaaTable | None:
    table = select_by_year(tables, year=year, filing_status=filing_status)
    if table is None:
        return None
    factor = year_factor(year, table.year, inflation_rate)
    return IrmaaTable(
        year=year,
        filing_status=table.filing_status,
        lookback_years=table.lookback_years,
        tiers=[
            IrmaaTier(
                max_magi=None if tier.max_magi is None else tier.max_magi * factor,
                part_b_monthly=tier.part_b_monthly,
                part_d_monthly=tier.part_d_monthly,
            )
            for tier in table.tiers
        ],
    )


def bracket_ceiling(policy: ResolvedTaxPolicy, rate: float) -> float | None:
    """Upper bound of the ordinary bracket taxed at ``rate``, if any."""
    for upper, bracket_rate in policy.ordinary_brackets:
        if abs(bracket_rate - rate) < 1e-9:
            return upper
    return None


@dataclass(slots=True)
class ResolvedStatePolicy:
    state_code: str
    source_year: int
    filing_status: str
    standard_deduction: float
    brackets: list[tuple[float | None, float]]


def _builtin_state_policies(state_code: str) -> list[StateTaxPolicy]:
    return [
        StateTaxPolicy(
            state_code=code,
            year=STATE_TAX_YEAR,
            filing_status=status,
            standard_deduction=0.0,
            brackets=[TaxBracket(up_to=upper, rate=rate) for upper, rate in rows],
        )
        for (code, status), rows in STATE_BRACKETS.items()
        if code == state_code
    ]


def resolve_state_tax_policy(
    policies: list[StateTaxPolicy],
    *,
    state_code: str,
    year: int,
    filing_status: str,
) -> ResolvedStatePolicy | None:
    """State brackets for ``state_code``; ``None`` when no state is selected.

    Snapshot policies win over the built-in tables. Years before the first
    published table use the earliest one. State brackets are not indexed.
    """
    if state_code == "none":
        return None
    candidates = [policy for policy in policies if policy.state_code == state_code]
    if not candidates:
        candidates = _builtin_state_policies(state_code)
    matching = [policy for policy in candidates if policy.filing_status == filing_status]
    policy = select_by_year(matching, year=year, filing_status=filing_status)
    if policy is None and matching:
        policy = min(matching, key=lambda item: item.year)
    if policy is None:
        raise TaxPolicyNotFound(f"state_tax_policies: no {state_code} {filing_status} policy")
    return ResolvedStatePolicy(
        state_code=state_code,
        source_year=policy.year,
        filing_status=filing_status,
        standard_deduction=policy.standard_deduction,
        brackets=_scale(policy.brackets, 1.0),
    )
