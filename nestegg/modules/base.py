"""Shared month context and the financial module base class."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import ClassVar

from ..dates import age_at, parse_date
from ..inflation import inflate
from ..ledger import LedgerState
from ..records import Cashflow, ModuleOutput
from ..schema import Person, Snapshot


@dataclass(slots=True)
class MonthContext:
    snapshot: Snapshot
    start_date: date
    current: date
    month_index: int
    inflation: dict[str, float]
    people: dict[str, Person] = field(default_factory=dict)

    @property
    def year_index(self) -> int:
        return self.month_index // 12

    @property
    def is_start_of_year(self) -> bool:
        return self.month_index % 12 == 0

    @property
    def is_end_of_year(self) -> bool:
        return self.month_index % 12 == 11

    @property
    def date_iso(self) -> str:
        return self.current.isoformat()

    @property
    def age(self) -> float:
        """Age of the primary person, 0 when the snapshot has nobody."""
        person = self.snapshot.primary_person()
        return age_at(person.date_of_birth, self.current) if person is not None else 0.0

    def age_of(self, person_id: str) -> float:
        person = self.people.get(person_id)
        return age_at(person.date_of_birth, self.current) if person is not None else self.age

    def rate(self, inflation_type: str) -> float:
        return self.inflation.get(inflation_type, 0.0)

    def inflate_from_start(self, amount: float, inflation_type: str = "cpi") -> float:
        return inflate(amount, self.rate(inflation_type), self.start_date, self.current)

    def inflate_from(self, amount: float, inflation_type: str, since: str | None) -> float:
        since_date = parse_date(since) or self.start_date
        return inflate(amount, self.rate(inflation_type), since_date, self.current)

    @property
    def policy_year(self) -> int:
        pinned = self.snapshot.scenario.strategies.tax.policy_year
        return pinned if pinned is not None else self.current.year


def book_cashflow(
    state: LedgerState,
    *,
    label: str,
    category: str,
    amount: float,
    ordinary_income: float = 0.0,
    capital_gains: float = 0.0,
    deductions: float = 0.0,
    tax_exempt_income: float = 0.0,
    earned_income: float = 0.0,
    social_security_benefits: float = 0.0,
) -> Cashflow:
    """Move cash for one flow and add its tax character to the year ledger.

    Outflows are paid from cash in account order; whatever cash cannot cover
    is deferred and the flow records only the paid part.
    """
    if amount < 0:
        cash = -state.spend(-amount)
    else:
        state.receive(amount)
        cash = amount

    ledger = state.year_ledger
    ledger.ordinary_income += ordinary_income
    ledger.capital_gains += capital_gains
    ledger.deductions += deductions
    ledger.tax_exempt_income += tax_exempt_income
    ledger.earned_income += earned_income
    ledger.social_security_benefits += social_security_benefits
    return Cashflow(
        label=label,
        category=category,
        cash=cash,
        ordinary_income=ordinary_income,
        capital_gains=capital_gains,
        deductions=deductions,
        tax_exempt_income=tax_exempt_income,
    )


def tax_character(tax_treatment: str, amount: float) -> dict[str, float]:
    """Ledger fields for a positive amount with the given treatment."""
    if amount <= 0:
        return {}
    if tax_treatment == "ordinary":
        return {"ordinary_income": amount}
    if tax_treatment == "capital_gains":
        return {"capital_gains": amount}
    if tax_treatment == "tax_exempt":
        return {"tax_exempt_income": amount}
    return {}


class FinancialModule:
    """One step of the monthly pipeline.

    ``apply`` mutates ``state`` and returns what it did. The scheduler hands
    each module a working copy, so a raised exception leaves nothing behind.
    """

    module_id: ClassVar[str] = ""

    def __init__(self, snapshot: Snapshot) -> None:
        self.snapshot = snapshot

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        raise NotImplementedError
