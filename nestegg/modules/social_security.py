"""Social Security retirement benefits for each active person."""

from __future__ import annotations

from ..dates import parse_date
from ..explain import ExplainTracker
from ..inflation import rates_by_type
from ..ledger import LedgerState
from ..records import Cashflow, ModuleOutput
from ..schema import Person, Snapshot
from ..social_security import SocialSecurityEstimate, estimate_benefit, monthly_benefit
from .base import FinancialModule, MonthContext, book_cashflow


class SocialSecurityModule(FinancialModule):
    module_id = "social-security"

    def __init__(self, snapshot: Snapshot) -> None:
        super().__init__(snapshot)
        self.benefits: list[tuple[Person, SocialSecurityEstimate]] = []
        people = {person.id: person for person in snapshot.people}
        strategies = {item.id: item for item in snapshot.social_security_strategies}
        inflation = rates_by_type(snapshot.inflation_defaults)
        start = parse_date(snapshot.scenario.start_date)
        base_year = start.year if start is not None else 0
        pre_tax_items = [item for item in snapshot.active_spending_items() if item.is_pre_tax]

        for person_strategy in snapshot.active_person_strategies():
            person = people.get(person_strategy.person_id)
            claim = strategies.get(person_strategy.social_security_strategy_id or "")
            if person is None or claim is None:
                continue
            periods = [
                period
                for period in snapshot.future_work_periods
                if period.future_work_strategy_id == person_strategy.future_work_strategy_id
            ]
            estimate = estimate_benefit(
                person=person,
                strategy=claim,
                earnings=snapshot.social_security_earnings,
                work_periods=periods,
                pre_tax_items=pre_tax_items,
                wage_index=snapshot.ssa_wage_index,
                bend_points=snapshot.ssa_bend_points,
                adjustments=snapshot.ssa_retirement_adjustments,
                inflation=inflation,
                base_year=base_year,
            )
            if estimate is not None:
                self.benefits.append((person, estimate))

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        cpi = context.rate("cpi")
        cashflows: list[Cashflow] = []
        for person, estimate in self.benefits:
            amount = monthly_benefit(estimate, context.current, cpi)
            if amount <= 0:
                continue
            cashflows.append(
                book_cashflow(
                    state,
                    label=f"{person.name} Social Security",
                    category="social_security",
                    amount=amount,
                    social_security_benefits=amount,
                )
            )

        explain.add_input("Strategy count", len(self.benefits))
        explain.add_input("CPI rate", cpi)
        explain.add_checkpoint("Benefit count", len(cashflows))
        explain.add_checkpoint("Benefit total", sum(flow.cash for flow in cashflows))
        return explain.output(cashflows=cashflows)
