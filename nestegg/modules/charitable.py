"""Charitable giving, optionally funded by qualified charitable distributions."""

from __future__ import annotations

from ..actions import withdraw
from ..explain import ExplainTracker
from ..ledger import LedgerState
from ..records import Action, ModuleOutput
from .base import FinancialModule, MonthContext, book_cashflow

QCD_AGE = 70.5


class CharitableModule(FinancialModule):
    module_id = "charitable"

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        strategy = self.snapshot.scenario.strategies.charitable
        age = context.age
        explain.add_input("Annual giving", strategy.annual_giving)
        explain.add_input("Use QCD", strategy.use_qcd)

        if strategy.annual_giving <= 0:
            return explain.output()
        if strategy.start_age > 0 and age < strategy.start_age:
            return explain.output()
        if strategy.end_age > 0 and age > strategy.end_age:
            return explain.output()

        monthly = strategy.annual_giving / 12.0
        actions: list[Action] = []
        qcd = 0.0
        if strategy.use_qcd and age >= QCD_AGE:
            qcd_annual = (
                min(strategy.annual_giving, strategy.qcd_annual_amount)
                if strategy.qcd_annual_amount > 0
                else strategy.annual_giving
            )
            sources = state.holdings_of_type("traditional")
            if sources and qcd_annual > 0:
                action = withdraw(
                    state,
                    sources[0],
                    qcd_annual / 12.0,
                    label="QCD",
                    as_of=context.current,
                    age=age,
                    tax_treatment="tax_exempt",
                )
                actions.append(action)
                qcd = action.resolved_amount

        deduction = max(0.0, monthly - qcd)
        flow = book_cashflow(
            state,
            label="Charitable giving",
            category="other",
            amount=-monthly,
            deductions=deduction,
        )
        explain.add_checkpoint("Monthly giving", monthly)
        explain.add_checkpoint("QCD", qcd)
        explain.add_checkpoint("Deduction", deduction)
        return explain.output(cashflows=[flow], actions=actions)
