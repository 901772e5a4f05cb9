"""Defined-benefit pension payouts."""

from __future__ import annotations

from ..dates import is_within_range
from ..explain import ExplainTracker
from ..ledger import LedgerState
from ..records import Cashflow, ModuleOutput
from .base import FinancialModule, MonthContext, book_cashflow, tax_character


class PensionModule(FinancialModule):
    module_id = "pensions"

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        pensions = self.snapshot.scenario.strategies.pensions
        cashflows: list[Cashflow] = []
        for pension in pensions:
            if not is_within_range(context.current, pension.start_date, pension.end_date):
                continue
            amount = context.inflate_from(pension.monthly_amount, pension.inflation_type, pension.start_date)
            if amount <= 0:
                continue
            cashflows.append(
                book_cashflow(
                    state,
                    label=pension.name,
                    category="pension",
                    amount=amount,
                    **tax_character(pension.tax_treatment, amount),
                )
            )

        explain.add_input("Pensions", len(pensions))
        explain.add_checkpoint("Total payout", sum(flow.cash for flow in cashflows))
        explain.add_checkpoint("Ordinary income", sum(flow.ordinary_income for flow in cashflows))
        return explain.output(cashflows=cashflows)
