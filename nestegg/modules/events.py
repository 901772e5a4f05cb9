"""One-off cash events such as inheritances or large purchases."""

from __future__ import annotations

from ..dates import is_same_month
from ..explain import ExplainTracker
from ..ledger import LedgerState
from ..records import Cashflow, ModuleOutput
from .base import FinancialModule, MonthContext, book_cashflow, tax_character


class EventModule(FinancialModule):
    module_id = "events"

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        cashflows: list[Cashflow] = []
        for event in self.snapshot.scenario.strategies.events:
            if not is_same_month(context.current, event.date) or event.amount == 0:
                continue
            cashflows.append(
                book_cashflow(
                    state,
                    label=event.name,
                    category="event",
                    amount=event.amount,
                    **tax_character(event.tax_treatment, event.amount),
                )
            )
        explain.add_checkpoint("Event total", sum(flow.cash for flow in cashflows))
        return explain.output(cashflows=cashflows)
