"""Forced required minimum distributions at the end of each year."""

from __future__ import annotations

import logging

from ..actions import deposit, withdraw
from ..explain import ExplainTracker
from ..ledger import LedgerState
from ..records import Action, Cashflow, ModuleOutput
from ..rmd import divisor_table, outstanding_rmd, required_distribution
from ..schema import Snapshot
from .base import FinancialModule, MonthContext, book_cashflow

logger = logging.getLogger(__name__)


class RmdModule(FinancialModule):
    module_id = "rmd"

    def __init__(self, snapshot: Snapshot) -> None:
        super().__init__(snapshot)
        self.table = divisor_table(snapshot.rmd_table)

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        strategies = self.snapshot.scenario.strategies
        strategy = strategies.rmd
        age = context.age
        explain.add_input("Enabled", strategy.enabled)
        explain.add_input("Start age", strategy.start_age)
        explain.add_input("Age", age)
        if not strategy.enabled or not context.is_end_of_year or age < strategy.start_age:
            return explain.output()

        eligible = [holding for holding in state.holdings if holding.tax_type in strategy.account_types]
        eligible_ids = [holding.id for holding in eligible]
        required = required_distribution(
            prior_year_end_balances=state.prior_year_end_balances,
            eligible_ids=eligible_ids,
            age_years=age,
            start_age=strategy.start_age,
            table=self.table,
        )
        outstanding = outstanding_rmd(required=required, ytd_withdrawals=state.ytd_withdrawals, eligible_ids=eligible_ids)
        explain.add_checkpoint("Required", required)
        explain.add_checkpoint("Already withdrawn", required - outstanding)
        explain.add_checkpoint("Outstanding", outstanding)
        if outstanding <= 1e-9:
            return explain.output()

        actions: list[Action] = []
        remaining = outstanding
        for holding in sorted(eligible, key=lambda item: item.balance, reverse=True):
            if remaining <= 1e-9:
                break
            if holding.balance <= 0:
                continue
            action = withdraw(
                state,
                holding,
                min(remaining, holding.balance),
                label="RMD",
                as_of=context.current,
                age=age,
                penalty_rate=strategies.early_retirement.penalty_rate,
            )
            actions.append(action)
            remaining -= action.resolved_amount
        distributed = outstanding - max(0.0, remaining)
        if remaining > 1e-9:
            logger.debug("month %s: RMD short by %.2f", context.month_index, remaining)

        cashflows: list[Cashflow] = []
        withheld = 0.0
        if strategy.withholding_rate > 0 and distributed > 0:
            flow = book_cashflow(
                state,
                label="RMD withholding",
                category="other",
                amount=-distributed * strategy.withholding_rate,
            )
            withheld = -flow.cash
            state.year_ledger.tax_paid += withheld
            cashflows.append(flow)

        if strategy.excess_handling in {"taxable", "roth"}:
            targets = state.holdings_of_type(strategy.excess_handling)
            net = distributed - withheld
            if targets and net > 0:
                actions.append(
                    deposit(
                        state,
                        targets[0],
                        net,
                        label="Reinvest RMD",
                        as_of=context.current,
                    )
                )

        explain.add_checkpoint("Distributed", distributed)
        explain.add_checkpoint("Withheld", withheld)
        return explain.output(cashflows=cashflows, actions=actions)
