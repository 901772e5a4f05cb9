"""Salary, bonus and workplace retirement plan deferrals."""

from __future__ import annotations

from ..actions import deposit
from ..dates import is_within_range
from ..explain import ExplainTracker
from ..ledger import LedgerState
from ..records import Action, Cashflow, ModuleOutput
from ..schema import FutureWorkPeriod
from .base import FinancialModule, MonthContext, book_cashflow


def monthly_deferral(period: FutureWorkPeriod) -> tuple[float, float]:
    """(employee, employer) monthly plan contributions.

    The employee is assumed to defer exactly enough to earn the full match.
    """
    employee = period.salary * period.match_pct_cap / 12.0
    return employee, employee * period.match_ratio


class WorkModule(FinancialModule):
    module_id = "work"

    def active_periods(self, context: MonthContext) -> list[FutureWorkPeriod]:
        return [
            period
            for period in self.snapshot.active_work_periods()
            if is_within_range(context.current, period.start_date, period.end_date)
        ]

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        cashflows: list[Cashflow] = []
        actions: list[Action] = []

        periods = self.active_periods(context)
        explain.add_input("Active periods", len(periods))
        for period in periods:
            income = period.salary / 12.0 + period.bonus / 12.0
            if income > 0:
                cashflows.append(
                    book_cashflow(
                        state,
                        label=period.name,
                        category="work",
                        amount=income,
                        ordinary_income=income,
                        earned_income=income,
                    )
                )

            employee, employer = monthly_deferral(period)
            if employee > 0:
                cashflows.append(
                    book_cashflow(
                        state,
                        label=f"{period.name} 401k deferral",
                        category="work",
                        amount=-employee,
                        deductions=employee,
                    )
                )

            holding = state.holding(period.holding_id) if period.holding_id else None
            if holding is not None and employee + employer > 0:
                actions.append(
                    deposit(
                        state,
                        holding,
                        employee + employer,
                        label=f"{period.name} 401k match",
                        as_of=context.current,
                        from_cash=False,
                    )
                )

        explain.add_checkpoint("Work income", sum(flow.cash for flow in cashflows if flow.cash > 0))
        explain.add_checkpoint("Plan contributions", sum(action.resolved_amount for action in actions))
        return explain.output(cashflows=cashflows, actions=actions)
