"""Health insurance premiums before and after Medicare eligibility."""

from __future__ import annotations

from datetime import date

from ..dates import parse_date
from ..explain import ExplainTracker
from ..ledger import LedgerState
from ..records import ModuleOutput
from ..schema import Snapshot
from ..tax import irmaa_surcharge
from ..tax_policy import resolve_irmaa_table
from .base import FinancialModule, MonthContext, book_cashflow

MEDICARE_AGE = 65.0


class HealthcareModule(FinancialModule):
    module_id = "healthcare"

    def __init__(self, snapshot: Snapshot) -> None:
        super().__init__(snapshot)
        covered = [period for period in snapshot.active_work_periods() if period.includes_health_insurance]
        self.open_ended_coverage = any(not period.end_date for period in covered)
        ends = [parse_date(period.end_date) for period in covered if period.end_date]
        self.coverage_ends: date | None = max((end for end in ends if end is not None), default=None)

    def covered_by_work(self, current: date) -> bool:
        if self.open_ended_coverage:
            return True
        return self.coverage_ends is not None and current < self.coverage_ends

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        strategy = self.snapshot.scenario.strategies.healthcare

        if self.covered_by_work(context.current):
            explain.add_input("Covered by work", True)
            explain.add_checkpoint("Total", 0.0)
            return explain.output()

        age = context.age
        is_medicare = age >= MEDICARE_AGE
        if is_medicare:
            base = strategy.medicare_part_b_monthly + strategy.medicare_part_d_monthly + strategy.medigap_monthly
        else:
            base = strategy.pre_medicare_monthly
        explain.add_input("Is Medicare", is_medicare)
        explain.add_input("Inflation type", strategy.inflation_type)
        explain.add_input("Apply IRMAA", strategy.apply_irmaa)
        explain.add_input("Base monthly", base)
        if base <= 0:
            explain.add_checkpoint("Total", 0.0)
            return explain.output()

        inflated = context.inflate_from_start(base, strategy.inflation_type)
        surcharge = 0.0
        if is_medicare and strategy.apply_irmaa:
            table = resolve_irmaa_table(
                self.snapshot.irmaa_tables,
                year=context.policy_year,
                filing_status=self.snapshot.scenario.strategies.tax.filing_status,
                inflation_rate=context.rate("cpi"),
            )
            lookback = table.lookback_years if table is not None else 0
            magi = state.magi_history.get(context.year_index - lookback, 0.0)
            part_b, part_d = irmaa_surcharge(table, magi)
            surcharge = part_b + part_d
            explain.add_input("IRMAA lookback years", lookback)
            explain.add_checkpoint("MAGI", magi)

        total = inflated + surcharge
        explain.add_checkpoint("Inflated base", inflated)
        explain.add_checkpoint("IRMAA surcharge", surcharge)
        explain.add_checkpoint("Total", total)
        flow = book_cashflow(state, label="Healthcare", category="other", amount=-total)
        return explain.output(cashflows=[flow])
