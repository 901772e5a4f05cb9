"""Household spending from the scenario's line items, with spending guardrails."""

from __future__ import annotations

from datetime import date
import logging

from ..dates import add_months, is_within_range, month_start, parse_date
from ..explain import ExplainTracker
from ..inflation import inflate
from ..ledger import LedgerState
from ..records import Cashflow, ModuleOutput
from ..schema import HealthPoint, MinBalancePoint, Snapshot
from .base import FinancialModule, MonthContext, book_cashflow

logger = logging.getLogger(__name__)

# After-tax value of a dollar held in each account type.
TAX_DISCOUNTS = {"traditional": 0.85, "taxable": 0.95, "roth": 1.0, "hsa": 1.0}


def discounted_portfolio(state: LedgerState) -> float:
    holdings = sum(holding.balance * TAX_DISCOUNTS.get(holding.tax_type, 1.0) for holding in state.holdings)
    return state.total_cash() + holdings


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def retirement_start(snapshot: Snapshot, default: date) -> date:
    """First month with no pay from the latest-ending work period.

    Open-ended periods are ignored; without any ended period the default
    (the scenario start) is used.
    """
    ends = [parse_date(period.end_date) for period in snapshot.active_work_periods()]
    ends = [end for end in ends if end is not None]
    if not ends:
        return default
    latest = max(ends)
    # Work pays while current < end, so a mid-month end still pays that month.
    return month_start(latest) if latest.day == 1 else add_months(month_start(latest), 1)


def health_factor(health: float, points: list[HealthPoint]) -> float:
    """Want factor interpolated between health points.

    At or below the lowest point the lowest point's factor applies; at or
    above the highest point wants are paid in full.
    """
    if not points:
        return 1.0
    ordered = sorted(points, key=lambda point: point.health)
    if health <= ordered[0].health:
        return _clamp01(ordered[0].factor)
    if health >= ordered[-1].health:
        return 1.0
    for lower, upper in zip(ordered, ordered[1:]):
        if health <= upper.health:
            span = max(1e-9, upper.health - lower.health)
            ratio = (health - lower.health) / span
            return _clamp01(lower.factor + (upper.factor - lower.factor) * ratio)
    return 1.0


def min_balance_target(timeline: list[MinBalancePoint], current: date, year_index: int) -> float | None:
    """Minimum-balance target for ``current``.

    Dated points are interpolated by day and held flat past either end;
    without dates the latest point at or before ``year_index`` applies.
    """
    if not timeline:
        return None
    dated = sorted(
        ((parse_date(point.date), point.balance) for point in timeline if parse_date(point.date) is not None),
        key=lambda item: item[0],
    )
    if dated:
        if current <= dated[0][0]:
            return dated[0][1]
        if current >= dated[-1][0]:
            return dated[-1][1]
        for (lower_date, lower), (upper_date, upper) in zip(dated, dated[1:]):
            if current <= upper_date:
                span = max(1, (upper_date - lower_date).days)
                return lower + (upper - lower) * (current - lower_date).days / span
    by_year = sorted(timeline, key=lambda point: point.year_index)
    candidate = by_year[0]
    for point in by_year[1:]:
        if point.year_index > year_index:
            break
        candidate = point
    return candidate.balance


class SpendingModule(FinancialModule):
    """Pays needs in full and scales wants by the active guardrail.

    Guardrails only apply from retirement start. The baseline portfolio,
    need and want are captured in the first retired month.
    """

    module_id = "spending"

    def __init__(self, snapshot: Snapshot) -> None:
        super().__init__(snapshot)
        self._retirement_start: date | None = None

    def retirement_start(self, context: MonthContext) -> date:
        if self._retirement_start is None:
            self._retirement_start = retirement_start(self.snapshot, context.start_date)
        return self._retirement_start

    def want_factor(
        self,
        context: MonthContext,
        state: LedgerState,
        total_need: float,
        total_want: float,
    ) -> tuple[float, bool, float | None]:
        """(factor, active, health) for this month's wants."""
        settings = self.snapshot.scenario.strategies.withdrawal
        strategy = settings.guardrail_strategy
        current = discounted_portfolio(state)
        baseline = state.baseline_portfolio if state.baseline_portfolio is not None else current

        if strategy == "cap_wants":
            if total_want <= 0 or settings.guardrail_withdrawal_rate_limit <= 0:
                return 1.0, False, None
            available = current * settings.guardrail_withdrawal_rate_limit / 12.0 - total_need
            factor = _clamp01(available / total_want)
            return factor, factor < 1.0, None

        if strategy == "portfolio_health":
            since = state.baseline_date or context.current
            target = inflate(baseline, context.rate("cpi"), since, context.current)
            health = current / target if target > 0 else 1.0
            factor = health_factor(health, settings.guardrail_health_points)
            return factor, factor < 1.0, health

        if strategy == "min_balance_health":
            target = min_balance_target(self.snapshot.min_balance_run, context.current, context.year_index)
            if not target or target <= 0:
                return 1.0, False, None
            health = state.total_balance() / target
            factor = health_factor(health, settings.guardrail_min_balance_health_points)
            return factor, factor < 1.0, health

        if strategy == "guyton":
            baseline_spending = state.baseline_need + state.baseline_want
            baseline_rate = baseline_spending / baseline * 12.0 if baseline > 0 else 0.0
            current_rate = (total_need + total_want) / current * 12.0 if current > 0 else 0.0
            trigger = baseline_rate * (1.0 + settings.guardrail_guyton_trigger_rate_increase)
            if baseline_rate > 0 and current_rate > trigger:
                state.guyton_months_remaining = max(
                    state.guyton_months_remaining, settings.guardrail_guyton_duration_months
                )
            if state.guyton_months_remaining > 0:
                state.guyton_months_remaining -= 1
                return _clamp01(1.0 - settings.guardrail_guyton_applied_pct), True, None
            return 1.0, False, None

        pct = settings.guardrail_pct
        active = pct > 0 and current < baseline * (1.0 - pct)
        return (1.0 - pct if active else 1.0), active, None

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        start_iso = self.snapshot.scenario.start_date
        amounts = []
        for item in self.snapshot.active_spending_items():
            if item.is_work or not is_within_range(context.current, item.start_date, item.end_date):
                continue
            since = item.start_date or start_iso
            need = context.inflate_from(item.need_amount, item.inflation_type, since)
            want = context.inflate_from(item.want_amount, item.inflation_type, since)
            amounts.append((item, need, want))

        total_need = sum(need for _, need, _ in amounts)
        total_want = sum(want for _, _, want in amounts)

        settings = self.snapshot.scenario.strategies.withdrawal
        retired_from = self.retirement_start(context)
        enabled = context.current >= retired_from
        if enabled and state.baseline_portfolio is None:
            state.baseline_portfolio = discounted_portfolio(state)
            state.baseline_date = context.current
            state.baseline_need = total_need
            state.baseline_want = total_want
            logger.debug("month %s: guardrail baseline %.2f", context.month_index, state.baseline_portfolio)

        want_factor, guardrail_active, health = 1.0, False, None
        if enabled:
            want_factor, guardrail_active, health = self.want_factor(context, state, total_need, total_want)

        cashflows: list[Cashflow] = []
        for item, need, _ in amounts:
            if need > 0:
                cashflows.append(
                    book_cashflow(
                        state,
                        label=f"{item.name} (need)",
                        category="other",
                        amount=-need,
                        deductions=need if item.is_pre_tax else 0.0,
                    )
                )
        for item, _, want in amounts:
            want *= want_factor
            if want > 0:
                cashflows.append(
                    book_cashflow(
                        state,
                        label=f"{item.name} (want)",
                        category="other",
                        amount=-want,
                        deductions=want if item.is_pre_tax else 0.0,
                    )
                )

        state.monthly_spending = total_need + total_want * want_factor
        paid = -sum(flow.cash for flow in cashflows)
        deferred = max(0.0, state.monthly_spending - paid)
        if deferred > 0:
            logger.debug("month %s: deferred %.2f of spending to the cash buffer", context.month_index, deferred)

        explain.add_input("Line items", len(amounts))
        explain.add_input("Guardrail strategy", settings.guardrail_strategy)
        explain.add_input("Guardrail pct", settings.guardrail_pct)
        explain.add_input("Retirement start", retired_from.isoformat())
        explain.add_checkpoint("Total need", total_need)
        explain.add_checkpoint("Total want", total_want)
        explain.add_checkpoint("Guardrails enabled", enabled)
        explain.add_checkpoint("Guardrail active", guardrail_active)
        explain.add_checkpoint("Guardrail health", "n/a" if health is None else health)
        explain.add_checkpoint("Guardrail factor", want_factor)
        explain.add_checkpoint("Paid", paid)
        explain.add_checkpoint("Deferred", deferred)
        return explain.output(cashflows=cashflows)
