"""Core month-by-month simulation engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable, Final

from .dates import add_months, month_start, parse_date
from .explain import (
    ModuleExplanation,
    MonthExplanation,
    MonthlyTimelinePoint,
    ResultRecorder,
    SimulationResult,
    TimelinePoint,
    account_snapshots,
)
from .inflation import rates_by_type
from .ledger import LedgerState
from .modules.base import FinancialModule, MonthContext
from .modules.cash_buffer import CashBufferModule
from .modules.charitable import CharitableModule
from .modules.conversions import ConversionModule
from .modules.events import EventModule
from .modules.healthcare import HealthcareModule
from .modules.market_returns import MarketReturnModule
from .modules.pensions import PensionModule
from .modules.rebalancing import RebalancingModule
from .modules.rmd import RmdModule
from .modules.social_security import SocialSecurityModule
from .modules.spending import SpendingModule
from .modules.taxes import TaxModule
from .modules.work import WorkModule
from .records import ModuleOutput
from .schema import InputError, Snapshot
from .tax_policy import resolve_tax_policy
from .validate import check_references, validate_snapshot

logger = logging.getLogger(__name__)

# Execution order within a month. Later modules read the cash position left
# by earlier ones; taxes must observe every income and withdrawal first.
MODULES: Final[tuple[type[FinancialModule], ...]] = (
    WorkModule,
    PensionModule,
    EventModule,
    HealthcareModule,
    CharitableModule,
    SocialSecurityModule,
    SpendingModule,
    CashBufferModule,
    RebalancingModule,
    ConversionModule,
    RmdModule,
    MarketReturnModule,
    TaxModule,
)

SPENDING_MODULES: Final[set[str]] = {"events", "healthcare", "charitable", "spending", "cash-buffer"}
TAX_PAYMENT_MODULES: Final[set[str]] = {"rmd", "taxes"}


class EngineState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class EngineStateError(RuntimeError):
    """Raised when a finished engine is asked to run again."""


class RunCancelled(Exception):
    """Raised between months when the caller asked the run to stop."""


class ModuleError(ValueError):
    """A module failed; the run is aborted with nothing from that step applied."""

    def __init__(self, module_id: str, month_index: int, cause: BaseException) -> None:
        super().__init__(f"{module_id} (month {month_index}): {cause}")
        self.module_id = module_id
        self.month_index = month_index


def build_modules(snapshot: Snapshot, *, seed: int | None = None) -> list[FinancialModule]:
    modules: list[FinancialModule] = []
    for module_class in MODULES:
        if module_class is MarketReturnModule:
            modules.append(MarketReturnModule(snapshot, seed=seed))
        else:
            modules.append(module_class(snapshot))
    return modules


@dataclass(slots=True)
class _YearTotals:
    income: float = 0.0
    spending: float = 0.0
    contributions: float = 0.0
    withdrawals: float = 0.0
    taxes: float = 0.0


def _monthly_point(
    context: MonthContext,
    state: LedgerState,
    modules: list[ModuleExplanation],
) -> MonthlyTimelinePoint:
    income = spending = withdrawals = taxes = 0.0
    ordinary = gains = deductions = 0.0
    for module in modules:
        ordinary += module.totals.ordinary_income
        gains += module.totals.capital_gains
        deductions += module.totals.deductions
        for flow in module.cashflows:
            if module.module_id in TAX_PAYMENT_MODULES:
                taxes -= flow.cash
            elif flow.cash > 0:
                income += flow.cash
            elif module.module_id in SPENDING_MODULES:
                spending -= flow.cash
        if module.module_id != "rebalancing":
            withdrawals += module.totals.withdraw

    cash = state.total_cash()
    investments = state.total_investments()
    return MonthlyTimelinePoint(
        month_index=context.month_index,
        date=context.date_iso,
        age=context.age,
        cash_balance=cash,
        investment_balance=investments,
        total_balance=cash + investments,
        income=income,
        spending=spending,
        contributions=sum(state.contributions_by_tax_type.values()),
        withdrawals=withdrawals,
        taxes=taxes,
        ordinary_income=ordinary,
        capital_gains=gains,
        deductions=deductions,
    )


class SimulationEngine:
    """Drives one run from ``NOT_STARTED`` to a terminal state.

    Each module step runs against a copy of the ledger that replaces the live
    one only when the step returns normally.
    """

    def __init__(
        self,
        snapshot: Snapshot,
        *,
        seed: int | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ) -> None:
        self.snapshot = snapshot
        self.seed = seed
        self.should_cancel = should_cancel
        self.state = EngineState.NOT_STARTED

    def run(self) -> SimulationResult:
        if self.state is not EngineState.NOT_STARTED:
            raise EngineStateError(f"engine already {self.state.value}")
        self.state = EngineState.RUNNING
        scenario = self.snapshot.scenario
        logger.info("starting run for scenario %s (%s years)", scenario.id, scenario.years)
        try:
            result = self._run()
        except RunCancelled:
            self.state = EngineState.CANCELLED
            logger.info("run for scenario %s cancelled", scenario.id)
            raise
        except Exception:
            self.state = EngineState.FAILED
            raise
        self.state = EngineState.COMPLETED
        logger.info("finished run for scenario %s: ending balance %.2f", scenario.id, result.summary.ending_balance)
        return result

    def _preflight(self) -> None:
        snapshot = self.snapshot
        check_references(snapshot)
        validation = validate_snapshot(snapshot)
        for warning in validation.warnings:
            logger.warning("snapshot: %s", warning)
        if not validation.is_valid:
            raise InputError("; ".join(validation.errors))

    def _apply(self, module: FinancialModule, context: MonthContext, state: LedgerState) -> tuple[LedgerState, ModuleOutput]:
        working = state.clone()
        try:
            output = module.apply(context, working)
        except Exception as exc:
            raise ModuleError(module.module_id, context.month_index, exc) from exc
        return working, output

    def _run(self) -> SimulationResult:
        self._preflight()
        snapshot = self.snapshot
        scenario = snapshot.scenario
        start = month_start(parse_date(scenario.start_date))
        inflation = rates_by_type(snapshot.inflation_defaults)
        if scenario.years > 0:
            # Fail before month 0 rather than at the first year end.
            pinned = scenario.strategies.tax.policy_year
            resolve_tax_policy(
                snapshot.tax_policies,
                year=pinned if pinned is not None else start.year,
                filing_status=scenario.strategies.tax.filing_status,
                inflation_rate=inflation.get("cpi", 0.0),
            )

        modules = build_modules(snapshot, seed=self.seed)
        state = LedgerState.from_snapshot(snapshot, start)
        recorder = ResultRecorder()
        people = {person.id: person for person in snapshot.people}
        totals = _YearTotals()

        for month_index in range(scenario.years * 12):
            if self.should_cancel is not None and self.should_cancel():
                raise RunCancelled(f"cancelled before month {month_index}")

            context = MonthContext(
                snapshot=snapshot,
                start_date=start,
                current=add_months(start, month_index),
                month_index=month_index,
                inflation=inflation,
                people=people,
            )
            if context.is_start_of_year:
                state.start_year()
                totals = _YearTotals()
            state.start_month()
            unmet_before = state.unmet_spending

            explanations: list[ModuleExplanation] = []
            for module in modules:
                state, output = self._apply(module, context, state)
                explanations.append(ModuleExplanation.from_output(module.module_id, output))

            point = _monthly_point(context, state, explanations)
            recorder.record_month(
                MonthExplanation(
                    month_index=month_index,
                    date=context.date_iso,
                    age=context.age,
                    modules=explanations,
                    accounts=account_snapshots(state),
                    contributions_by_tax_type=dict(state.contributions_by_tax_type),
                    unmet_spending=max(0.0, state.unmet_spending - unmet_before),
                ),
                point,
            )
            totals.income += point.income
            totals.spending += point.spending
            totals.contributions += point.contributions
            totals.withdrawals += point.withdrawals
            totals.taxes += point.taxes

            if context.is_end_of_year:
                recorder.record_year(
                    TimelinePoint(
                        year_index=context.year_index,
                        age=context.age,
                        date=context.date_iso,
                        balance=state.total_balance(),
                        contribution=totals.contributions,
                        spending=totals.spending,
                        income=totals.income,
                        withdrawals=totals.withdrawals,
                        taxes=totals.taxes,
                        cash_balance=state.total_cash(),
                        investment_balance=state.total_investments(),
                        year_ledger=state.closed_years[-1],
                    ),
                    state.unmet_spending,
                )
                state.snapshot_year_end_balances()
                logger.debug(
                    "closed year %s: balance %.2f, taxes %.2f",
                    context.year_index,
                    state.total_balance(),
                    totals.taxes,
                )

        return recorder.finish()


def run_simulation(
    snapshot: Snapshot,
    *,
    seed: int | None = None,
    should_cancel: Callable[[], bool] | None = None,
) -> SimulationResult:
    return SimulationEngine(snapshot, seed=seed, should_cancel=should_cancel).run()
