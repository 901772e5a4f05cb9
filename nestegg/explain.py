"""Per-month explanation records and the result recorder."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from .ledger import LedgerState, YearLedger
from .records import Action, Cashflow, MarketReturn, Metric, ModuleOutput


class ExplainTracker:
    """Collects labelled inputs and checkpoints while a module runs."""

    def __init__(self) -> None:
        self.inputs: list[Metric] = []
        self.checkpoints: list[Metric] = []

    def add_input(self, label: str, value: Any) -> None:
        self.inputs.append((label, value))

    def add_checkpoint(self, label: str, value: Any) -> None:
        self.checkpoints.append((label, value))

    def output(
        self,
        *,
        cashflows: list[Cashflow] | None = None,
        actions: list[Action] | None = None,
        market_returns: list[MarketReturn] | None = None,
    ) -> ModuleOutput:
        return ModuleOutput(
            cashflows=list(cashflows or []),
            actions=list(actions or []),
            market_returns=list(market_returns or []),
            inputs=list(self.inputs),
            checkpoints=list(self.checkpoints),
        )


@dataclass(slots=True)
class ModuleTotals:
    cash: float = 0.0
    ordinary_income: float = 0.0
    capital_gains: float = 0.0
    deductions: float = 0.0
    tax_exempt_income: float = 0.0
    deposit: float = 0.0
    withdraw: float = 0.0
    convert: float = 0.0
    market: float = 0.0


@dataclass(slots=True)
class ModuleExplanation:
    module_id: str
    inputs: list[Metric]
    checkpoints: list[Metric]
    cashflows: list[Cashflow]
    actions: list[Action]
    market_returns: list[MarketReturn]
    totals: ModuleTotals

    @classmethod
    def from_output(cls, module_id: str, output: ModuleOutput) -> "ModuleExplanation":
        totals = ModuleTotals()
        for flow in output.cashflows:
            totals.cash += flow.cash
            totals.ordinary_income += flow.ordinary_income
            totals.capital_gains += flow.capital_gains
            totals.deductions += flow.deductions
            totals.tax_exempt_income += flow.tax_exempt_income
        for action in output.actions:
            totals.ordinary_income += action.ordinary_income
            totals.capital_gains += action.capital_gains
            if action.kind == "deposit":
                totals.deposit += action.resolved_amount
            elif action.kind == "withdraw":
                totals.withdraw += action.resolved_amount
            else:
                totals.convert += action.resolved_amount
        for item in output.market_returns:
            totals.market += item.change
        return cls(
            module_id=module_id,
            inputs=output.inputs,
            checkpoints=output.checkpoints,
            cashflows=output.cashflows,
            actions=output.actions,
            market_returns=output.market_returns,
            totals=totals,
        )


@dataclass(slots=True)
class AccountSnapshot:
    id: str
    name: str
    kind: str
    balance: float
    tax_type: str | None = None
    cost_basis: float | None = None


def account_snapshots(state: LedgerState) -> list[AccountSnapshot]:
    accounts = [
        AccountSnapshot(id=account.id, name=account.name, kind="cash", balance=account.balance)
        for account in state.cash_accounts
    ]
    accounts.extend(
        AccountSnapshot(
            id=holding.id,
            name=holding.name,
            kind="holding",
            balance=holding.balance,
            tax_type=holding.tax_type,
            cost_basis=holding.cost_basis,
        )
        for holding in state.holdings
    )
    return accounts


@dataclass(slots=True)
class MonthExplanation:
    month_index: int
    date: str
    age: float
    modules: list[ModuleExplanation]
    accounts: list[AccountSnapshot]
    contributions_by_tax_type: dict[str, float]
    unmet_spending: float


@dataclass(slots=True)
class MonthlyTimelinePoint:
    month_index: int
    date: str
    age: float
    cash_balance: float
    investment_balance: float
    total_balance: float
    income: float
    spending: float
    contributions: float
    withdrawals: float
    taxes: float
    ordinary_income: float
    capital_gains: float
    deductions: float


@dataclass(slots=True)
class TimelinePoint:
    year_index: int
    age: float
    date: str
    balance: float
    contribution: float
    spending: float
    income: float
    withdrawals: float
    taxes: float
    cash_balance: float
    investment_balance: float
    year_ledger: YearLedger


@dataclass(slots=True)
class SimulationSummary:
    ending_balance: float = 0.0
    min_balance: float = 0.0
    max_balance: float = 0.0
    unmet_spending: float = 0.0


@dataclass(slots=True)
class SimulationResult:
    timeline: list[TimelinePoint] = field(default_factory=list)
    monthly_timeline: list[MonthlyTimelinePoint] = field(default_factory=list)
    explanations: list[MonthExplanation] = field(default_factory=list)
    summary: SimulationSummary = field(default_factory=SimulationSummary)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ResultRecorder:
    """Appends monthly and yearly records in strict index order."""

    def __init__(self) -> None:
        self._result = SimulationResult()
        self._unmet_total = 0.0

    def record_month(self, explanation: MonthExplanation, point: MonthlyTimelinePoint) -> None:
        expected = len(self._result.explanations)
        if explanation.month_index != expected or point.month_index != expected:
            raise ValueError(f"month {explanation.month_index} recorded out of order (expected {expected})")
        self._result.explanations.append(explanation)
        self._result.monthly_timeline.append(point)

    def record_year(self, point: TimelinePoint, unmet_spending: float) -> None:
        expected = len(self._result.timeline)
        if point.year_index != expected:
            raise ValueError(f"year {point.year_index} recorded out of order (expected {expected})")
        self._result.timeline.append(point)
        self._unmet_total += unmet_spending

    def finish(self) -> SimulationResult:
        result = self._result
        balances = [point.total_balance for point in result.monthly_timeline]
        if balances:
            result.summary = SimulationSummary(
                ending_balance=balances[-1],
                min_balance=min(balances),
                max_balance=max(balances),
                unmet_spending=self._unmet_total,
            )
        return result
