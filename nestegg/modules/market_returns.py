"""Monthly investment growth and cash interest."""

from __future__ import annotations

import math
import random

from ..explain import ExplainTracker
from ..historical_data import annual_returns, dataset_year
from ..inflation import to_monthly_rate
from ..ledger import HoldingState, LedgerState
from ..records import Cashflow, MarketReturn, ModuleOutput
from ..schema import Snapshot
from .base import FinancialModule, MonthContext
from .rebalancing import asset_class

MIN_MONTHLY_RETURN = -0.95


class MarketReturnModule(FinancialModule):
    """Deterministic, historical or seeded normal-shock returns.

    Historical mode replays one dataset year per projection year for the
    equity, bond and real estate classes; other holdings keep their own
    expected return.

    Stochastic shocks are scaled by ``sqrt(12)`` when drawn every month and
    by ``12`` when one shock is held for the whole year, so both keep the
    annual variance of ``return_std_dev``.
    """

    module_id = "market-returns"

    def __init__(self, snapshot: Snapshot, *, seed: int | None = None) -> None:
        super().__init__(snapshot)
        model = snapshot.scenario.strategies.return_model
        if seed is None:
            seed = model.seed
        scenario = snapshot.scenario
        self.random = random.Random(seed if seed is not None else f"{scenario.id}:{scenario.start_date}")
        self._shock_period: int | None = None
        self._shocks: dict[str, float] = {}
        self.history = annual_returns(snapshot.historical_returns) if model.mode == "historical" else {}

    def _shock(self, holding: HoldingState, context: MonthContext) -> float:
        model = self.snapshot.scenario.strategies.return_model
        period = context.year_index if model.sequence_model == "regime" else context.month_index
        if period != self._shock_period:
            self._shock_period = period
            self._shocks = {}
        if model.correlation_model == "asset_class":
            key = asset_class(holding.holding_type)
        elif model.sequence_model == "regime":
            key = holding.id
        else:
            return self.random.gauss(0.0, 1.0)
        if key not in self._shocks:
            self._shocks[key] = self.random.gauss(0.0, 1.0)
        return self._shocks[key]

    def monthly_rate(self, holding: HoldingState, context: MonthContext) -> float:
        model = self.snapshot.scenario.strategies.return_model
        expected = to_monthly_rate(holding.return_rate)
        if model.mode == "historical":
            year = dataset_year(self.history, model.historical_start_year, context.year_index)
            annual = self.history[year].get(asset_class(holding.holding_type))
            if annual is None:
                return expected
            return max(MIN_MONTHLY_RETURN, to_monthly_rate(annual))
        if model.mode != "stochastic":
            return expected
        scale = 12.0 if model.sequence_model == "regime" else math.sqrt(12.0)
        volatility = holding.return_std_dev * model.volatility_scale / scale
        return max(MIN_MONTHLY_RETURN, expected + self._shock(holding, context) * volatility)

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        model = self.snapshot.scenario.strategies.return_model
        explain.add_input("Mode", model.mode)
        explain.add_input("Shock period", model.sequence_model)
        explain.add_input("Shock correlation", model.correlation_model)
        explain.add_input("Volatility scale", model.volatility_scale)
        if model.mode == "historical":
            explain.add_checkpoint("Historical year", dataset_year(self.history, model.historical_start_year, context.year_index))

        cashflows: list[Cashflow] = []
        returns: list[MarketReturn] = []
        for account in state.cash_accounts:
            rate = to_monthly_rate(account.interest_rate)
            before = account.balance
            interest = before * rate
            if interest == 0:
                continue
            account.balance = before + interest
            state.year_ledger.ordinary_income += interest
            cashflows.append(
                Cashflow(label=f"{account.name} interest", category="other", cash=interest, ordinary_income=interest)
            )
            returns.append(
                MarketReturn(kind="cash", account_id=account.id, before=before, after=account.balance, change=interest, rate=rate)
            )

        for holding in state.holdings:
            # Always draw the shock so the random sequence does not depend on balances.
            rate = self.monthly_rate(holding, context)
            before = holding.balance
            if before <= 0:
                continue
            holding.balance = before * (1.0 + rate)
            if holding.is_roth:
                holding.roth_basis().cap_to_balance(holding.balance, context.current)
            returns.append(
                MarketReturn(
                    kind="holding",
                    account_id=holding.id,
                    before=before,
                    after=holding.balance,
                    change=holding.balance - before,
                    rate=rate,
                )
            )

        explain.add_checkpoint("Cash return", sum(item.change for item in returns if item.kind == "cash"))
        explain.add_checkpoint("Holding return", sum(item.change for item in returns if item.kind == "holding"))
        explain.add_checkpoint("Total return", sum(item.change for item in returns))
        return explain.output(cashflows=cashflows, market_returns=returns)
