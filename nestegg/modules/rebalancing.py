"""Glidepath-driven rebalancing within each investment account."""

from __future__ import annotations

from ..actions import transfer
from ..explain import ExplainTracker
from ..ledger import HoldingState, LedgerState, empty_basis
from ..records import Action, ModuleOutput
from ..schema import AllocationTarget, Snapshot
from ..tax_data import HOLDING_TYPE_RETURNS
from .base import FinancialModule, MonthContext

ASSET_CLASSES = ("equity", "bonds", "real_estate", "other")

ASSET_HOLDING_TYPE = {
    "equity": "sp500",
    "bonds": "bonds",
    "real_estate": "real_estate",
    "other": "other",
}

TAX_AWARE_SELL_PRIORITY = {"traditional": 0, "hsa": 1, "roth": 2, "taxable": 3}

Weights = dict[str, float]


def asset_class(holding_type: str) -> str:
    if holding_type in {"bonds", "cash", "real_estate", "other"}:
        return holding_type
    return "equity"


def interpolate_targets(targets: list[AllocationTarget], key: float) -> Weights | None:
    """Linear interpolation between glidepath points, flat beyond either end."""
    ordered = sorted(targets, key=lambda target: target.age)
    if not ordered:
        return None

    def weights(target: AllocationTarget) -> Weights:
        return {name: getattr(target, name) for name in ASSET_CLASSES}

    if key <= ordered[0].age:
        return weights(ordered[0])
    if key >= ordered[-1].age:
        return weights(ordered[-1])
    upper_index = next(idx for idx, target in enumerate(ordered) if target.age >= key)
    lower = ordered[max(0, upper_index - 1)]
    upper = ordered[upper_index]
    ratio = (key - lower.age) / max(1.0, upper.age - lower.age)
    return {
        name: getattr(lower, name) + (getattr(upper, name) - getattr(lower, name)) * ratio
        for name in ASSET_CLASSES
    }


def normalize(weights: Weights | None) -> Weights | None:
    if weights is None:
        return None
    total = sum(max(0.0, weights[name]) for name in ASSET_CLASSES)
    if total <= 0:
        return None
    return {name: max(0.0, weights[name]) / total for name in ASSET_CLASSES}


def current_weights(holdings: list[HoldingState]) -> Weights | None:
    totals = {name: 0.0 for name in ASSET_CLASSES}
    for holding in holdings:
        totals[asset_class(holding.holding_type)] += holding.balance
    return normalize(totals)


class RebalancingModule(FinancialModule):
    module_id = "rebalancing"

    def __init__(self, snapshot: Snapshot) -> None:
        super().__init__(snapshot)
        self.baseline: Weights | None = None

    def is_due(self, context: MonthContext) -> bool:
        frequency = self.snapshot.scenario.strategies.rebalancing.frequency
        if frequency == "quarterly":
            return context.month_index % 3 == 2
        if frequency == "annual":
            return context.is_end_of_year
        return True

    def target_weights(self, holdings: list[HoldingState], context: MonthContext) -> Weights | None:
        glidepath = self.snapshot.scenario.strategies.glidepath
        if glidepath.targets:
            key = float(context.year_index) if glidepath.mode == "year" else context.age
            return normalize(interpolate_targets(glidepath.targets, key))
        if self.baseline is None:
            self.baseline = current_weights(holdings)
        return self.baseline

    def sell_order(self, holdings: list[HoldingState]) -> list[HoldingState]:
        if self.snapshot.scenario.strategies.rebalancing.tax_aware:
            return sorted(
                holdings,
                key=lambda holding: (TAX_AWARE_SELL_PRIORITY.get(holding.tax_type, 3), -holding.balance),
            )
        return sorted(holdings, key=lambda holding: holding.balance, reverse=True)

    def harvest(self, context: MonthContext, state: LedgerState) -> list[Action]:
        """Year-end sell-and-rebuy of taxable holdings.

        Losses are realized first when loss harvesting is on; gains are then
        realized, most appreciated first, until the year's capital gains
        reach the gain target.
        """
        strategies = self.snapshot.scenario.strategies
        taxable = [holding for holding in state.holdings_of_type("taxable") if holding.balance > 0]
        actions: list[Action] = []

        if strategies.taxable_lot.harvest_losses:
            for holding in taxable:
                if holding.unrealized_gain < -1e-9:
                    actions.extend(
                        transfer(state, holding, holding, holding.balance, label="Tax-loss harvest", as_of=context.current)
                    )

        target = max(strategies.withdrawal.taxable_gain_harvest_target, strategies.taxable_lot.gain_realization_target)
        room = target - state.year_ledger.capital_gains
        for holding in sorted(taxable, key=lambda holding: holding.unrealized_gain, reverse=True):
            if room <= 1e-9:
                break
            gain = holding.unrealized_gain
            if gain <= 1e-9:
                break
            amount = min(holding.balance, room * holding.balance / gain)
            sell, buy = transfer(state, holding, holding, amount, label="Gain harvest", as_of=context.current)
            actions.extend([sell, buy])
            room -= sell.capital_gains
        return actions

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        settings = self.snapshot.scenario.strategies.rebalancing
        explain.add_input("Frequency", settings.frequency)
        explain.add_input("Tax aware", settings.tax_aware)
        explain.add_input("Drift threshold", settings.drift_threshold)
        explain.add_input("Min trade", settings.min_trade_amount)

        harvested: list[Action] = []
        if context.is_end_of_year:
            harvested = self.harvest(context, state)
            explain.add_checkpoint("Harvest trades", len(harvested) // 2)
            explain.add_checkpoint("Harvested gains", sum(action.capital_gains for action in harvested))

        invested = [holding for holding in state.holdings if asset_class(holding.holding_type) != "cash"]
        target = self.target_weights(invested, context)
        if not settings.enabled or not self.is_due(context) or target is None:
            explain.add_checkpoint("Trades", 0)
            return explain.output(actions=harvested)

        totals = {name: 0.0 for name in ASSET_CLASSES}
        for holding in invested:
            totals[asset_class(holding.holding_type)] += holding.balance
        total = sum(totals.values())
        if total <= 0:
            explain.add_checkpoint("Trades", 0)
            return explain.output(actions=harvested)

        drift = max(abs(totals[name] / total - target[name]) for name in ASSET_CLASSES)
        explain.add_checkpoint("Max drift", drift)
        if drift <= settings.drift_threshold and (settings.frequency == "threshold" or settings.drift_threshold > 0):
            explain.add_checkpoint("Trades", 0)
            return explain.output(actions=harvested)

        buys = {name: 0.0 for name in ASSET_CLASSES}
        sells = {name: 0.0 for name in ASSET_CLASSES}
        for name in ASSET_CLASSES:
            delta = target[name] * total - totals[name]
            if abs(delta) < settings.min_trade_amount:
                continue
            if delta > 0:
                buys[name] = delta
            else:
                sells[name] = -delta
        if sum(buys.values()) <= 0 or sum(sells.values()) <= 0:
            explain.add_checkpoint("Trades", 0)
            return explain.output(actions=harvested)

        actions = self._trade(context, state, invested, buys, sells)
        explain.add_checkpoint("Trades", len(actions) // 2)
        return explain.output(actions=harvested + actions)

    def _trade(
        self,
        context: MonthContext,
        state: LedgerState,
        invested: list[HoldingState],
        buys: Weights,
        sells: Weights,
    ) -> list[Action]:
        references: dict[str, HoldingState] = {}
        by_account: dict[str, list[HoldingState]] = {}
        for holding in invested:
            references.setdefault(asset_class(holding.holding_type), holding)
            by_account.setdefault(holding.investment_account_id, []).append(holding)

        def account_rank(holdings: list[HoldingState]) -> tuple[int, float]:
            rank = min(TAX_AWARE_SELL_PRIORITY.get(holding.tax_type, 3) for holding in holdings)
            return rank, -sum(holding.balance for holding in holdings)

        def next_buy() -> str | None:
            best = max(ASSET_CLASSES, key=lambda name: buys[name])
            return best if buys[best] > 1e-9 else None

        actions: list[Action] = []
        for account_id, holdings in sorted(by_account.items(), key=lambda item: account_rank(item[1])):
            for name in ASSET_CLASSES:
                if sells[name] <= 1e-9:
                    continue
                sellers = [holding for holding in holdings if asset_class(holding.holding_type) == name]
                for seller in self.sell_order(sellers):
                    remaining = min(seller.balance, sells[name])
                    while remaining > 1e-9:
                        buy_class = next_buy()
                        if buy_class is None:
                            return actions
                        buyer = self._holding_for(state, holdings, account_id, buy_class, seller.tax_type, references)
                        amount = min(remaining, buys[buy_class])
                        sell, buy = transfer(state, seller, buyer, amount, label="Rebalance", as_of=context.current)
                        actions.extend([sell, buy])
                        remaining -= amount
                        sells[name] = max(0.0, sells[name] - amount)
                        buys[buy_class] = max(0.0, buys[buy_class] - amount)
        return actions

    def _holding_for(
        self,
        state: LedgerState,
        holdings: list[HoldingState],
        account_id: str,
        name: str,
        tax_type: str,
        references: dict[str, HoldingState],
    ) -> HoldingState:
        """Existing holding of this class and tax type, or a new empty one."""
        for holding in holdings:
            if asset_class(holding.holding_type) == name and holding.tax_type == tax_type:
                return holding

        reference = references.get(name)
        holding_type = reference.holding_type if reference is not None else ASSET_HOLDING_TYPE[name]
        default_rate, default_std = HOLDING_TYPE_RETURNS.get(holding_type, (0.0, 0.0))
        created = HoldingState(
            id=f"{account_id}:{name}:{tax_type}",
            name=reference.name if reference is not None else holding_type.replace("_", " ").title(),
            investment_account_id=account_id,
            tax_type=tax_type,
            holding_type=holding_type,
            balance=0.0,
            return_rate=reference.return_rate if reference is not None else default_rate,
            return_std_dev=reference.return_std_dev if reference is not None else default_std,
            basis=empty_basis(tax_type, state.cost_basis_method),
        )
        state.holdings.append(created)
        holdings.append(created)
        return created
