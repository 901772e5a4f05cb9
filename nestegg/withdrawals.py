"""Withdrawal ordering across holdings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from .actions import is_penalty_age, withdraw
from .ledger import HoldingState, LedgerState
from .records import Action
from .schema import EarlyRetirementStrategy, ScenarioStrategies

DEFAULT_ORDER = ["traditional", "roth", "taxable"]

REFILL_ORDERS: dict[str, list[str]] = {
    "tax_deferred_first": ["traditional", "taxable", "roth", "hsa"],
    "taxable_first": ["taxable", "traditional", "roth", "hsa"],
}


@dataclass(slots=True)
class WithdrawalSource:
    holding: HoldingState
    basis_only: bool = False
    penalty_free: bool = False

    def available(self, as_of: date) -> float:
        if self.basis_only:
            return min(self.holding.balance, self.holding.roth_basis().seasoned(as_of))
        return max(0.0, self.holding.balance)


def resolve_order(refill_priority: str | None, withdrawal_order: list[str]) -> list[str]:
    if refill_priority in REFILL_ORDERS:
        return list(REFILL_ORDERS[refill_priority])
    return list(withdrawal_order) or list(DEFAULT_ORDER)


def harvest_preference(
    state: LedgerState,
    order: list[str],
    strategies: ScenarioStrategies,
) -> tuple[list[str], str | None]:
    """Order and taxable-lot preference for this year's capital gains position.

    Below the gain target taxable holdings move to the front and the most
    appreciated sell first. Otherwise, with loss harvesting on, holdings
    sitting on losses sell first.
    """
    target = max(
        strategies.withdrawal.taxable_gain_harvest_target,
        strategies.taxable_lot.gain_realization_target,
    )
    if target > 0 and state.year_ledger.capital_gains < target:
        return ["taxable", *[tax_type for tax_type in order if tax_type != "taxable"]], "gains_first"
    if strategies.taxable_lot.harvest_losses:
        return list(order), "losses_first"
    return list(order), None


def _holdings_for(state: LedgerState, tax_type: str, taxable_preference: str | None) -> list[HoldingState]:
    holdings = state.holdings_of_type(tax_type)
    if tax_type != "taxable" or taxable_preference is None:
        return holdings
    return sorted(
        holdings,
        key=lambda holding: holding.unrealized_gain,
        reverse=taxable_preference == "gains_first",
    )


def _ordered_sources(
    state: LedgerState,
    order: list[str],
    roth_basis_first: bool,
    *,
    use_72t: bool = False,
    taxable_preference: str | None = None,
) -> list[WithdrawalSource]:
    sources: list[WithdrawalSource] = []
    if roth_basis_first and "roth_basis" not in order:
        order = ["roth_basis", *order]

    def source_for(holding: HoldingState) -> WithdrawalSource:
        return WithdrawalSource(holding, penalty_free=use_72t and holding.tax_type == "traditional")

    seen: set[str] = set()
    for tax_type in order:
        if tax_type == "roth_basis":
            sources.extend(WithdrawalSource(holding, basis_only=True) for holding in state.holdings_of_type("roth"))
            continue
        for holding in _holdings_for(state, tax_type, taxable_preference):
            if holding.id not in seen:
                seen.add(holding.id)
                sources.append(source_for(holding))

    leftovers = sorted(
        (holding for holding in state.holdings if holding.id not in seen),
        key=lambda holding: holding.balance,
        reverse=True,
    )
    sources.extend(source_for(holding) for holding in leftovers)
    return sources


def _is_penalty_eligible(source: WithdrawalSource, age: float) -> bool:
    """True if this source would incur an early withdrawal penalty."""
    if not is_penalty_age(age) or source.basis_only or source.penalty_free:
        return False
    return source.holding.tax_type in {"traditional", "roth"}


def _withdraw_from_sources(
    *,
    shortfall: float,
    sources: list[WithdrawalSource],
    state: LedgerState,
    actions: list[Action],
    label: str,
    as_of: date,
    age: float,
    penalty_rate: float,
    skip_penalty: bool,
) -> float:
    """Withdraw from sources in order. Returns the remaining shortfall."""
    for source in sources:
        if shortfall <= 1e-9:
            break
        if skip_penalty and _is_penalty_eligible(source, age):
            continue

        available = source.available(as_of)
        if available <= 0:
            continue

        action = withdraw(
            state,
            source.holding,
            min(available, shortfall),
            label=label,
            as_of=as_of,
            age=age,
            penalty_rate=0.0 if source.penalty_free else penalty_rate,
        )
        actions.append(action)
        shortfall -= action.resolved_amount
    return shortfall


def _withdraw_pro_rata(
    *,
    shortfall: float,
    sources: list[WithdrawalSource],
    state: LedgerState,
    actions: list[Action],
    label: str,
    as_of: date,
    age: float,
    penalty_rate: float,
    skip_penalty: bool,
) -> float:
    eligible = [
        source
        for source in sources
        if not source.basis_only and not (skip_penalty and _is_penalty_eligible(source, age))
    ]
    total = sum(source.available(as_of) for source in eligible)
    if total <= 0:
        return shortfall

    target = min(shortfall, total)
    for source in eligible:
        share = target * source.available(as_of) / total
        if share <= 0:
            continue
        action = withdraw(
            state,
            source.holding,
            share,
            label=label,
            as_of=as_of,
            age=age,
            penalty_rate=0.0 if source.penalty_free else penalty_rate,
        )
        actions.append(action)
        shortfall -= action.resolved_amount
    return shortfall


def cover_shortfall(
    *,
    shortfall: float,
    state: LedgerState,
    order: list[str],
    as_of: date,
    age: float,
    early: EarlyRetirementStrategy,
    avoid_early_penalty: bool = True,
    pro_rata: bool = False,
    label: str = "Withdrawal",
    taxable_preference: str | None = None,
) -> tuple[float, list[Action]]:
    """Raise ``shortfall`` in cash by withdrawing from holdings.

    Uses a two-pass approach below the penalty age: first from sources that
    carry no early-withdrawal penalty, then from penalized ones as a last
    resort. Without ``allow_penalty`` the second pass only runs when nothing
    unpenalized was held at all.

    ``early.use_72t`` treats traditional withdrawals as penalty free.
    ``taxable_preference`` of ``"gains_first"`` or ``"losses_first"`` orders
    taxable holdings by unrealized gain.

    Returns the remaining shortfall and the withdraw actions taken.
    """
    if shortfall <= 0:
        return 0.0, []

    actions: list[Action] = []
    sources = _ordered_sources(
        state,
        order,
        early.use_roth_basis_first and is_penalty_age(age),
        use_72t=early.use_72t,
        taxable_preference=taxable_preference,
    )
    step = _withdraw_pro_rata if pro_rata else _withdraw_from_sources
    common = dict(
        state=state,
        actions=actions,
        label=label,
        as_of=as_of,
        age=age,
        penalty_rate=early.penalty_rate,
    )

    if not is_penalty_age(age):
        shortfall = step(shortfall=shortfall, sources=sources, skip_penalty=False, **common)
        return max(0.0, shortfall), actions

    unpenalized_held = any(
        source.available(as_of) > 0 for source in sources if not _is_penalty_eligible(source, age)
    )
    penalty_allowed = early.allow_penalty or not unpenalized_held

    if avoid_early_penalty or not penalty_allowed:
        shortfall = step(shortfall=shortfall, sources=sources, skip_penalty=True, **common)
        if shortfall > 1e-9 and penalty_allowed:
            shortfall = step(shortfall=shortfall, sources=sources, skip_penalty=False, **common)
    else:
        shortfall = step(shortfall=shortfall, sources=sources, skip_penalty=False, **common)

    return max(0.0, shortfall), actions


def estimate_traditional_share(
    amount: float,
    *,
    state: LedgerState,
    order: list[str],
    as_of: date,
    age: float,
    early: EarlyRetirementStrategy,
) -> float:
    """How much of ``amount`` the withdrawal order would take from traditional holdings.

    Read-only: walks the same sources ``cover_shortfall`` would use without
    moving any money.
    """
    if amount <= 0:
        return 0.0
    remaining = amount
    traditional = 0.0
    sources = _ordered_sources(state, order, early.use_roth_basis_first and is_penalty_age(age))
    for source in sources:
        if remaining <= 1e-9:
            break
        used = min(remaining, source.available(as_of))
        remaining -= used
        if source.holding.tax_type == "traditional" and not source.basis_only:
            traditional += used
    return traditional
