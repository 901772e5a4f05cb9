"""Apply deposit, withdraw and convert actions to ledger state."""

from __future__ import annotations

from datetime import date

from .ledger import HoldingState, LedgerState
from .records import Action

PENALTY_AGE = 59.5


def is_penalty_age(age: float) -> bool:
    return age < PENALTY_AGE


def _withdrawal_tax(
    holding: HoldingState,
    amount: float,
    balance_before: float,
    *,
    as_of: date,
    age: float,
    penalty_rate: float,
    tax_treatment: str | None,
) -> tuple[float, float, float]:
    """Consume basis for a withdrawal and return (ordinary, gains, penalty)."""
    if holding.is_roth:
        split = holding.roth_basis().withdraw(amount, as_of)
        if tax_treatment == "tax_exempt" or not is_penalty_age(age):
            return 0.0, 0.0, 0.0
        penalized = split.unseasoned_basis + split.earnings
        return split.earnings, 0.0, penalized * penalty_rate

    realized = holding.sell_basis(amount, balance_before)
    if tax_treatment == "tax_exempt":
        return 0.0, 0.0, 0.0
    if tax_treatment == "ordinary":
        return amount, 0.0, 0.0
    if tax_treatment == "capital_gains":
        return 0.0, realized, 0.0

    if holding.tax_type == "taxable":
        return 0.0, realized, 0.0
    if holding.tax_type == "traditional":
        penalty = amount * penalty_rate if is_penalty_age(age) else 0.0
        return amount, 0.0, penalty
    return 0.0, 0.0, 0.0


def withdraw(
    state: LedgerState,
    holding: HoldingState,
    amount: float,
    *,
    label: str,
    as_of: date,
    age: float,
    penalty_rate: float = 0.0,
    tax_treatment: str | None = None,
) -> Action:
    """Move up to ``amount`` from ``holding`` into cash and book its tax character."""
    resolved = max(0.0, min(amount, holding.balance))
    ordinary = gains = penalty = 0.0
    if resolved > 0:
        balance_before = holding.balance
        holding.balance -= resolved
        ordinary, gains, penalty = _withdrawal_tax(
            holding,
            resolved,
            balance_before,
            as_of=as_of,
            age=age,
            penalty_rate=penalty_rate,
            tax_treatment=tax_treatment,
        )
        if holding.is_roth:
            holding.roth_basis().cap_to_balance(holding.balance, as_of)
        ledger = state.year_ledger
        ledger.ordinary_income += ordinary
        ledger.capital_gains += gains
        ledger.penalties += penalty
        state.ytd_withdrawals[holding.id] = state.ytd_withdrawals.get(holding.id, 0.0) + resolved
        state.receive(resolved)

    return Action(
        kind="withdraw",
        amount=amount,
        resolved_amount=resolved,
        label=label,
        source_holding_id=holding.id,
        tax_treatment=tax_treatment,
        ordinary_income=ordinary,
        capital_gains=gains,
        penalty=penalty,
    )


def deposit(
    state: LedgerState,
    holding: HoldingState,
    amount: float,
    *,
    label: str,
    as_of: date,
    from_cash: bool = True,
    contribution: bool = True,
) -> Action:
    """Add to ``holding``; cash-funded deposits are clamped to available cash."""
    requested = max(0.0, amount)
    resolved = state.pay(requested) if from_cash else requested
    if resolved > 0:
        balance_before = holding.balance
        holding.balance += resolved
        holding.buy_basis(resolved, balance_before, as_of)
        if contribution:
            state.add_contribution(holding.tax_type, resolved)

    return Action(
        kind="deposit",
        amount=amount,
        resolved_amount=resolved,
        label=label,
        target_holding_id=holding.id,
        from_cash=from_cash,
    )


def convert(
    state: LedgerState,
    source: HoldingState,
    target: HoldingState,
    amount: float,
    *,
    label: str,
    as_of: date,
) -> Action:
    """Roth conversion: ordinary income now, a fresh unseasoned Roth lot."""
    resolved = max(0.0, min(amount, source.balance))
    if resolved > 0:
        balance_before = source.balance
        source.balance -= resolved
        source.sell_basis(resolved, balance_before)
        target.balance += resolved
        target.roth_basis().add_basis(resolved, as_of)
        state.year_ledger.ordinary_income += resolved

    return Action(
        kind="convert",
        amount=amount,
        resolved_amount=resolved,
        label=label,
        source_holding_id=source.id,
        target_holding_id=target.id,
        tax_treatment="ordinary",
        ordinary_income=resolved,
    )


def transfer(
    state: LedgerState,
    source: HoldingState,
    target: HoldingState,
    amount: float,
    *,
    label: str,
    as_of: date,
) -> tuple[Action, Action]:
    """Sell ``source`` and buy ``target`` in the same account and tax type.

    Recorded as a withdraw/deposit pair whose cash movements cancel. Only
    taxable sales realize gains; other tax types carry basis across. Selling
    and rebuying the same taxable holding realizes its gain or loss and
    resets basis to market value.
    """
    resolved = max(0.0, min(amount, source.balance))
    gains = 0.0
    if resolved > 0:
        balance_before = source.balance
        source.balance -= resolved
        if source.is_roth:
            target.balance += resolved
            for lot in source.roth_basis().take(resolved):
                target.roth_basis().add_basis(lot.amount, lot.opened)
            source.roth_basis().cap_to_balance(source.balance, as_of)
        else:
            realized = source.sell_basis(resolved, balance_before)
            target_before = target.balance
            target.balance += resolved
            if source.tax_type == "taxable":
                gains = realized
                target.buy_basis(resolved, target_before, as_of)
                state.year_ledger.capital_gains += gains
            else:
                target.buy_basis(resolved - realized, target_before, as_of)

    sell = Action(
        kind="withdraw",
        amount=amount,
        resolved_amount=resolved,
        label=label,
        source_holding_id=source.id,
        target_holding_id=target.id,
        capital_gains=gains,
    )
    buy = Action(
        kind="deposit",
        amount=amount,
        resolved_amount=resolved,
        label=label,
        source_holding_id=source.id,
        target_holding_id=target.id,
        from_cash=True,
    )
    return sell, buy
