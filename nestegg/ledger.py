"""Mutable account and holding state carried from month to month."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import date

from .cost_basis import CostBasisTracker, LotBasisTracker, RothBasisTracker
from .dates import parse_date
from .schema import Snapshot

TAX_TYPES = {"taxable", "traditional", "roth", "hsa"}


@dataclass(slots=True)
class CashAccountState:
    id: str
    name: str
    balance: float
    interest_rate: float


@dataclass(slots=True)
class HoldingState:
    id: str
    name: str
    investment_account_id: str
    tax_type: str
    holding_type: str
    balance: float
    return_rate: float
    return_std_dev: float
    basis: CostBasisTracker | LotBasisTracker | RothBasisTracker = field(default_factory=CostBasisTracker)

    @property
    def is_roth(self) -> bool:
        return self.tax_type == "roth"

    @property
    def cost_basis(self) -> float:
        return self.basis.total_basis

    def roth_basis(self) -> RothBasisTracker:
        if not isinstance(self.basis, RothBasisTracker):
            raise TypeError(f"holding {self.id} is not a Roth holding")
        return self.basis

    @property
    def unrealized_gain(self) -> float:
        return self.balance - self.cost_basis

    def buy_basis(self, amount: float, balance_before: float, as_of: date) -> None:
        if isinstance(self.basis, RothBasisTracker):
            self.basis.add_basis(amount, as_of)
        elif isinstance(self.basis, LotBasisTracker):
            self.basis.add_basis(amount, balance_before, as_of)
        else:
            self.basis.add_basis(amount)

    def sell_basis(self, amount: float, balance_before: float) -> float:
        """Release basis for a sale and return the realized gain."""
        if isinstance(self.basis, RothBasisTracker):
            raise TypeError(f"holding {self.id} tracks dated Roth lots")
        return self.basis.withdraw(amount, balance_before)


def empty_basis(tax_type: str, method: str = "average") -> CostBasisTracker | LotBasisTracker | RothBasisTracker:
    if tax_type == "roth":
        return RothBasisTracker()
    if tax_type == "taxable" and method in {"fifo", "lifo"}:
        return LotBasisTracker(method=method)
    return CostBasisTracker()


@dataclass(slots=True)
class YearLedger:
    ordinary_income: float = 0.0
    capital_gains: float = 0.0
    deductions: float = 0.0
    tax_exempt_income: float = 0.0
    social_security_benefits: float = 0.0
    penalties: float = 0.0
    tax_paid: float = 0.0
    earned_income: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "ordinary_income": self.ordinary_income,
            "capital_gains": self.capital_gains,
            "deductions": self.deductions,
            "tax_exempt_income": self.tax_exempt_income,
            "social_security_benefits": self.social_security_benefits,
            "penalties": self.penalties,
            "tax_paid": self.tax_paid,
            "earned_income": self.earned_income,
        }


@dataclass(slots=True)
class LedgerState:
    cash_accounts: list[CashAccountState]
    holdings: list[HoldingState]
    year_ledger: YearLedger = field(default_factory=YearLedger)
    closed_years: list[YearLedger] = field(default_factory=list)
    deferred_shortfall: float = 0.0
    unmet_spending: float = 0.0
    magi_history: dict[int, float] = field(default_factory=dict)
    prior_year_end_balances: dict[str, float] = field(default_factory=dict)
    ytd_withdrawals: dict[str, float] = field(default_factory=dict)
    contributions_by_tax_type: dict[str, float] = field(default_factory=dict)
    monthly_spending: float = 0.0
    baseline_portfolio: float | None = None
    baseline_date: date | None = None
    baseline_need: float = 0.0
    baseline_want: float = 0.0
    guyton_months_remaining: int = 0
    cost_basis_method: str = "average"

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot, start: date) -> "LedgerState":
        cash_accounts = [
            CashAccountState(
                id=account.id,
                name=account.name,
                balance=max(0.0, account.balance),
                interest_rate=account.interest_rate,
            )
            for account in snapshot.cash_accounts_in_play()
        ]

        method = snapshot.scenario.strategies.taxable_lot.cost_basis_method
        holdings: list[HoldingState] = []
        for item in snapshot.holdings_in_play():
            balance = max(0.0, item.balance)
            basis: CostBasisTracker | LotBasisTracker | RothBasisTracker
            if item.tax_type == "roth":
                basis = RothBasisTracker()
                for entry in item.cost_basis_entries:
                    basis.add_basis(entry.amount, parse_date(entry.date) or start)
                basis.cap_to_balance(balance, start)
            elif item.tax_type == "taxable" and method in {"fifo", "lifo"}:
                entries = [(parse_date(entry.date) or start, entry.amount) for entry in item.cost_basis_entries]
                basis = LotBasisTracker.seeded(method, entries, balance, start)
            else:
                total = sum(max(0.0, entry.amount) for entry in item.cost_basis_entries)
                basis = CostBasisTracker(total_basis=total)
            holdings.append(
                HoldingState(
                    id=item.id,
                    name=item.name,
                    investment_account_id=item.investment_account_id,
                    tax_type=item.tax_type,
                    holding_type=item.holding_type,
                    balance=balance,
                    return_rate=item.return_rate,
                    return_std_dev=item.return_std_dev,
                    basis=basis,
                )
            )

        state = cls(cash_accounts=cash_accounts, holdings=holdings, cost_basis_method=method)
        state.prior_year_end_balances = {holding.id: holding.balance for holding in holdings}
        return state

    def clone(self) -> "LedgerState":
        return copy.deepcopy(self)

    def total_cash(self) -> float:
        return sum(account.balance for account in self.cash_accounts)

    def total_investments(self) -> float:
        return sum(holding.balance for holding in self.holdings)

    def total_balance(self) -> float:
        return self.total_cash() + self.total_investments()

    def holding(self, holding_id: str) -> HoldingState | None:
        for holding in self.holdings:
            if holding.id == holding_id:
                return holding
        return None

    def holdings_of_type(self, tax_type: str) -> list[HoldingState]:
        """Holdings with ``tax_type``, largest balance first."""
        matches = [holding for holding in self.holdings if holding.tax_type == tax_type]
        return sorted(matches, key=lambda holding: holding.balance, reverse=True)

    def pay(self, amount: float) -> float:
        """Draw up to ``amount`` from cash accounts in order; return the paid amount."""
        if amount <= 0:
            return 0.0
        remaining = amount
        for account in self.cash_accounts:
            if remaining <= 0:
                break
            used = min(max(0.0, account.balance), remaining)
            account.balance -= used
            remaining -= used
        return amount - remaining

    def receive(self, amount: float) -> None:
        if amount <= 0:
            return
        if not self.cash_accounts:
            raise ValueError("no cash account to receive funds")
        self.cash_accounts[0].balance += amount

    def spend(self, amount: float) -> float:
        """Pay ``amount`` and defer whatever cash could not cover."""
        paid = self.pay(amount)
        self.deferred_shortfall += max(0.0, amount - paid)
        return paid

    def add_contribution(self, tax_type: str, amount: float) -> None:
        if amount <= 0:
            return
        self.contributions_by_tax_type[tax_type] = self.contributions_by_tax_type.get(tax_type, 0.0) + amount

    def start_month(self) -> None:
        self.contributions_by_tax_type = {}

    def start_year(self) -> None:
        # The year ledger itself is swapped by open_next_year so that tax
        # settlement booked after the close lands in the new year.
        self.ytd_withdrawals = {}
        self.unmet_spending = 0.0

    def open_next_year(self) -> YearLedger:
        """Open a fresh year ledger and hand back the one being closed."""
        closing = self.year_ledger
        self.year_ledger = YearLedger()
        return closing

    def close_year(self, closing: YearLedger) -> None:
        self.closed_years.append(closing)

    def snapshot_year_end_balances(self) -> None:
        self.prior_year_end_balances = {holding.id: holding.balance for holding in self.holdings}
