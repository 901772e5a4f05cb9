"""Cost basis tracking: average cost or priced lots for most holdings, dated lots for Roth."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from .dates import months_between

ROTH_SEASONING_MONTHS = 60


@dataclass(slots=True)
class CostBasisTracker:
    total_basis: float = 0.0

    def add_basis(self, amount: float) -> None:
        if amount <= 0:
            return
        self.total_basis += amount

    def withdraw(self, amount: float, balance_before: float) -> float:
        """Apply a withdrawal and return realized gain (negative for a loss)."""
        if amount <= 0 or balance_before <= 0:
            return 0.0

        basis_ratio = self.total_basis / balance_before
        basis_reduction = min(self.total_basis, amount * basis_ratio)
        self.total_basis = max(0.0, self.total_basis - basis_reduction)
        return amount - basis_reduction


@dataclass(slots=True)
class PricedLot:
    opened: date
    units: float
    basis: float


@dataclass(slots=True)
class LotBasisTracker:
    """Unit-priced lots sold first-in-first-out or last-in-first-out.

    Market returns move the balance but never the unit count, so the unit
    price is always ``balance / units``.
    """

    method: str = "fifo"
    lots: list[PricedLot] = field(default_factory=list)

    @classmethod
    def seeded(cls, method: str, entries: list[tuple[date, float]], balance: float, opened: date) -> "LotBasisTracker":
        """Spread ``balance`` over the opening basis entries at a unit price of one."""
        tracker = cls(method=method)
        total = sum(max(0.0, amount) for _, amount in entries)
        if balance <= 0:
            return tracker
        if total <= 0:
            tracker.lots.append(PricedLot(opened=opened, units=balance, basis=0.0))
            return tracker
        for lot_date, amount in sorted(entries, key=lambda item: item[0]):
            if amount <= 0:
                continue
            tracker.lots.append(PricedLot(opened=lot_date, units=balance * amount / total, basis=amount))
        return tracker

    @property
    def total_basis(self) -> float:
        return sum(lot.basis for lot in self.lots)

    @property
    def total_units(self) -> float:
        return sum(lot.units for lot in self.lots)

    def price(self, balance: float) -> float:
        units = self.total_units
        if units <= 1e-12 or balance <= 0:
            return 1.0
        return balance / units

    def add_basis(self, amount: float, balance_before: float, opened: date) -> None:
        if amount <= 0:
            return
        self.lots.append(PricedLot(opened=opened, units=amount / self.price(balance_before), basis=amount))

    def withdraw(self, amount: float, balance_before: float) -> float:
        """Sell ``amount`` worth of units in lot order and return the realized gain."""
        if amount <= 0 or balance_before <= 0:
            return 0.0

        remaining = min(amount / self.price(balance_before), self.total_units)
        ordered = self.lots if self.method == "fifo" else list(reversed(self.lots))
        released = 0.0
        for lot in ordered:
            if remaining <= 1e-12:
                break
            used = min(lot.units, remaining)
            part = lot.basis * used / lot.units
            lot.units -= used
            lot.basis -= part
            remaining -= used
            released += part
        self.lots = [lot for lot in self.lots if lot.units > 1e-12]
        return amount - released


@dataclass(slots=True)
class BasisLot:
    opened: date
    amount: float


@dataclass(slots=True)
class RothWithdrawal:
    seasoned_basis: float
    unseasoned_basis: float
    earnings: float


@dataclass(slots=True)
class RothBasisTracker:
    lots: list[BasisLot] = field(default_factory=list)

    @property
    def total_basis(self) -> float:
        return sum(lot.amount for lot in self.lots)

    def add_basis(self, amount: float, opened: date) -> None:
        if amount <= 0:
            return
        self.lots.append(BasisLot(opened=opened, amount=amount))

    def is_seasoned(self, lot: BasisLot, as_of: date) -> bool:
        return months_between(lot.opened, as_of) >= ROTH_SEASONING_MONTHS

    def seasoned(self, as_of: date) -> float:
        return sum(lot.amount for lot in self.lots if self.is_seasoned(lot, as_of))

    def unseasoned(self, as_of: date) -> float:
        return sum(lot.amount for lot in self.lots if not self.is_seasoned(lot, as_of))

    def take(self, amount: float) -> list[BasisLot]:
        """Remove up to ``amount`` of basis oldest-first, keeping lot dates."""
        remaining = max(0.0, amount)
        taken: list[BasisLot] = []
        for lot in sorted(self.lots, key=lambda item: item.opened):
            if remaining <= 0:
                break
            used = min(lot.amount, remaining)
            lot.amount -= used
            remaining -= used
            taken.append(BasisLot(opened=lot.opened, amount=used))
        self.lots = [lot for lot in self.lots if lot.amount > 1e-9]
        return taken

    def withdraw(self, amount: float, as_of: date) -> RothWithdrawal:
        """Consume basis oldest-first; anything beyond basis is earnings."""
        taken = self.take(amount)
        seasoned = sum(lot.amount for lot in taken if self.is_seasoned(lot, as_of))
        unseasoned = sum(lot.amount for lot in taken) - seasoned
        earnings = max(0.0, amount - seasoned - unseasoned)
        return RothWithdrawal(seasoned_basis=seasoned, unseasoned_basis=unseasoned, earnings=earnings)

    def cap_to_balance(self, balance: float, as_of: date) -> None:
        """Trim unseasoned lots, then the newest, until basis fits ``balance``."""
        excess = self.total_basis - max(0.0, balance)
        if excess <= 1e-9:
            return
        order = sorted(
            self.lots,
            key=lambda item: (self.is_seasoned(item, as_of), -item.opened.toordinal()),
        )
        for lot in order:
            if excess <= 0:
                break
            cut = min(lot.amount, excess)
            lot.amount -= cut
            excess -= cut
        self.lots = [lot for lot in self.lots if lot.amount > 1e-9]
