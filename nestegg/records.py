"""Structured records emitted by financial modules each month."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CASHFLOW_CATEGORIES = {"work", "pension", "social_security", "event", "other"}
ACTION_KINDS = {"deposit", "withdraw", "convert"}
MARKET_RETURN_KINDS = {"cash", "holding"}

Metric = tuple[str, Any]


@dataclass(slots=True)
class Cashflow:
    label: str
    category: str
    cash: float
    ordinary_income: float = 0.0
    capital_gains: float = 0.0
    deductions: float = 0.0
    tax_exempt_income: float = 0.0

    def __post_init__(self) -> None:
        if self.category not in CASHFLOW_CATEGORIES:
            raise ValueError(f"unknown cashflow category: {self.category}")


@dataclass(slots=True)
class Action:
    kind: str
    amount: float
    resolved_amount: float
    label: str
    source_holding_id: str | None = None
    target_holding_id: str | None = None
    tax_treatment: str | None = None
    from_cash: bool = False
    ordinary_income: float = 0.0
    capital_gains: float = 0.0
    penalty: float = 0.0

    def __post_init__(self) -> None:
        if self.kind not in ACTION_KINDS:
            raise ValueError(f"unknown action kind: {self.kind}")

    @property
    def cash_delta(self) -> float:
        if self.kind == "withdraw":
            return self.resolved_amount
        if self.kind == "deposit" and self.from_cash:
            return -self.resolved_amount
        return 0.0


@dataclass(slots=True)
class MarketReturn:
    kind: str
    account_id: str
    before: float
    after: float
    change: float
    rate: float

    def __post_init__(self) -> None:
        if self.kind not in MARKET_RETURN_KINDS:
            raise ValueError(f"unknown market return kind: {self.kind}")


@dataclass(slots=True)
class ModuleOutput:
    cashflows: list[Cashflow] = field(default_factory=list)
    actions: list[Action] = field(default_factory=list)
    market_returns: list[MarketReturn] = field(default_factory=list)
    inputs: list[Metric] = field(default_factory=list)
    checkpoints: list[Metric] = field(default_factory=list)

    def cash_delta(self) -> float:
        return sum(flow.cash for flow in self.cashflows) + sum(action.cash_delta for action in self.actions)
