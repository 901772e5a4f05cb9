"""Snapshot schema dataclasses and JSON loading."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from pathlib import Path
from typing import Any


class SchemaError(ValueError):
    """Raised when raw JSON cannot be parsed into schema objects."""


class InputError(ValueError):
    """Raised when a parsed snapshot cannot be simulated as given."""


class UnresolvedReferenceError(InputError):
    """Raised when an identifier in the snapshot points at nothing."""


def _expect_dict(value: Any, path: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise SchemaError(f"{path}: expected object")
    return value


def _expect_list(value: Any, path: str) -> list[Any]:
    if not isinstance(value, list):
        raise SchemaError(f"{path}: expected array")
    return value


def _require(data: dict[str, Any], key: str, path: str) -> Any:
    if key not in data:
        raise SchemaError(f"{path}.{key}: missing required field")
    return data[key]


def _optional(data: dict[str, Any], key: str, default: Any = None) -> Any:
    value = data.get(key, default)
    return default if value is None else value


def _number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaError(f"{path}: expected number")
    return float(value)


def _items(data: dict[str, Any], key: str, path: str, parser: Any, required: bool = False) -> list[Any]:
    raw = _require(data, key, path) if required else _optional(data, key, [])
    return [
        parser(_expect_dict(item, f"{key}[{idx}]"), f"{key}[{idx}]")
        for idx, item in enumerate(_expect_list(raw, key))
    ]


def _sub(data: dict[str, Any], key: str, path: str, parser: Any) -> Any:
    sub_path = f"{path}.{key}"
    return parser(_expect_dict(_optional(data, key, {}), sub_path), sub_path)


@dataclass(slots=True)
class Person:
    id: str
    name: str
    date_of_birth: str
    life_expectancy: float = 95.0

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "Person":
        return cls(
            id=_require(data, "id", path),
            name=_require(data, "name", path),
            date_of_birth=_require(data, "date_of_birth", path),
            life_expectancy=float(_optional(data, "life_expectancy", 95.0)),
        )


@dataclass(slots=True)
class PersonStrategy:
    id: str
    person_id: str
    future_work_strategy_id: str | None
    social_security_strategy_id: str | None

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "PersonStrategy":
        return cls(
            id=_require(data, "id", path),
            person_id=_require(data, "person_id", path),
            future_work_strategy_id=_optional(data, "future_work_strategy_id"),
            social_security_strategy_id=_optional(data, "social_security_strategy_id"),
        )


@dataclass(slots=True)
class SocialSecurityStrategy:
    id: str
    person_id: str
    start_date: str

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "SocialSecurityStrategy":
        return cls(
            id=_require(data, "id", path),
            person_id=_require(data, "person_id", path),
            start_date=_require(data, "start_date", path),
        )


@dataclass(slots=True)
class SocialSecurityEarnings:
    person_id: str
    year: int
    amount: float
    months: int = 12

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "SocialSecurityEarnings":
        return cls(
            person_id=_require(data, "person_id", path),
            year=int(_require(data, "year", path)),
            amount=_number(_require(data, "amount", path), f"{path}.amount"),
            months=int(_optional(data, "months", 12)),
        )


@dataclass(slots=True)
class FutureWorkStrategy:
    id: str
    name: str
    person_id: str

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "FutureWorkStrategy":
        return cls(
            id=_require(data, "id", path),
            name=_optional(data, "name", ""),
            person_id=_require(data, "person_id", path),
        )


@dataclass(slots=True)
class FutureWorkPeriod:
    id: str
    name: str
    future_work_strategy_id: str
    salary: float
    bonus: float
    start_date: str
    end_date: str
    match_pct_cap: float
    match_ratio: float
    holding_id: str | None
    includes_health_insurance: bool

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "FutureWorkPeriod":
        return cls(
            id=_require(data, "id", path),
            name=_optional(data, "name", "Work"),
            future_work_strategy_id=_require(data, "future_work_strategy_id", path),
            salary=_number(_require(data, "salary", path), f"{path}.salary"),
            bonus=float(_optional(data, "bonus", 0.0)),
            start_date=_optional(data, "start_date", ""),
            end_date=_optional(data, "end_date", ""),
            match_pct_cap=float(_optional(data, "match_pct_cap", 0.0)),
            match_ratio=float(_optional(data, "match_ratio", 0.0)),
            holding_id=_optional(data, "holding_id"),
            includes_health_insurance=bool(_optional(data, "includes_health_insurance", False)),
        )


@dataclass(slots=True)
class SpendingStrategy:
    id: str
    name: str

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "SpendingStrategy":
        return cls(id=_require(data, "id", path), name=_optional(data, "name", ""))


@dataclass(slots=True)
class SpendingLineItem:
    id: str
    name: str
    spending_strategy_id: str
    category: str
    need_amount: float
    want_amount: float
    start_date: str
    end_date: str
    is_pre_tax: bool
    is_charitable: bool
    is_work: bool
    inflation_type: str

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "SpendingLineItem":
        return cls(
            id=_require(data, "id", path),
            name=_require(data, "name", path),
            spending_strategy_id=_require(data, "spending_strategy_id", path),
            category=_optional(data, "category", "other"),
            need_amount=float(_optional(data, "need_amount", 0.0)),
            want_amount=float(_optional(data, "want_amount", 0.0)),
            start_date=_optional(data, "start_date", ""),
            end_date=_optional(data, "end_date", ""),
            is_pre_tax=bool(_optional(data, "is_pre_tax", False)),
            is_charitable=bool(_optional(data, "is_charitable", False)),
            is_work=bool(_optional(data, "is_work", False)),
            inflation_type=_optional(data, "inflation_type", "cpi"),
        )


@dataclass(slots=True)
class CashAccount:
    id: str
    name: str
    balance: float
    interest_rate: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "CashAccount":
        return cls(
            id=_require(data, "id", path),
            name=_optional(data, "name", ""),
            balance=_number(_require(data, "balance", path), f"{path}.balance"),
            interest_rate=float(_optional(data, "interest_rate", 0.0)),
        )


@dataclass(slots=True)
class InvestmentAccount:
    id: str
    name: str

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "InvestmentAccount":
        return cls(id=_require(data, "id", path), name=_optional(data, "name", ""))


@dataclass(slots=True)
class BasisEntry:
    date: str
    amount: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "BasisEntry":
        return cls(
            date=_require(data, "date", path),
            amount=_number(_require(data, "amount", path), f"{path}.amount"),
        )


@dataclass(slots=True)
class Holding:
    id: str
    name: str
    investment_account_id: str
    tax_type: str
    holding_type: str
    balance: float
    cost_basis_entries: list[BasisEntry]
    return_rate: float
    return_std_dev: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "Holding":
        entries = [
            BasisEntry.from_dict(_expect_dict(item, f"{path}.cost_basis_entries[{idx}]"), f"{path}.cost_basis_entries[{idx}]")
            for idx, item in enumerate(_expect_list(_optional(data, "cost_basis_entries", []), f"{path}.cost_basis_entries"))
        ]
        return cls(
            id=_require(data, "id", path),
            name=_optional(data, "name", ""),
            investment_account_id=_require(data, "investment_account_id", path),
            tax_type=_require(data, "tax_type", path),
            holding_type=_optional(data, "holding_type", "sp500"),
            balance=_number(_require(data, "balance", path), f"{path}.balance"),
            cost_basis_entries=entries,
            return_rate=float(_optional(data, "return_rate", 0.0)),
            return_std_dev=float(_optional(data, "return_std_dev", 0.0)),
        )


@dataclass(slots=True)
class TaxBracket:
    up_to: float | None
    rate: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "TaxBracket":
        up_to = _optional(data, "up_to")
        return cls(
            up_to=None if up_to is None else _number(up_to, f"{path}.up_to"),
            rate=_number(_require(data, "rate", path), f"{path}.rate"),
        )


def _brackets(data: dict[str, Any], key: str, path: str) -> list[TaxBracket]:
    return [
        TaxBracket.from_dict(_expect_dict(item, f"{path}.{key}[{idx}]"), f"{path}.{key}[{idx}]")
        for idx, item in enumerate(_expect_list(_require(data, key, path), f"{path}.{key}"))
    ]


@dataclass(slots=True)
class TaxPolicy:
    year: int
    filing_status: str
    standard_deduction: float
    ordinary_brackets: list[TaxBracket]
    capital_gains_brackets: list[TaxBracket]

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "TaxPolicy":
        return cls(
            year=int(_require(data, "year", path)),
            filing_status=_require(data, "filing_status", path),
            standard_deduction=_number(_require(data, "standard_deduction", path), f"{path}.standard_deduction"),
            ordinary_brackets=_brackets(data, "ordinary_brackets", path),
            capital_gains_brackets=_brackets(data, "capital_gains_brackets", path),
        )


@dataclass(slots=True)
class StateTaxPolicy:
    state_code: str
    year: int
    filing_status: str
    standard_deduction: float
    brackets: list[TaxBracket]

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "StateTaxPolicy":
        return cls(
            state_code=str(_require(data, "state_code", path)).lower(),
            year=int(_require(data, "year", path)),
            filing_status=_require(data, "filing_status", path),
            standard_deduction=float(_optional(data, "standard_deduction", 0.0)),
            brackets=_brackets(data, "brackets", path),
        )


@dataclass(slots=True)
class ProvisionalIncomeBracket:
    year: int
    filing_status: str
    base_amount: float
    adjusted_base_amount: float
    tier1_rate: float = 0.5
    tier2_rate: float = 0.85

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "ProvisionalIncomeBracket":
        return cls(
            year=int(_require(data, "year", path)),
            filing_status=_require(data, "filing_status", path),
            base_amount=_number(_require(data, "base_amount", path), f"{path}.base_amount"),
            adjusted_base_amount=_number(_require(data, "adjusted_base_amount", path), f"{path}.adjusted_base_amount"),
            tier1_rate=float(_optional(data, "tier1_rate", 0.5)),
            tier2_rate=float(_optional(data, "tier2_rate", 0.85)),
        )


@dataclass(slots=True)
class IrmaaTier:
    max_magi: float | None
    part_b_monthly: float
    part_d_monthly: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "IrmaaTier":
        max_magi = _optional(data, "max_magi")
        return cls(
            max_magi=None if max_magi is None else _number(max_magi, f"{path}.max_magi"),
            part_b_monthly=float(_optional(data, "part_b_monthly", 0.0)),
            part_d_monthly=float(_optional(data, "part_d_monthly", 0.0)),
        )


@dataclass(slots=True)
class IrmaaTable:
    year: int
    filing_status: str
    lookback_years: int
    tiers: list[IrmaaTier]

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "IrmaaTable":
        return cls(
            year=int(_require(data, "year", path)),
            filing_status=_require(data, "filing_status", path),
            lookback_years=int(_optional(data, "lookback_years", 2)),
            tiers=[
                IrmaaTier.from_dict(_expect_dict(item, f"{path}.tiers[{idx}]"), f"{path}.tiers[{idx}]")
                for idx, item in enumerate(_expect_list(_require(data, "tiers", path), f"{path}.tiers"))
            ],
        )


@dataclass(slots=True)
class RmdTableEntry:
    age: int
    divisor: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "RmdTableEntry":
        return cls(
            age=int(_require(data, "age", path)),
            divisor=_number(_require(data, "divisor", path), f"{path}.divisor"),
        )


@dataclass(slots=True)
class WageIndex:
    year: int
    index: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "WageIndex":
        return cls(year=int(_require(data, "year", path)), index=_number(_require(data, "index", path), f"{path}.index"))


@dataclass(slots=True)
class BendPoints:
    year: int
    first: float
    second: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "BendPoints":
        return cls(
            year=int(_require(data, "year", path)),
            first=_number(_require(data, "first", path), f"{path}.first"),
            second=_number(_require(data, "second", path), f"{path}.second"),
        )


@dataclass(slots=True)
class RetirementAdjustment:
    birth_year_start: int
    birth_year_end: int
    normal_retirement_age_months: int
    delayed_retirement_credit_per_year: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "RetirementAdjustment":
        return cls(
            birth_year_start=int(_require(data, "birth_year_start", path)),
            birth_year_end=int(_require(data, "birth_year_end", path)),
            normal_retirement_age_months=int(_require(data, "normal_retirement_age_months", path)),
            delayed_retirement_credit_per_year=float(_optional(data, "delayed_retirement_credit_per_year", 0.08)),
        )


@dataclass(slots=True)
class HistoricalReturn:
    year: int
    equity: float
    bonds: float
    real_estate: float
    other: float | None

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "HistoricalReturn":
        equity = _number(_require(data, "equity", path), f"{path}.equity")
        return cls(
            year=int(_require(data, "year", path)),
            equity=equity,
            bonds=float(_optional(data, "bonds", 0.0)),
            real_estate=float(_optional(data, "real_estate", equity)),
            other=_optional(data, "other", None),
        )


@dataclass(slots=True)
class MinBalancePoint:
    year_index: int
    date: str
    balance: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "MinBalancePoint":
        return cls(
            year_index=int(_require(data, "year_index", path)),
            date=_optional(data, "date", ""),
            balance=_number(_require(data, "balance", path), f"{path}.balance"),
        )


@dataclass(slots=True)
class InflationDefault:
    type: str
    rate: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "InflationDefault":
        return cls(type=_require(data, "type", path), rate=_number(_require(data, "rate", path), f"{path}.rate"))


@dataclass(slots=True)
class ReturnModelStrategy:
    mode: str = "deterministic"
    sequence_model: str = "independent"
    correlation_model: str = "none"
    volatility_scale: float = 1.0
    seed: int | None = None
    historical_start_year: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "ReturnModelStrategy":
        seed = _optional(data, "seed")
        start_year = _optional(data, "historical_start_year")
        return cls(
            mode=_optional(data, "mode", "deterministic"),
            sequence_model=_optional(data, "sequence_model", "independent"),
            correlation_model=_optional(data, "correlation_model", "none"),
            volatility_scale=float(_optional(data, "volatility_scale", 1.0)),
            seed=None if seed is None else int(seed),
            historical_start_year=None if start_year is None else int(start_year),
        )


@dataclass(slots=True)
class AllocationTarget:
    age: float
    equity: float
    bonds: float
    real_estate: float
    other: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "AllocationTarget":
        return cls(
            age=_number(_require(data, "age", path), f"{path}.age"),
            equity=float(_optional(data, "equity", 0.0)),
            bonds=float(_optional(data, "bonds", 0.0)),
            real_estate=float(_optional(data, "real_estate", 0.0)),
            other=float(_optional(data, "other", 0.0)),
        )


@dataclass(slots=True)
class GlidepathStrategy:
    mode: str = "age"
    targets: list[AllocationTarget] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "GlidepathStrategy":
        return cls(
            mode=_optional(data, "mode", "age"),
            targets=[
                AllocationTarget.from_dict(_expect_dict(item, f"{path}.targets[{idx}]"), f"{path}.targets[{idx}]")
                for idx, item in enumerate(_expect_list(_optional(data, "targets", []), f"{path}.targets"))
            ],
        )


@dataclass(slots=True)
class RebalancingStrategy:
    enabled: bool = True
    frequency: str = "annual"
    drift_threshold: float = 0.05
    tax_aware: bool = False
    min_trade_amount: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "RebalancingStrategy":
        return cls(
            enabled=bool(_optional(data, "enabled", True)),
            frequency=_optional(data, "frequency", "annual"),
            drift_threshold=float(_optional(data, "drift_threshold", 0.05)),
            tax_aware=bool(_optional(data, "tax_aware", False)),
            min_trade_amount=float(_optional(data, "min_trade_amount", 0.0)),
        )


@dataclass(slots=True)
class CashBufferStrategy:
    target_months: float = 12.0
    min_months: float = 6.0
    max_months: float = 24.0
    refill_priority: str | None = "taxable_first"

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "CashBufferStrategy":
        return cls(
            target_months=float(_optional(data, "target_months", 12.0)),
            min_months=float(_optional(data, "min_months", 6.0)),
            max_months=float(_optional(data, "max_months", 24.0)),
            refill_priority=data.get("refill_priority", "taxable_first"),
        )


@dataclass(slots=True)
class HealthPoint:
    health: float
    factor: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "HealthPoint":
        return cls(
            health=_number(_require(data, "health", path), f"{path}.health"),
            factor=_number(_require(data, "factor", path), f"{path}.factor"),
        )


def _health_points(data: dict[str, Any], key: str, path: str) -> list[HealthPoint]:
    return [
        HealthPoint.from_dict(_expect_dict(item, f"{path}.{key}[{idx}]"), f"{path}.{key}[{idx}]")
        for idx, item in enumerate(_expect_list(_optional(data, key, []), f"{path}.{key}"))
    ]


@dataclass(slots=True)
class WithdrawalStrategy:
    order: list[str] = field(default_factory=lambda: ["taxable", "traditional", "roth", "hsa"])
    use_cash_first: bool = True
    avoid_early_penalty: bool = True
    guardrail_pct: float = 0.0
    guardrail_strategy: str = "legacy"
    guardrail_withdrawal_rate_limit: float = 0.0
    guardrail_health_points: list[HealthPoint] = field(default_factory=list)
    guardrail_min_balance_health_points: list[HealthPoint] = field(default_factory=list)
    guardrail_guyton_trigger_rate_increase: float = 0.0
    guardrail_guyton_applied_pct: float = 0.0
    guardrail_guyton_duration_months: int = 0
    taxable_gain_harvest_target: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "WithdrawalStrategy":
        return cls(
            order=list(_expect_list(_optional(data, "order", ["taxable", "traditional", "roth", "hsa"]), f"{path}.order")),
            use_cash_first=bool(_optional(data, "use_cash_first", True)),
            avoid_early_penalty=bool(_optional(data, "avoid_early_penalty", True)),
            guardrail_pct=float(_optional(data, "guardrail_pct", 0.0)),
            guardrail_strategy=_optional(data, "guardrail_strategy", "legacy"),
            guardrail_withdrawal_rate_limit=float(_optional(data, "guardrail_withdrawal_rate_limit", 0.0)),
            guardrail_health_points=_health_points(data, "guardrail_health_points", path),
            guardrail_min_balance_health_points=_health_points(data, "guardrail_min_balance_health_points", path),
            guardrail_guyton_trigger_rate_increase=float(_optional(data, "guardrail_guyton_trigger_rate_increase", 0.0)),
            guardrail_guyton_applied_pct=float(_optional(data, "guardrail_guyton_applied_pct", 0.0)),
            guardrail_guyton_duration_months=int(_optional(data, "guardrail_guyton_duration_months", 0)),
            taxable_gain_harvest_target=float(_optional(data, "taxable_gain_harvest_target", 0.0)),
        )


@dataclass(slots=True)
class TaxableLotStrategy:
    cost_basis_method: str = "average"
    harvest_losses: bool = False
    gain_realization_target: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "TaxableLotStrategy":
        return cls(
            cost_basis_method=_optional(data, "cost_basis_method", "average"),
            harvest_losses=bool(_optional(data, "harvest_losses", False)),
            gain_realization_target=float(_optional(data, "gain_realization_target", 0.0)),
        )


@dataclass(slots=True)
class EarlyRetirementStrategy:
    penalty_rate: float = 0.1
    allow_penalty: bool = True
    use_roth_basis_first: bool = True
    bridge_cash_years: float = 0.0
    use_72t: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "EarlyRetirementStrategy":
        return cls(
            penalty_rate=float(_optional(data, "penalty_rate", 0.1)),
            allow_penalty=bool(_optional(data, "allow_penalty", True)),
            use_roth_basis_first=bool(_optional(data, "use_roth_basis_first", True)),
            bridge_cash_years=float(_optional(data, "bridge_cash_years", 0.0)),
            use_72t=bool(_optional(data, "use_72t", False)),
        )


@dataclass(slots=True)
class RothConversionStrategy:
    enabled: bool = False
    start_age: float = 0.0
    end_age: float = 0.0
    target_bracket_rate: float = 0.0
    annual_amount: float = 0.0
    min_conversion: float = 0.0
    max_conversion: float = 0.0
    respect_irmaa: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "RothConversionStrategy":
        return cls(
            enabled=bool(_optional(data, "enabled", False)),
            start_age=float(_optional(data, "start_age", 0.0)),
            end_age=float(_optional(data, "end_age", 0.0)),
            target_bracket_rate=float(_optional(data, "target_bracket_rate", 0.0)),
            annual_amount=float(_optional(data, "annual_amount", 0.0)),
            min_conversion=float(_optional(data, "min_conversion", 0.0)),
            max_conversion=float(_optional(data, "max_conversion", 0.0)),
            respect_irmaa=bool(_optional(data, "respect_irmaa", False)),
        )


@dataclass(slots=True)
class RothLadderStrategy:
    enabled: bool = False
    lead_time_years: float = 5.0
    start_age: float = 0.0
    end_age: float = 0.0
    annual_conversion: float = 0.0
    target_after_tax_spending: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "RothLadderStrategy":
        return cls(
            enabled=bool(_optional(data, "enabled", False)),
            lead_time_years=float(_optional(data, "lead_time_years", 5.0)),
            start_age=float(_optional(data, "start_age", 0.0)),
            end_age=float(_optional(data, "end_age", 0.0)),
            annual_conversion=float(_optional(data, "annual_conversion", 0.0)),
            target_after_tax_spending=float(_optional(data, "target_after_tax_spending", 0.0)),
        )


@dataclass(slots=True)
class RmdStrategy:
    enabled: bool = True
    start_age: float = 73.0
    account_types: list[str] = field(default_factory=lambda: ["traditional"])
    excess_handling: str = "spend"
    withholding_rate: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "RmdStrategy":
        return cls(
            enabled=bool(_optional(data, "enabled", True)),
            start_age=float(_optional(data, "start_age", 73.0)),
            account_types=list(_expect_list(_optional(data, "account_types", ["traditional"]), f"{path}.account_types")),
            excess_handling=_optional(data, "excess_handling", "spend"),
            withholding_rate=float(_optional(data, "withholding_rate", 0.0)),
        )


@dataclass(slots=True)
class CharitableStrategy:
    annual_giving: float = 0.0
    start_age: float = 0.0
    end_age: float = 0.0
    use_qcd: bool = False
    qcd_annual_amount: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "CharitableStrategy":
        return cls(
            annual_giving=float(_optional(data, "annual_giving", 0.0)),
            start_age=float(_optional(data, "start_age", 0.0)),
            end_age=float(_optional(data, "end_age", 0.0)),
            use_qcd=bool(_optional(data, "use_qcd", False)),
            qcd_annual_amount=float(_optional(data, "qcd_annual_amount", 0.0)),
        )


@dataclass(slots=True)
class HealthcareStrategy:
    pre_medicare_monthly: float = 0.0
    medicare_part_b_monthly: float = 0.0
    medicare_part_d_monthly: float = 0.0
    medigap_monthly: float = 0.0
    inflation_type: str = "medical"
    apply_irmaa: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "HealthcareStrategy":
        return cls(
            pre_medicare_monthly=float(_optional(data, "pre_medicare_monthly", 0.0)),
            medicare_part_b_monthly=float(_optional(data, "medicare_part_b_monthly", 0.0)),
            medicare_part_d_monthly=float(_optional(data, "medicare_part_d_monthly", 0.0)),
            medigap_monthly=float(_optional(data, "medigap_monthly", 0.0)),
            inflation_type=_optional(data, "inflation_type", "medical"),
            apply_irmaa=bool(_optional(data, "apply_irmaa", False)),
        )


@dataclass(slots=True)
class TaxStrategy:
    filing_status: str = "single"
    state_tax_rate: float = 0.0
    use_standard_deduction: bool = True
    apply_capital_gains_rates: bool = True
    policy_year: int | None = None
    state_code: str = "none"

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "TaxStrategy":
        policy_year = _optional(data, "policy_year")
        return cls(
            filing_status=_optional(data, "filing_status", "single"),
            state_tax_rate=float(_optional(data, "state_tax_rate", 0.0)),
            state_code=str(_optional(data, "state_code", "none")).lower(),
            use_standard_deduction=bool(_optional(data, "use_standard_deduction", True)),
            apply_capital_gains_rates=bool(_optional(data, "apply_capital_gains_rates", True)),
            policy_year=None if policy_year is None else int(policy_year),
        )


@dataclass(slots=True)
class CashflowEvent:
    id: str
    name: str
    date: str
    amount: float
    tax_treatment: str

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "CashflowEvent":
        return cls(
            id=_require(data, "id", path),
            name=_require(data, "name", path),
            date=_require(data, "date", path),
            amount=_number(_require(data, "amount", path), f"{path}.amount"),
            tax_treatment=_optional(data, "tax_treatment", "none"),
        )


@dataclass(slots=True)
class Pension:
    id: str
    name: str
    start_date: str
    end_date: str
    monthly_amount: float
    inflation_type: str
    tax_treatment: str

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> "Pension":
        return cls(
            id=_require(data, "id", path),
            name=_require(data, "name", path),
            start_date=_require(data, "start_date", path),
            end_date=_optional(data, "end_date", ""),
            monthly_amount=_number(_require(data, "monthly_amount", path), f"{path}.monthly_amount"),
            inflation_type=_optional(data, "inflation_type", "none"),
            tax_treatment=_optional(data, "tax_treatment", "ordinary"),
        )


@dataclass(slots=True)
class ScenarioStrategies:
    return_model: ReturnModelStrategy
    glidepath: GlidepathStrategy
    rebalancing: RebalancingStrategy
    cash_buffer: CashBufferStrategy
    withdrawal: WithdrawalStrategy
    taxable_lot: TaxableLotStrategy
    early_retirement: EarlyRetirementStrategy
    roth_conversion: RothConversionStrategy
    roth_ladder: RothLadderStrategy
    rmd: RmdStrategy
    charitable: CharitableStrategy
    healthcare: HealthcareStrategy
    tax: TaxStrategy
    events: list[CashflowEvent]
    pensions: list[Pension]

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str = "scenario.strategies") -> "ScenarioStrategies":
        return cls(
            return_model=_sub(data, "return_model", path, ReturnModelStrategy.from_dict),
            glidepath=_sub(data, "glidepath", path, GlidepathStrategy.from_dict),
            rebalancing=_sub(data, "rebalancing", path, RebalancingStrategy.from_dict),
            cash_buffer=_sub(data, "cash_buffer", path, CashBufferStrategy.from_dict),
            withdrawal=_sub(data, "withdrawal", path, WithdrawalStrategy.from_dict),
            taxable_lot=_sub(data, "taxable_lot", path, TaxableLotStrategy.from_dict),
            early_retirement=_sub(data, "early_retirement", path, EarlyRetirementStrategy.from_dict),
            roth_conversion=_sub(data, "roth_conversion", path, RothConversionStrategy.from_dict),
            roth_ladder=_sub(data, "roth_ladder", path, RothLadderStrategy.from_dict),
            rmd=_sub(data, "rmd", path, RmdStrategy.from_dict),
            charitable=_sub(data, "charitable", path, CharitableStrategy.from_dict),
            healthcare=_sub(data, "healthcare", path, HealthcareStrategy.from_dict),
            tax=_sub(data, "tax", path, TaxStrategy.from_dict),
            events=[
                CashflowEvent.from_dict(_expect_dict(item, f"{path}.events[{idx}]"), f"{path}.events[{idx}]")
                for idx, item in enumerate(_expect_list(_optional(data, "events", []), f"{path}.events"))
            ],
            pensions=[
                Pension.from_dict(_expect_dict(item, f"{path}.pensions[{idx}]"), f"{path}.pensions[{idx}]")
                for idx, item in enumerate(_expect_list(_optional(data, "pensions", []), f"{path}.pensions"))
            ],
        )


@dataclass(slots=True)
class Scenario:
    id: str
    name: str
    start_date: str
    years: int
    person_strategy_ids: list[str]
    spending_strategy_id: str | None
    non_investment_account_ids: list[str] | None
    investment_account_ids: list[str] | None
    strategies: ScenarioStrategies

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str = "scenario") -> "Scenario":
        non_investment = data.get("non_investment_account_ids")
        investment = data.get("investment_account_ids")
        return cls(
            id=_require(data, "id", path),
            name=_optional(data, "name", ""),
            start_date=_require(data, "start_date", path),
            years=int(_require(data, "years", path)),
            person_strategy_ids=list(_expect_list(_optional(data, "person_strategy_ids", []), f"{path}.person_strategy_ids")),
            spending_strategy_id=_optional(data, "spending_strategy_id"),
            non_investment_account_ids=None if non_investment is None else list(_expect_list(non_investment, f"{path}.non_investment_account_ids")),
            investment_account_ids=None if investment is None else list(_expect_list(investment, f"{path}.investment_account_ids")),
            strategies=ScenarioStrategies.from_dict(_expect_dict(_optional(data, "strategies", {}), f"{path}.strategies")),
        )


@dataclass(slots=True)
class Snapshot:
    scenario: Scenario
    people: list[Person]
    person_strategies: list[PersonStrategy]
    social_security_strategies: list[SocialSecurityStrategy]
    social_security_earnings: list[SocialSecurityEarnings]
    future_work_strategies: list[FutureWorkStrategy]
    future_work_periods: list[FutureWorkPeriod]
    spending_strategies: list[SpendingStrategy]
    spending_line_items: list[SpendingLineItem]
    non_investment_accounts: list[CashAccount]
    investment_accounts: list[InvestmentAccount]
    investment_account_holdings: list[Holding]
    tax_policies: list[TaxPolicy]
    social_security_provisional_brackets: list[ProvisionalIncomeBracket]
    irmaa_tables: list[IrmaaTable]
    rmd_table: list[RmdTableEntry]
    ssa_wage_index: list[WageIndex]
    ssa_bend_points: list[BendPoints]
    ssa_retirement_adjustments: list[RetirementAdjustment]
    inflation_defaults: list[InflationDefault]
    state_tax_policies: list[StateTaxPolicy] = field(default_factory=list)
    historical_returns: list[HistoricalReturn] = field(default_factory=list)
    min_balance_run: list[MinBalancePoint] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Snapshot":
        path = "snapshot"
        return cls(
            scenario=Scenario.from_dict(_expect_dict(_require(data, "scenario", path), "scenario")),
            people=_items(data, "people", path, Person.from_dict, required=True),
            person_strategies=_items(data, "person_strategies", path, PersonStrategy.from_dict),
            social_security_strategies=_items(data, "social_security_strategies", path, SocialSecurityStrategy.from_dict),
            social_security_earnings=_items(data, "social_security_earnings", path, SocialSecurityEarnings.from_dict),
            future_work_strategies=_items(data, "future_work_strategies", path, FutureWorkStrategy.from_dict),
            future_work_periods=_items(data, "future_work_periods", path, FutureWorkPeriod.from_dict),
            spending_strategies=_items(data, "spending_strategies", path, SpendingStrategy.from_dict),
            spending_line_items=_items(data, "spending_line_items", path, SpendingLineItem.from_dict),
            non_investment_accounts=_items(data, "non_investment_accounts", path, CashAccount.from_dict),
            investment_accounts=_items(data, "investment_accounts", path, InvestmentAccount.from_dict),
            investment_account_holdings=_items(data, "investment_account_holdings", path, Holding.from_dict),
            tax_policies=_items(data, "tax_policies", path, TaxPolicy.from_dict),
            social_security_provisional_brackets=_items(
                data, "social_security_provisional_brackets", path, ProvisionalIncomeBracket.from_dict
            ),
            irmaa_tables=_items(data, "irmaa_tables", path, IrmaaTable.from_dict),
            rmd_table=_items(data, "rmd_table", path, RmdTableEntry.from_dict),
            ssa_wage_index=_items(data, "ssa_wage_index", path, WageIndex.from_dict),
            ssa_bend_points=_items(data, "ssa_bend_points", path, BendPoints.from_dict),
            ssa_retirement_adjustments=_items(data, "ssa_retirement_adjustments", path, RetirementAdjustment.from_dict),
            inflation_defaults=_items(data, "inflation_defaults", path, InflationDefault.from_dict),
            state_tax_policies=_items(data, "state_tax_policies", path, StateTaxPolicy.from_dict),
            historical_returns=_items(data, "historical_returns", path, HistoricalReturn.from_dict),
            min_balance_run=_items(data, "min_balance_run", path, MinBalancePoint.from_dict),
            raw=data,
        )

    def active_person_strategies(self) -> list[PersonStrategy]:
        wanted = set(self.scenario.person_strategy_ids)
        return [item for item in self.person_strategies if item.id in wanted]

    def primary_person(self) -> Person | None:
        people = {person.id: person for person in self.people}
        for strategy in self.active_person_strategies():
            if strategy.person_id in people:
                return people[strategy.person_id]
        return self.people[0] if self.people else None

    def active_work_periods(self) -> list[FutureWorkPeriod]:
        strategy_ids = {item.future_work_strategy_id for item in self.active_person_strategies()}
        return [period for period in self.future_work_periods if period.future_work_strategy_id in strategy_ids]

    def active_spending_items(self) -> list[SpendingLineItem]:
        wanted = self.scenario.spending_strategy_id
        return [item for item in self.spending_line_items if item.spending_strategy_id == wanted]

    def cash_accounts_in_play(self) -> list[CashAccount]:
        wanted = self.scenario.non_investment_account_ids
        if wanted is None:
            return list(self.non_investment_accounts)
        return [account for account in self.non_investment_accounts if account.id in wanted]

    def holdings_in_play(self) -> list[Holding]:
        wanted = self.scenario.investment_account_ids
        if wanted is None:
            return list(self.investment_account_holdings)
        return [holding for holding in self.investment_account_holdings if holding.investment_account_id in wanted]


def load_snapshot(path: str | Path) -> Snapshot:
    """Load snapshot JSON into strongly-typed dataclasses."""
    source = Path(path)
    raw = json.loads(source.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise SchemaError("snapshot: root must be a JSON object")
    return Snapshot.from_dict(raw)
