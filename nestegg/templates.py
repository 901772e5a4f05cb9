"""Sample snapshot used by the CLI and tests."""

from __future__ import annotations

from typing import Any

from .tax_data import HOLDING_TYPE_RETURNS, default_reference_tables


def _holding(
    holding_id: str,
    name: str,
    account_id: str,
    tax_type: str,
    holding_type: str,
    balance: float,
    basis: list[tuple[str, float]],
) -> dict[str, Any]:
    return_rate, std_dev = HOLDING_TYPE_RETURNS[holding_type]
    return {
        "id": holding_id,
        "name": name,
        "investment_account_id": account_id,
        "tax_type": tax_type,
        "holding_type": holding_type,
        "balance": balance,
        "cost_basis_entries": [{"date": opened, "amount": amount} for opened, amount in basis],
        "return_rate": return_rate,
        "return_std_dev": std_dev,
    }


def _spending(item_id: str, name: str, category: str, need: float, want: float, **extra: Any) -> dict[str, Any]:
    item = {
        "id": item_id,
        "name": name,
        "spending_strategy_id": "spend-base",
        "category": category,
        "need_amount": need,
        "want_amount": want,
        "start_date": "",
        "end_date": "",
        "is_pre_tax": False,
        "is_charitable": False,
        "is_work": False,
        "inflation_type": "cpi",
    }
    item.update(extra)
    return item


def build_sample_snapshot() -> dict[str, Any]:
    """A single filer retiring at 62 with a mix of account types."""
    snapshot: dict[str, Any] = {
        "scenario": {
            "id": "scenario-sample",
            "name": "Sample retirement",
            "start_date": "2026-01-01",
            "years": 30,
            "person_strategy_ids": ["ps-alex"],
            "spending_strategy_id": "spend-base",
            "strategies": {
                "return_model": {"mode": "deterministic", "seed": 42},
                "glidepath": {
                    "mode": "age",
                    "targets": [
                        {"age": 60, "equity": 0.7, "bonds": 0.3},
                        {"age": 80, "equity": 0.5, "bonds": 0.5},
                    ],
                },
                "rebalancing": {
                    "frequency": "annual",
                    "drift_threshold": 0.05,
                    "tax_aware": True,
                    "min_trade_amount": 500,
                },
                "cash_buffer": {
                    "target_months": 12,
                    "min_months": 6,
                    "max_months": 24,
                    "refill_priority": "taxable_first",
                },
                "withdrawal": {"order": ["taxable", "traditional", "roth"], "avoid_early_penalty": True},
                "early_retirement": {"penalty_rate": 0.1, "allow_penalty": False},
                "roth_conversion": {
                    "enabled": True,
                    "start_age": 62,
                    "end_age": 72,
                    "target_bracket_rate": 0.12,
                    "max_conversion": 60_000,
                },
                "rmd": {"enabled": True, "start_age": 73, "withholding_rate": 0.1},
                "charitable": {"annual_giving": 3_000, "use_qcd": True, "qcd_annual_amount": 3_000},
                "healthcare": {
                    "pre_medicare_monthly": 850,
                    "medicare_part_b_monthly": 203,
                    "medicare_part_d_monthly": 45,
                    "medigap_monthly": 180,
                    "inflation_type": "medical",
                    "apply_irmaa": True,
                },
                "tax": {"filing_status": "single", "state_tax_rate": 0.04},
                "events": [
                    {"id": "event-car", "name": "Replace car", "date": "2029-06-01", "amount": -35_000, "tax_treatment": "none"},
                    {
                        "id": "event-inheritance",
                        "name": "Inheritance",
                        "date": "2034-03-01",
                        "amount": 50_000,
                        "tax_treatment": "none",
                    },
                ],
                "pensions": [
                    {
                        "id": "pension-state",
                        "name": "State pension",
                        "start_date": "2031-06-01",
                        "end_date": "",
                        "monthly_amount": 900,
                        "inflation_type": "none",
                        "tax_treatment": "ordinary",
                    }
                ],
            },
        },
        "people": [{"id": "person-alex", "name": "Alex", "date_of_birth": "1966-05-15", "life_expectancy": 92}],
        "person_strategies": [
            {
                "id": "ps-alex",
                "person_id": "person-alex",
                "future_work_strategy_id": "work-alex",
                "social_security_strategy_id": "ss-alex",
            }
        ],
        "social_security_strategies": [{"id": "ss-alex", "person_id": "person-alex", "start_date": "2034-05-01"}],
        "social_security_earnings": [
            {"person_id": "person-alex", "year": year, "amount": 48_000 + 2_500 * (year - 1990)}
            for year in range(1990, 2026)
        ],
        "future_work_strategies": [{"id": "work-alex", "name": "Current job", "person_id": "person-alex"}],
        "future_work_periods": [
            {
                "id": "period-alex",
                "name": "Engineering job",
                "future_work_strategy_id": "work-alex",
                "salary": 120_000,
                "bonus": 6_000,
                "start_date": "2026-01-01",
                "end_date": "2028-06-01",
                "match_pct_cap": 0.06,
                "match_ratio": 0.5,
                "holding_id": "h-401k-equity",
                "includes_health_insurance": True,
            }
        ],
        "spending_strategies": [{"id": "spend-base", "name": "Baseline"}],
        "spending_line_items": [
            _spending("item-housing", "Housing", "housing", 2_200, 0, inflation_type="housing"),
            _spending("item-food", "Food", "food", 800, 300),
            _spending("item-travel", "Travel", "travel", 0, 700),
            _spending("item-tuition", "Course fees", "education", 150, 0, end_date="2030-01-01", inflation_type="education"),
        ],
        "non_investment_accounts": [
            {"id": "cash-checking", "name": "Checking", "balance": 25_000, "interest_rate": 0.0},
            {"id": "cash-savings", "name": "High-yield savings", "balance": 35_000, "interest_rate": 0.035},
        ],
        "investment_accounts": [
            {"id": "acct-brokerage", "name": "Brokerage"},
            {"id": "acct-401k", "name": "Workplace 401k"},
            {"id": "acct-roth", "name": "Roth IRA"},
        ],
        "investment_account_holdings": [
            _holding(
                "h-brokerage-equity",
                "Total market index",
                "acct-brokerage",
                "taxable",
                "sp500",
                180_000,
                [("2012-03-01", 90_000), ("2018-07-01", 30_000)],
            ),
            _holding("h-brokerage-bonds", "Bond index", "acct-brokerage", "taxable", "bonds", 60_000, [("2019-01-01", 58_000)]),
            _holding("h-401k-equity", "Target equity fund", "acct-401k", "traditional", "sp500", 520_000, []),
            _holding("h-401k-bonds", "Stable bond fund", "acct-401k", "traditional", "bonds", 180_000, []),
            _holding(
                "h-roth-equity",
                "Growth index",
                "acct-roth",
                "roth",
                "nasdaq",
                95_000,
                [("2015-01-01", 30_000), ("2024-04-01", 14_000)],
            ),
        ],
    }
    snapshot.update(default_reference_tables())
    return snapshot
