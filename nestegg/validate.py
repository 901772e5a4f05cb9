"""Semantic and cross-reference validation for snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .dates import parse_date
from .inflation import INFLATION_TYPES
from .ledger import TAX_TYPES
from .schema import Snapshot, UnresolvedReferenceError
from .historical_data import annual_returns
from .tax_data import FILING_STATUSES, STATE_CODES

HOLDING_TYPES = {
    "sp500",
    "nasdaq",
    "dow",
    "non_us_developed",
    "emerging_markets",
    "bonds",
    "real_estate",
    "cash",
    "other",
}

TAX_TREATMENTS = {"ordinary", "capital_gains", "tax_exempt", "none"}
RETURN_MODES = {"deterministic", "stochastic", "historical"}
SEQUENCE_MODELS = {"independent", "regime"}
CORRELATION_MODELS = {"none", "asset_class"}
GLIDEPATH_MODES = {"age", "year"}
REBALANCE_FREQUENCIES = {"monthly", "quarterly", "annual", "threshold"}
REFILL_PRIORITIES = {"pro_rata", "taxable_first", "tax_deferred_first"}
WITHDRAWAL_SOURCES = TAX_TYPES | {"roth_basis"}
EXCESS_HANDLING = {"spend", "taxable", "roth"}
GUARDRAIL_STRATEGIES = {"legacy", "cap_wants", "portfolio_health", "min_balance_health", "guyton"}
COST_BASIS_METHODS = {"average", "fifo", "lifo"}


@dataclass(slots=True)
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _check_enum(result: ValidationResult, path: str, value: str, allowed: Iterable[str]) -> None:
    allowed_set = set(allowed)
    if value not in allowed_set:
        expected = ", ".join(sorted(allowed_set))
        result.errors.append(f"{path}: '{value}' is not valid; expected one of [{expected}]")


def _check_date(result: ValidationResult, path: str, value: str | None, allow_empty: bool = True) -> None:
    if not value:
        if not allow_empty:
            result.errors.append(f"{path}: date is required")
        return
    if parse_date(value) is None:
        result.errors.append(f"{path}: '{value}' is not valid; expected YYYY-MM-DD")


def _check_range(result: ValidationResult, path: str, start: str, end: str) -> None:
    start_date = parse_date(start)
    end_date = parse_date(end)
    if start_date is not None and end_date is not None and start_date > end_date:
        result.errors.append(f"{path}: start_date must be <= end_date")


def _check_non_negative(result: ValidationResult, path: str, value: float) -> None:
    if value < 0:
        result.errors.append(f"{path}: must be >= 0")


def reference_errors(snapshot: Snapshot) -> list[str]:
    """Every identifier in the snapshot that does not resolve."""
    errors: list[str] = []
    people = {person.id for person in snapshot.people}
    person_strategies = {item.id for item in snapshot.person_strategies}
    ss_strategies = {item.id for item in snapshot.social_security_strategies}
    work_strategies = {item.id for item in snapshot.future_work_strategies}
    spending_strategies = {item.id for item in snapshot.spending_strategies}
    cash_accounts = {item.id for item in snapshot.non_investment_accounts}
    investment_accounts = {item.id for item in snapshot.investment_accounts}
    holdings = {item.id for item in snapshot.investment_account_holdings}

    def expect(path: str, value: str | None, known: set[str], kind: str) -> None:
        if value and value not in known:
            errors.append(f"{path}: unknown {kind} '{value}'")

    scenario = snapshot.scenario
    for idx, strategy_id in enumerate(scenario.person_strategy_ids):
        expect(f"scenario.person_strategy_ids[{idx}]", strategy_id, person_strategies, "person strategy")
    expect("scenario.spending_strategy_id", scenario.spending_strategy_id, spending_strategies, "spending strategy")
    for idx, account_id in enumerate(scenario.non_investment_account_ids or []):
        expect(f"scenario.non_investment_account_ids[{idx}]", account_id, cash_accounts, "cash account")
    for idx, account_id in enumerate(scenario.investment_account_ids or []):
        expect(f"scenario.investment_account_ids[{idx}]", account_id, investment_accounts, "investment account")

    for idx, item in enumerate(snapshot.person_strategies):
        expect(f"person_strategies[{idx}].person_id", item.person_id, people, "person")
        expect(
            f"person_strategies[{idx}].future_work_strategy_id",
            item.future_work_strategy_id,
            work_strategies,
            "future work strategy",
        )
        expect(
            f"person_strategies[{idx}].social_security_strategy_id",
            item.social_security_strategy_id,
            ss_strategies,
            "social security strategy",
        )
    for idx, item in enumerate(snapshot.social_security_strategies):
        expect(f"social_security_strategies[{idx}].person_id", item.person_id, people, "person")
    for idx, item in enumerate(snapshot.social_security_earnings):
        expect(f"social_security_earnings[{idx}].person_id", item.person_id, people, "person")
    for idx, item in enumerate(snapshot.future_work_strategies):
        expect(f"future_work_strategies[{idx}].person_id", item.person_id, people, "person")
    for idx, item in enumerate(snapshot.future_work_periods):
        expect(
            f"future_work_periods[{idx}].future_work_strategy_id",
            item.future_work_strategy_id,
            work_strategies,
            "future work strategy",
        )
        expect(f"future_work_periods[{idx}].holding_id", item.holding_id, holdings, "holding")
    for idx, item in enumerate(snapshot.spending_line_items):
        expect(
            f"spending_line_items[{idx}].spending_strategy_id",
            item.spending_strategy_id,
            spending_strategies,
            "spending strategy",
        )
    for idx, item in enumerate(snapshot.investment_account_holdings):
        expect(
            f"investment_account_holdings[{idx}].investment_account_id",
            item.investment_account_id,
            investment_accounts,
            "investment account",
        )
    return errors


def check_references(snapshot: Snapshot) -> None:
    """Raise ``UnresolvedReferenceError`` listing every dangling identifier."""
    errors = reference_errors(snapshot)
    if errors:
        raise UnresolvedReferenceError("; ".join(errors))


def _validate_strategies(result: ValidationResult, snapshot: Snapshot) -> None:
    strategies = snapshot.scenario.strategies
    path = "scenario.strategies"

    model = strategies.return_model
    _check_enum(result, f"{path}.return_model.mode", model.mode, RETURN_MODES)
    _check_enum(result, f"{path}.return_model.sequence_model", model.sequence_model, SEQUENCE_MODELS)
    _check_enum(result, f"{path}.return_model.correlation_model", model.correlation_model, CORRELATION_MODELS)
    _check_non_negative(result, f"{path}.return_model.volatility_scale", model.volatility_scale)
    if model.mode == "historical":
        dataset = annual_returns(snapshot.historical_returns)
        start = model.historical_start_year
        if start is not None and not any(year >= start for year in dataset):
            result.errors.append(f"{path}.return_model.historical_start_year: no returns at or after {start}")

    glidepath = strategies.glidepath
    _check_enum(result, f"{path}.glidepath.mode", glidepath.mode, GLIDEPATH_MODES)
    for idx, target in enumerate(glidepath.targets):
        target_path = f"{path}.glidepath.targets[{idx}]"
        weights = [target.equity, target.bonds, target.real_estate, target.other]
        if any(weight < 0 for weight in weights):
            result.errors.append(f"{target_path}: weights must be >= 0")
        elif sum(weights) <= 0:
            result.errors.append(f"{target_path}: weights must sum to more than 0")
        elif abs(sum(weights) - 1.0) > 0.01:
            result.warnings.append(f"{target_path}: weights sum to {sum(weights):.2f}; they will be normalized")

    rebalancing = strategies.rebalancing
    _check_enum(result, f"{path}.rebalancing.frequency", rebalancing.frequency, REBALANCE_FREQUENCIES)
    _check_non_negative(result, f"{path}.rebalancing.drift_threshold", rebalancing.drift_threshold)
    _check_non_negative(result, f"{path}.rebalancing.min_trade_amount", rebalancing.min_trade_amount)

    buffer = strategies.cash_buffer
    if buffer.refill_priority is not None:
        _check_enum(result, f"{path}.cash_buffer.refill_priority", buffer.refill_priority, REFILL_PRIORITIES)
    for name in ("target_months", "min_months", "max_months"):
        _check_non_negative(result, f"{path}.cash_buffer.{name}", getattr(buffer, name))
    if buffer.min_months > buffer.target_months:
        result.errors.append(f"{path}.cash_buffer: min_months must be <= target_months")

    withdrawal = strategies.withdrawal
    for idx, source in enumerate(withdrawal.order):
        _check_enum(result, f"{path}.withdrawal.order[{idx}]", source, WITHDRAWAL_SOURCES)
    if not 0 <= withdrawal.guardrail_pct < 1:
        result.errors.append(f"{path}.withdrawal.guardrail_pct: must be in [0, 1)")
    _check_enum(result, f"{path}.withdrawal.guardrail_strategy", withdrawal.guardrail_strategy, GUARDRAIL_STRATEGIES)
    for name in (
        "guardrail_withdrawal_rate_limit",
        "guardrail_guyton_trigger_rate_increase",
        "guardrail_guyton_duration_months",
        "taxable_gain_harvest_target",
    ):
        _check_non_negative(result, f"{path}.withdrawal.{name}", getattr(withdrawal, name))
    if not 0 <= withdrawal.guardrail_guyton_applied_pct <= 1:
        result.errors.append(f"{path}.withdrawal.guardrail_guyton_applied_pct: must be in [0, 1]")
    for key in ("guardrail_health_points", "guardrail_min_balance_health_points"):
        for idx, point in enumerate(getattr(withdrawal, key)):
            if not 0 <= point.factor <= 1:
                result.errors.append(f"{path}.withdrawal.{key}[{idx}].factor: must be in [0, 1]")
    if withdrawal.guardrail_strategy == "min_balance_health" and not snapshot.min_balance_run:
        result.warnings.append("min_balance_run: missing; min_balance_health guardrail will not scale wants")

    lots = strategies.taxable_lot
    _check_enum(result, f"{path}.taxable_lot.cost_basis_method", lots.cost_basis_method, COST_BASIS_METHODS)
    _check_non_negative(result, f"{path}.taxable_lot.gain_realization_target", lots.gain_realization_target)

    if not 0 <= strategies.early_retirement.penalty_rate <= 1:
        result.errors.append(f"{path}.early_retirement.penalty_rate: must be in [0, 1]")

    conversion = strategies.roth_conversion
    for name in ("annual_amount", "min_conversion", "max_conversion", "target_bracket_rate"):
        _check_non_negative(result, f"{path}.roth_conversion.{name}", getattr(conversion, name))
    if conversion.max_conversion and conversion.min_conversion > conversion.max_conversion:
        result.errors.append(f"{path}.roth_conversion: min_conversion must be <= max_conversion")
    _check_non_negative(result, f"{path}.roth_ladder.annual_conversion", strategies.roth_ladder.annual_conversion)
    _check_non_negative(
        result, f"{path}.roth_ladder.target_after_tax_spending", strategies.roth_ladder.target_after_tax_spending
    )

    rmd = strategies.rmd
    for idx, tax_type in enumerate(rmd.account_types):
        _check_enum(result, f"{path}.rmd.account_types[{idx}]", tax_type, TAX_TYPES)
    _check_enum(result, f"{path}.rmd.excess_handling", rmd.excess_handling, EXCESS_HANDLING)
    if not 0 <= rmd.withholding_rate <= 1:
        result.errors.append(f"{path}.rmd.withholding_rate: must be in [0, 1]")

    _check_non_negative(result, f"{path}.charitable.annual_giving", strategies.charitable.annual_giving)
    _check_non_negative(result, f"{path}.charitable.qcd_annual_amount", strategies.charitable.qcd_annual_amount)

    healthcare = strategies.healthcare
    _check_enum(result, f"{path}.healthcare.inflation_type", healthcare.inflation_type, INFLATION_TYPES)
    for name in ("pre_medicare_monthly", "medicare_part_b_monthly", "medicare_part_d_monthly", "medigap_monthly"):
        _check_non_negative(result, f"{path}.healthcare.{name}", getattr(healthcare, name))

    _check_enum(result, f"{path}.tax.filing_status", strategies.tax.filing_status, FILING_STATUSES)
    _check_non_negative(result, f"{path}.tax.state_tax_rate", strategies.tax.state_tax_rate)
    state_codes = {"none"} | STATE_CODES | {policy.state_code for policy in snapshot.state_tax_policies}
    _check_enum(result, f"{path}.tax.state_code", strategies.tax.state_code, state_codes)

    for idx, event in enumerate(strategies.events):
        _check_date(result, f"{path}.events[{idx}].date", event.date, allow_empty=False)
        _check_enum(result, f"{path}.events[{idx}].tax_treatment", event.tax_treatment, TAX_TREATMENTS)
    for idx, pension in enumerate(strategies.pensions):
        pension_path = f"{path}.pensions[{idx}]"
        _check_date(result, f"{pension_path}.start_date", pension.start_date, allow_empty=False)
        _check_date(result, f"{pension_path}.end_date", pension.end_date)
        _check_range(result, pension_path, pension.start_date, pension.end_date)
        _check_non_negative(result, f"{pension_path}.monthly_amount", pension.monthly_amount)
        _check_enum(result, f"{pension_path}.inflation_type", pension.inflation_type, INFLATION_TYPES)
        _check_enum(result, f"{pension_path}.tax_treatment", pension.tax_treatment, TAX_TREATMENTS)


def validate_snapshot(snapshot: Snapshot) -> ValidationResult:
    result = ValidationResult()
    scenario = snapshot.scenario

    _check_date(result, "scenario.start_date", scenario.start_date, allow_empty=False)
    if scenario.years < 0:
        result.errors.append("scenario.years: must be >= 0")
    result.errors.extend(reference_errors(snapshot))
    _validate_strategies(result, snapshot)

    for idx, person in enumerate(snapshot.people):
        _check_date(result, f"people[{idx}].date_of_birth", person.date_of_birth, allow_empty=False)
    for idx, strategy in enumerate(snapshot.social_security_strategies):
        _check_date(result, f"social_security_strategies[{idx}].start_date", strategy.start_date, allow_empty=False)

    for idx, period in enumerate(snapshot.future_work_periods):
        period_path = f"future_work_periods[{idx}]"
        _check_date(result, f"{period_path}.start_date", period.start_date)
        _check_date(result, f"{period_path}.end_date", period.end_date)
        _check_range(result, period_path, period.start_date, period.end_date)
        for name in ("salary", "bonus", "match_pct_cap", "match_ratio"):
            _check_non_negative(result, f"{period_path}.{name}", getattr(period, name))

    for idx, item in enumerate(snapshot.spending_line_items):
        item_path = f"spending_line_items[{idx}]"
        _check_date(result, f"{item_path}.start_date", item.start_date)
        _check_date(result, f"{item_path}.end_date", item.end_date)
        _check_range(result, item_path, item.start_date, item.end_date)
        _check_non_negative(result, f"{item_path}.need_amount", item.need_amount)
        _check_non_negative(result, f"{item_path}.want_amount", item.want_amount)
        _check_enum(result, f"{item_path}.inflation_type", item.inflation_type, INFLATION_TYPES)

    if not snapshot.cash_accounts_in_play():
        result.errors.append("non_investment_accounts: at least one cash account is required")
    for idx, account in enumerate(snapshot.non_investment_accounts):
        _check_non_negative(result, f"non_investment_accounts[{idx}].balance", account.balance)

    for idx, holding in enumerate(snapshot.investment_account_holdings):
        holding_path = f"investment_account_holdings[{idx}]"
        _check_enum(result, f"{holding_path}.tax_type", holding.tax_type, TAX_TYPES)
        _check_enum(result, f"{holding_path}.holding_type", holding.holding_type, HOLDING_TYPES)
        _check_non_negative(result, f"{holding_path}.balance", holding.balance)
        _check_non_negative(result, f"{holding_path}.return_std_dev", holding.return_std_dev)
        for entry_idx, entry in enumerate(holding.cost_basis_entries):
            entry_path = f"{holding_path}.cost_basis_entries[{entry_idx}]"
            _check_date(result, f"{entry_path}.date", entry.date, allow_empty=False)
            _check_non_negative(result, f"{entry_path}.amount", entry.amount)
        basis = sum(entry.amount for entry in holding.cost_basis_entries)
        if holding.tax_type == "roth" and basis > holding.balance + 0.01:
            result.warnings.append(f"{holding_path}: Roth basis exceeds balance and will be trimmed")

    for idx, policy in enumerate(snapshot.tax_policies):
        policy_path = f"tax_policies[{idx}]"
        _check_enum(result, f"{policy_path}.filing_status", policy.filing_status, FILING_STATUSES)
        for key in ("ordinary_brackets", "capital_gains_brackets"):
            brackets = getattr(policy, key)
            if not brackets or brackets[-1].up_to is not None:
                result.errors.append(f"{policy_path}.{key}: must end with an open-ended bracket (up_to null)")
            uppers = [item.up_to for item in brackets if item.up_to is not None]
            if uppers != sorted(uppers):
                result.errors.append(f"{policy_path}.{key}: thresholds must be ascending")

    for idx, policy in enumerate(snapshot.state_tax_policies):
        policy_path = f"state_tax_policies[{idx}]"
        _check_enum(result, f"{policy_path}.filing_status", policy.filing_status, FILING_STATUSES)
        if not policy.brackets or policy.brackets[-1].up_to is not None:
            result.errors.append(f"{policy_path}.brackets: must end with an open-ended bracket (up_to null)")

    for idx, item in enumerate(snapshot.inflation_defaults):
        _check_enum(result, f"inflation_defaults[{idx}].type", item.type, INFLATION_TYPES)

    filing_status = scenario.strategies.tax.filing_status
    if not any(policy.filing_status == filing_status for policy in snapshot.tax_policies):
        result.errors.append(f"tax_policies: no policy for filing status '{filing_status}'")
    if snapshot.social_security_strategies and not snapshot.social_security_provisional_brackets:
        result.errors.append("social_security_provisional_brackets: required when Social Security is claimed")
    if scenario.strategies.healthcare.apply_irmaa and not snapshot.irmaa_tables:
        result.warnings.append("irmaa_tables: missing; IRMAA surcharges will be zero")
    if not snapshot.rmd_table:
        result.warnings.append("rmd_table: missing; using the IRS Uniform Lifetime Table")
    if snapshot.social_security_strategies and not snapshot.ssa_wage_index:
        result.warnings.append("ssa_wage_index: missing; Social Security benefits cannot be estimated")
    return result
