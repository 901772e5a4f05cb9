from datetime import date

import pytest

from nestegg.modules.cash_buffer import CashBufferModule
from nestegg.modules.charitable import CharitableModule
from nestegg.modules.events import EventModule
from nestegg.modules.healthcare import HealthcareModule
from nestegg.modules.market_returns import MarketReturnModule
from nestegg.modules.pensions import PensionModule
from nestegg.modules.rebalancing import RebalancingModule
from nestegg.modules.social_security import SocialSecurityModule
from nestegg.modules.spending import SpendingModule, retirement_start
from nestegg.modules.taxes import TaxModule
from nestegg.modules.work import WorkModule
from nestegg.schema import Snapshot
from nestegg.tax_policy import TaxPolicyNotFound
from tests.helpers import clone_snapshot, make_context, make_holding, make_state

JANUARY = date(2026, 1, 1)
DECEMBER = date(2026, 12, 1)


def _snapshot(sample: dict, **strategies) -> Snapshot:
    data = clone_snapshot(sample)
    data["scenario"]["strategies"].update(strategies)
    return Snapshot.from_dict(data)


def test_spending_pays_needs_before_wants(sample_snapshot_dict):
    data = clone_snapshot(sample_snapshot_dict)
    item = dict(data["spending_line_items"][0], need_amount=1_000, want_amount=500, inflation_type="none")
    data["spending_line_items"] = [item]
    module = SpendingModule(Snapshot.from_dict(data))
    state = make_state(cash=1_200)

    output = module.apply(make_context(module.snapshot, JANUARY), state)

    assert [flow.cash for flow in output.cashflows] == [-1_000, -200]
    assert state.deferred_shortfall == pytest.approx(300)
    assert state.monthly_spending == pytest.approx(1_500)
    assert state.total_cash() == 0.0


def test_cash_buffer_covers_deferred_spending(sample_snapshot_dict):
    module = CashBufferModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(make_holding("brokerage", "taxable", 10_000, basis=10_000))
    state.deferred_shortfall = 300

    output = module.apply(make_context(module.snapshot, JANUARY), state)

    assert output.actions[0].source_holding_id == "brokerage"
    assert [flow.cash for flow in output.cashflows] == [pytest.approx(-300)]
    assert output.cash_delta() == pytest.approx(0.0)
    assert state.deferred_shortfall == 0.0
    assert state.unmet_spending == 0.0


def test_cash_buffer_records_unmet_spending(sample_snapshot_dict):
    module = CashBufferModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(cash=100)
    state.deferred_shortfall = 300

    module.apply(make_context(module.snapshot, JANUARY), state)

    assert state.unmet_spending == pytest.approx(200)
    assert state.total_cash() == 0.0


def test_cash_buffer_refills_to_target(sample_snapshot_dict):
    module = CashBufferModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(make_holding("brokerage", "taxable", 50_000, basis=50_000), cash=2_000)
    state.monthly_spending = 1_000

    module.apply(make_context(module.snapshot, JANUARY), state)

    assert state.total_cash() == pytest.approx(12_000)


def test_cash_buffer_invests_excess(sample_snapshot_dict):
    module = CashBufferModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(make_holding("brokerage", "taxable", 10_000, basis=10_000), cash=30_000)
    state.monthly_spending = 1_000

    output = module.apply(make_context(module.snapshot, JANUARY), state)

    assert output.actions[0].kind == "deposit"
    assert output.actions[0].resolved_amount == pytest.approx(18_000)
    assert state.total_cash() == pytest.approx(12_000)


def test_work_income_and_plan_contributions(sample_snapshot_dict):
    module = WorkModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(make_holding("h-401k-equity", "traditional", 0))

    output = module.apply(make_context(module.snapshot, JANUARY), state)

    assert [flow.cash for flow in output.cashflows] == [pytest.approx(10_500), pytest.approx(-600)]
    assert state.total_cash() == pytest.approx(9_900)
    assert state.holding("h-401k-equity").balance == pytest.approx(900)
    assert state.contributions_by_tax_type == {"traditional": pytest.approx(900)}
    assert state.year_ledger.ordinary_income == pytest.approx(10_500)
    assert state.year_ledger.deductions == pytest.approx(600)
    assert output.cash_delta() == pytest.approx(9_900)


def test_work_stops_at_period_end(sample_snapshot_dict):
    module = WorkModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(make_holding("h-401k-equity", "traditional", 0))
    output = module.apply(make_context(module.snapshot, date(2028, 6, 1), 29), state)
    assert output.cashflows == []
    assert output.actions == []


def test_deterministic_returns_and_cash_interest(sample_snapshot_dict):
    module = MarketReturnModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(make_holding("fund", "taxable", 1_000, return_rate=0.12), cash=1_000, interest_rate=0.06)

    output = module.apply(make_context(module.snapshot, JANUARY), state)

    assert state.holding("fund").balance == pytest.approx(1_000 * 1.12 ** (1 / 12))
    interest = 1_000 * (1.06 ** (1 / 12) - 1)
    assert state.total_cash() == pytest.approx(1_000 + interest)
    assert [flow.ordinary_income for flow in output.cashflows] == [pytest.approx(interest)]
    assert state.year_ledger.ordinary_income == pytest.approx(interest)
    assert {item.kind for item in output.market_returns} == {"cash", "holding"}


def _stochastic(sample: dict, **model) -> Snapshot:
    return _snapshot(sample, return_model={"mode": "stochastic", "seed": 7, **model})


def _volatile_state():
    state = make_state(
        make_holding("a", "taxable", 1_000, return_rate=0.07),
        make_holding("b", "taxable", 1_000, return_rate=0.07),
    )
    for holding in state.holdings:
        holding.return_std_dev = 0.15
    return state


def _rates(module: MarketReturnModule, months: int) -> list[list[float]]:
    state = _volatile_state()
    rates = []
    for month in range(months):
        output = module.apply(make_context(module.snapshot, date(2026, month + 1, 1), month), state)
        rates.append([item.rate for item in output.market_returns])
    return rates


def test_stochastic_returns_repeat_for_a_seed(sample_snapshot_dict):
    snapshot = _stochastic(sample_snapshot_dict)
    assert _rates(MarketReturnModule(snapshot), 6) == _rates(MarketReturnModule(snapshot), 6)
    assert _rates(MarketReturnModule(snapshot, seed=8), 6) != _rates(MarketReturnModule(snapshot), 6)


def test_regime_shocks_hold_for_the_year(sample_snapshot_dict):
    rates = _rates(MarketReturnModule(_stochastic(sample_snapshot_dict, sequence_model="regime")), 3)
    assert rates[0] == rates[1] == rates[2]
    assert rates[0][0] != rates[0][1]


def test_asset_class_shocks_shared(sample_snapshot_dict):
    rates = _rates(MarketReturnModule(_stochastic(sample_snapshot_dict, correlation_model="asset_class")), 2)
    assert rates[0][0] == rates[0][1]
    assert rates[0] != rates[1]


def test_taxes_settle_only_in_last_month(sample_snapshot_dict):
    module = TaxModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(cash=100_000)
    state.year_ledger.ordinary_income = 60_000

    output = module.apply(make_context(module.snapshot, date(2026, 6, 1), 5), state)

    assert output.cashflows == []
    assert state.closed_years == []


def test_taxes_paid_from_cash_and_year_closed(sample_snapshot_dict):
    module = TaxModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(cash=100_000)
    state.year_ledger.ordinary_income = 60_000

    output = module.apply(make_context(module.snapshot, DECEMBER, 11), state)

    closed = state.closed_years[-1]
    assert closed.ordinary_income == 60_000
    assert closed.tax_paid > 0
    assert state.total_cash() == pytest.approx(100_000 - closed.tax_paid)
    assert output.cash_delta() == pytest.approx(-closed.tax_paid)
    assert state.year_ledger.ordinary_income == 0.0
    assert state.magi_history == {0: pytest.approx(60_000)}


def test_tax_overpayment_is_refunded(sample_snapshot_dict):
    module = TaxModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(cash=0)
    state.year_ledger.ordinary_income = 20_000
    state.year_ledger.tax_paid = 50_000

    output = module.apply(make_context(module.snapshot, DECEMBER, 11), state)

    closed = state.closed_years[-1]
    assert output.cashflows[0].label == "Tax refund"
    assert state.total_cash() == pytest.approx(50_000 - closed.tax_paid)
    assert 0 < closed.tax_paid < 50_000


def test_tax_withdrawal_booked_in_new_year(sample_snapshot_dict):
    module = TaxModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(make_holding("brokerage", "taxable", 100_000, basis=50_000))
    state.year_ledger.ordinary_income = 60_000

    output = module.apply(make_context(module.snapshot, DECEMBER, 11), state)

    closed = state.closed_years[-1]
    assert output.actions
    assert closed.capital_gains == 0.0
    assert state.year_ledger.capital_gains > 0
    assert state.total_cash() == pytest.approx(0.0, abs=1e-6)


def test_missing_tax_policy_raises(sample_snapshot_dict):
    module = TaxModule(_snapshot(sample_snapshot_dict, tax={"filing_status": "single", "policy_year": 2000}))
    state = make_state(cash=1_000)
    with pytest.raises(TaxPolicyNotFound):
        module.apply(make_context(module.snapshot, DECEMBER, 11), state)


def test_healthcare_free_while_covered_by_work(sample_snapshot_dict):
    module = HealthcareModule(Snapshot.from_dict(sample_snapshot_dict))
    output = module.apply(make_context(module.snapshot, JANUARY), make_state(cash=10_000))
    assert output.cashflows == []


def test_healthcare_premiums_after_coverage_ends(sample_snapshot_dict):
    module = HealthcareModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(cash=10_000)
    output = module.apply(make_context(module.snapshot, date(2029, 1, 1), 36), state)
    assert len(output.cashflows) == 1
    assert -output.cashflows[0].cash > 850


def test_irmaa_surcharge_uses_lookback_magi(sample_snapshot_dict):
    module = HealthcareModule(Snapshot.from_dict(sample_snapshot_dict))
    context = make_context(module.snapshot, date(2032, 6, 1), 77)

    low = make_state(cash=10_000)
    base = -module.apply(context, low).cashflows[0].cash

    high = make_state(cash=10_000)
    high.magi_history[context.year_index - 2] = 1_000_000
    surcharged = -module.apply(context, high).cashflows[0].cash

    assert surcharged > base


def test_qualified_charitable_distribution(sample_snapshot_dict):
    data = clone_snapshot(sample_snapshot_dict)
    data["people"][0]["date_of_birth"] = "1950-01-01"
    module = CharitableModule(Snapshot.from_dict(data))
    state = make_state(make_holding("ira", "traditional", 100_000), cash=1_000)

    output = module.apply(make_context(module.snapshot, JANUARY), state)

    assert output.actions[0].tax_treatment == "tax_exempt"
    assert output.actions[0].resolved_amount == pytest.approx(250)
    assert output.cashflows[0].deductions == 0.0
    assert state.year_ledger.ordinary_income == 0.0
    assert state.total_cash() == pytest.approx(1_000)


def test_charitable_giving_deducted_without_qcd(sample_snapshot_dict):
    module = CharitableModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(cash=1_000)
    output = module.apply(make_context(module.snapshot, JANUARY), state)
    assert output.actions == []
    assert output.cashflows[0].deductions == pytest.approx(250)


def test_social_security_starts_at_claim_month(sample_snapshot_dict):
    module = SocialSecurityModule(Snapshot.from_dict(sample_snapshot_dict))
    assert len(module.benefits) == 1

    before = make_state(cash=0)
    assert module.apply(make_context(module.snapshot, date(2034, 4, 1), 99), before).cashflows == []

    claimed = make_state(cash=0)
    output = module.apply(make_context(module.snapshot, date(2034, 5, 1), 100), claimed)
    assert output.cashflows[0].category == "social_security"
    assert claimed.year_ledger.social_security_benefits == pytest.approx(output.cashflows[0].cash)
    assert claimed.year_ledger.ordinary_income == 0.0


def test_event_outflow_defers_what_cash_cannot_cover(sample_snapshot_dict):
    module = EventModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(cash=10_000)
    output = module.apply(make_context(module.snapshot, date(2029, 6, 1), 41), state)
    assert [flow.cash for flow in output.cashflows] == [-10_000]
    assert state.deferred_shortfall == pytest.approx(25_000)


def test_pension_is_ordinary_income(sample_snapshot_dict):
    module = PensionModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(cash=0)
    assert module.apply(make_context(module.snapshot, date(2031, 5, 1), 64), state).cashflows == []
    output = module.apply(make_context(module.snapshot, date(2031, 6, 1), 65), state)
    assert output.cashflows[0].cash == pytest.approx(900)
    assert state.year_ledger.ordinary_income == pytest.approx(900)


def test_rebalancing_moves_to_glidepath_target(sample_snapshot_dict):
    module = RebalancingModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(
        make_holding("equity", "traditional", 80_000),
        make_holding("bonds", "traditional", 20_000, holding_type="bonds"),
        cash=1_000,
    )

    assert module.apply(make_context(module.snapshot, date(2026, 6, 1), 5), state).actions == []

    output = module.apply(make_context(module.snapshot, DECEMBER, 11), state)

    assert state.holding("equity").balance == pytest.approx(70_000)
    assert state.holding("bonds").balance == pytest.approx(30_000)
    assert output.cash_delta() == pytest.approx(0.0)
    assert state.total_cash() == 1_000
    assert state.year_ledger.capital_gains == 0.0


def test_rebalancing_skips_drift_below_threshold(sample_snapshot_dict):
    module = RebalancingModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(
        make_holding("equity", "traditional", 72_000),
        make_holding("bonds", "traditional", 28_000, holding_type="bonds"),
    )

    output = module.apply(make_context(module.snapshot, DECEMBER, 11), state)

    assert output.actions == []
    assert state.holding("equity").balance == 72_000


def test_rebalancing_skips_trades_below_min_amount(sample_snapshot_dict):
    snapshot = _snapshot(
        sample_snapshot_dict,
        rebalancing={"frequency": "annual", "drift_threshold": 0.0, "min_trade_amount": 20_000},
    )
    module = RebalancingModule(snapshot)
    state = make_state(
        make_holding("equity", "traditional", 80_000),
        make_holding("bonds", "traditional", 20_000, holding_type="bonds"),
    )

    output = module.apply(make_context(module.snapshot, DECEMBER, 11), state)

    assert output.actions == []
    assert state.holding("equity").balance == 80_000
    assert state.holding("bonds").balance == 20_000


def test_year_end_harvest_realizes_losses_then_gains(sample_snapshot_dict):
    snapshot = _snapshot(
        sample_snapshot_dict,
        rebalancing={"enabled": False},
        taxable_lot={"harvest_losses": True, "gain_realization_target": 5_000},
    )
    module = RebalancingModule(snapshot)
    state = make_state(
        make_holding("loser", "taxable", 10_000, basis=15_000),
        make_holding("winner", "taxable", 20_000, basis=10_000),
    )

    assert module.apply(make_context(module.snapshot, date(2026, 6, 1), 5), state).actions == []

    output = module.apply(make_context(module.snapshot, DECEMBER, 11), state)

    assert [action.label for action in output.actions] == ["Tax-loss harvest"] * 2 + ["Gain harvest"] * 2
    assert state.year_ledger.capital_gains == pytest.approx(5_000)
    assert state.holding("loser").cost_basis == pytest.approx(10_000)
    assert state.holding("winner").cost_basis == pytest.approx(20_000)
    assert state.total_investments() == pytest.approx(30_000)
    assert output.cash_delta() == pytest.approx(0.0)


def test_historical_returns_follow_dataset_year(sample_snapshot_dict):
    data = clone_snapshot(sample_snapshot_dict)
    data["scenario"]["strategies"]["return_model"] = {"mode": "historical", "historical_start_year": 2000}
    data["historical_returns"] = [
        {"year": 2000, "equity": 0.2, "bonds": 0.05},
        {"year": 2001, "equity": -0.1, "bonds": 0.03},
    ]
    module = MarketReturnModule(Snapshot.from_dict(data))
    state = make_state(
        make_holding("equity", "taxable", 1_000, return_rate=0.07),
        make_holding("bonds", "taxable", 1_000, holding_type="bonds", return_rate=0.04),
        make_holding("other", "taxable", 1_000, holding_type="other", return_rate=0.12),
    )

    module.apply(make_context(module.snapshot, JANUARY), state)

    assert state.holding("equity").balance == pytest.approx(1_000 * 1.2 ** (1 / 12))
    assert state.holding("bonds").balance == pytest.approx(1_000 * 1.05 ** (1 / 12))
    assert state.holding("other").balance == pytest.approx(1_000 * 1.12 ** (1 / 12))

    module.apply(make_context(module.snapshot, date(2027, 1, 1), 12), state)
    assert state.holding("equity").balance == pytest.approx(1_000 * 1.2 ** (1 / 12) * 0.9 ** (1 / 12))


def test_payroll_tax_added_to_year_end_bill(sample_snapshot_dict):
    module = TaxModule(Snapshot.from_dict(sample_snapshot_dict))
    salaried = make_state(cash=100_000)
    salaried.year_ledger.ordinary_income = 100_000
    salaried.year_ledger.earned_income = 100_000
    retired = make_state(cash=100_000)
    retired.year_ledger.ordinary_income = 100_000

    module.apply(make_context(module.snapshot, DECEMBER, 11), salaried)
    module.apply(make_context(module.snapshot, DECEMBER, 11), retired)

    difference = salaried.closed_years[-1].tax_paid - retired.closed_years[-1].tax_paid
    assert difference == pytest.approx(100_000 * (0.062 + 0.0145))


def _retired_spending(sample: dict, need: float, want: float, **withdrawal) -> SpendingModule:
    data = clone_snapshot(sample)
    data["future_work_periods"] = []
    item = dict(data["spending_line_items"][0], need_amount=need, want_amount=want, inflation_type="none")
    data["spending_line_items"] = [item]
    data["scenario"]["strategies"]["withdrawal"] = {"order": ["taxable", "traditional", "roth"], **withdrawal}
    return SpendingModule(Snapshot.from_dict(data))


def test_guardrail_baseline_waits_for_retirement(sample_snapshot_dict):
    module = SpendingModule(Snapshot.from_dict(sample_snapshot_dict))
    state = make_state(make_holding("roth", "roth", 100_000), cash=50_000)

    assert retirement_start(module.snapshot, date(2026, 1, 1)) == date(2028, 6, 1)

    module.apply(make_context(module.snapshot, JANUARY), state)
    module.apply(make_context(module.snapshot, date(2028, 5, 1), 28), state)
    assert state.baseline_portfolio is None

    module.apply(make_context(module.snapshot, date(2028, 6, 1), 29), state)
    assert state.baseline_date == date(2028, 6, 1)
    assert state.baseline_portfolio is not None
    assert state.baseline_need > 0


def test_legacy_guardrail_scales_wants_below_baseline(sample_snapshot_dict):
    module = _retired_spending(sample_snapshot_dict, 1_000, 1_000, guardrail_pct=0.1)
    state = make_state(make_holding("roth", "roth", 80_000), cash=5_000)
    state.baseline_portfolio = 100_000
    state.baseline_date = JANUARY

    module.apply(make_context(module.snapshot, JANUARY), state)

    assert state.monthly_spending == pytest.approx(1_000 + 900)


def test_legacy_guardrail_inactive_above_threshold(sample_snapshot_dict):
    module = _retired_spending(sample_snapshot_dict, 1_000, 1_000, guardrail_pct=0.1)
    state = make_state(make_holding("roth", "roth", 95_000), cash=5_000)
    state.baseline_portfolio = 100_000

    module.apply(make_context(module.snapshot, JANUARY), state)

    assert state.monthly_spending == pytest.approx(2_000)


def test_cap_wants_limits_withdrawal_rate(sample_snapshot_dict):
    module = _retired_spending(
        sample_snapshot_dict, 1_000, 2_000, guardrail_strategy="cap_wants", guardrail_withdrawal_rate_limit=0.04
    )
    state = make_state(make_holding("roth", "roth", 120_000))

    module.apply(make_context(module.snapshot, JANUARY), state)

    assert state.monthly_spending == pytest.approx(1_000)


def test_portfolio_health_interpolates_want_factor(sample_snapshot_dict):
    points = [
        {"health": 1.05, "factor": 1.0},
        {"health": 0.95, "factor": 0.75},
        {"health": 0.85, "factor": 0.5},
        {"health": 0.8, "factor": 0.0},
    ]
    module = _retired_spending(
        sample_snapshot_dict, 1_000, 1_000, guardrail_strategy="portfolio_health", guardrail_health_points=points
    )
    state = make_state(make_holding("roth", "roth", 90_000))
    state.baseline_portfolio = 100_000
    state.baseline_date = JANUARY

    module.apply(make_context(module.snapshot, JANUARY), state)

    assert state.monthly_spending == pytest.approx(1_000 + 625)


def test_min_balance_health_uses_target_run(sample_snapshot_dict):
    data = clone_snapshot(sample_snapshot_dict)
    data["min_balance_run"] = [{"year_index": 0, "balance": 100_000}]
    points = [{"health": 0.5, "factor": 0.0}, {"health": 1.0, "factor": 1.0}]
    module = _retired_spending(
        data, 1_000, 1_000, guardrail_strategy="min_balance_health", guardrail_min_balance_health_points=points
    )
    state = make_state(make_holding("roth", "roth", 75_000))

    module.apply(make_context(module.snapshot, JANUARY), state)

    assert state.monthly_spending == pytest.approx(1_000 + 500)


def test_guyton_cut_applies_for_duration(sample_snapshot_dict):
    module = _retired_spending(
        sample_snapshot_dict,
        1_000,
        2_000,
        guardrail_strategy="guyton",
        guardrail_guyton_trigger_rate_increase=0.2,
        guardrail_guyton_applied_pct=0.1,
        guardrail_guyton_duration_months=2,
    )
    state = make_state(make_holding("roth", "roth", 80_000), cash=10_000)
    state.baseline_portfolio = 100_000
    state.baseline_date = JANUARY
    state.baseline_need = 1_000
    state.baseline_want = 1_000

    module.apply(make_context(module.snapshot, JANUARY), state)

    assert state.monthly_spending == pytest.approx(1_000 + 1_800)
    assert state.guyton_months_remaining == 1
